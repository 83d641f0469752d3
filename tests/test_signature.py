import hashlib

from canteen.payments.signature import compute_signature, verify_signature
from helpers import SERVER_KEY, make_notification


def test_signature_is_sha512_of_concatenated_fields():
    expected = hashlib.sha512(b"order-1" + b"200" + b"15000.00" + b"secret").hexdigest()

    assert compute_signature("order-1", "200", "15000.00", "secret") == expected


def test_valid_notification_verifies():
    assert verify_signature(make_notification("order-1", "settlement"), SERVER_KEY)


def test_uppercase_hex_signature_accepted():
    payload = make_notification("order-1", "settlement")
    payload["signature_key"] = payload["signature_key"].upper()

    assert verify_signature(payload, SERVER_KEY)


def test_signature_from_another_key_rejected():
    payload = make_notification("order-1", "settlement", server_key="someone-else")

    assert not verify_signature(payload, SERVER_KEY)


def test_any_signed_field_change_rejected():
    for field, value in (("order_id", "order-2"), ("status_code", "201"), ("gross_amount", "1.00")):
        payload = make_notification("order-1", "settlement")
        payload[field] = value
        assert not verify_signature(payload, SERVER_KEY), field


def test_missing_or_non_string_fields_rejected():
    payload = make_notification("order-1", "settlement")
    del payload["status_code"]
    assert not verify_signature(payload, SERVER_KEY)

    payload = make_notification("order-1", "settlement")
    payload["gross_amount"] = 15000
    assert not verify_signature(payload, SERVER_KEY)

    assert not verify_signature({}, SERVER_KEY)
