import hashlib
import hmac
from typing import Any, Mapping


def compute_signature(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    """Midtrans notification signature: SHA512(order_id + status_code + gross_amount + server_key)."""
    raw = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(raw.encode()).hexdigest()


def verify_signature(payload: Mapping[str, Any], server_key: str) -> bool:
    signature = payload.get("signature_key")
    parts = (payload.get("order_id"), payload.get("status_code"), payload.get("gross_amount"))
    if not isinstance(signature, str) or not all(isinstance(p, str) for p in parts):
        return False
    expected = compute_signature(*parts, server_key)
    return hmac.compare_digest(expected, signature.lower())
