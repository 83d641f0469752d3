from pydantic import BaseModel


class MidtransNotification(BaseModel):
    """Subset of the Midtrans HTTP notification body the reconciler acts on."""

    transaction_id: str | None = None
    order_id: str
    status_code: str
    gross_amount: str
    transaction_status: str
    fraud_status: str | None = None
    signature_key: str

    model_config = {"extra": "ignore"}


class WebhookResponse(BaseModel):
    message: str
