import json
import logging

from fastapi import APIRouter, Depends, Request

from canteen.dependencies import get_reconciler, request_id
from canteen.errors import InvalidRequestError
from canteen.schemas.webhook import WebhookResponse
from canteen.services.reconciler import WebhookReconciler

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/midtrans", response_model=WebhookResponse)
async def handle_midtrans_webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_reconciler),
) -> WebhookResponse:
    # Raw body: the payload is not trusted until its signature is checked
    try:
        payload = json.loads(await request.body())
    except ValueError:
        raise InvalidRequestError("Notification body must be JSON")
    if not isinstance(payload, dict):
        raise InvalidRequestError("Notification body must be a JSON object")

    await reconciler.handle_notification(payload, request_id(request))
    return WebhookResponse(message="OK")
