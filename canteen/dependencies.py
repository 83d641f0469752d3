from fastapi import Request

from canteen.container import Services
from canteen.services.feedback_service import FeedbackService
from canteen.services.order_service import OrderService
from canteen.services.reconciler import WebhookReconciler


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_order_service(request: Request) -> OrderService:
    return get_services(request).orders


def get_reconciler(request: Request) -> WebhookReconciler:
    return get_services(request).reconciler


def get_feedback_service(request: Request) -> FeedbackService:
    return get_services(request).feedback


def request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")
