import uuid

from fastapi import APIRouter, Depends, Response, status

from canteen.auth import Identity, require_roles
from canteen.dependencies import get_feedback_service
from canteen.models.user import UserRole
from canteen.schemas.feedback import CreateFeedbackResponse, FeedbackCreate, ListFeedbacksResponse
from canteen.services.feedback_service import FeedbackService

router = APIRouter()


@router.post("", response_model=CreateFeedbackResponse, status_code=status.HTTP_201_CREATED)
async def create_feedback(
    body: FeedbackCreate,
    identity: Identity = Depends(require_roles(UserRole.USER)),
    service: FeedbackService = Depends(get_feedback_service),
) -> CreateFeedbackResponse:
    feedback = await service.create_feedback(identity, body)
    return CreateFeedbackResponse(message="Feedback created successfully", feedback=feedback)


@router.get("", response_model=ListFeedbacksResponse)
async def list_feedbacks(
    identity: Identity = Depends(require_roles(UserRole.USER, UserRole.CANTEEN_OWNER)),
    service: FeedbackService = Depends(get_feedback_service),
) -> ListFeedbacksResponse:
    return ListFeedbacksResponse(feedbacks=await service.list_feedbacks(identity))


@router.delete("/{feedback_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_feedback(
    feedback_id: uuid.UUID,
    identity: Identity = Depends(require_roles(UserRole.CANTEEN_OWNER)),
    service: FeedbackService = Depends(get_feedback_service),
) -> Response:
    await service.delete_feedback(identity, feedback_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
