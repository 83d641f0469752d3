import uuid
from datetime import datetime

from pydantic import Field

from canteen.schemas.common import CamelModel


class FeedbackCreate(CamelModel):
    order_id: uuid.UUID
    rating: int = Field(ge=1, le=5)
    comment: str | None = None


class FeedbackResponse(CamelModel):
    id: uuid.UUID
    order_id: uuid.UUID
    user_id: uuid.UUID
    user_name: str
    rating: int
    comment: str | None
    created_at: datetime


class CreateFeedbackResponse(CamelModel):
    message: str
    feedback: FeedbackResponse


class ListFeedbacksResponse(CamelModel):
    feedbacks: list[FeedbackResponse]
