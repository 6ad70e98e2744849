"""Request and response schemas for photo comments."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CommentCreate(BaseModel):
    user_initials: str = Field(..., min_length=1, max_length=5)
    content: str = Field(..., min_length=1, max_length=700)


class CommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    photo_id: str
    user_initials: str
    content: str
    created_at: datetime
    likes: int
    dislikes: int
