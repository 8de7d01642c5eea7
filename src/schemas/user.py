from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserPublic(BaseModel):
    id: UUID = Field(..., description="Unique identifier for the user")
    email: EmailStr = Field(..., description="User's email address")
    username: str = Field(..., min_length=3, max_length=32, description="Username")
    created_at: datetime | None = Field(default=None, description="Signup time")

    model_config = ConfigDict(from_attributes=True)
