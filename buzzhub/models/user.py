"""User models as resolved from the identity provider."""

from datetime import datetime

from pydantic import BaseModel, Field

from buzzhub.models.message import utcnow


class User(BaseModel):
    """A user known to the messaging backend."""

    id: str = Field(..., description="Identity provider user identifier")
    username: str | None = Field(default=None, description="Unique public handle")
    email: str | None = None
    name: str | None = None
    image: str | None = None

    created_at: datetime = Field(default_factory=utcnow)
