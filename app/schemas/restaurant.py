import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class RestaurantCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    slug: str = Field(min_length=1, max_length=120, pattern=r"^[a-z0-9-]+$")
    description: str | None = None
    currency: str = "TRY"
    theme_color: str = "#f97316"
    logo_url: str | None = None
    working_hours: dict[str, Any] | None = None


class RestaurantResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    description: str | None
    currency: str
    theme_color: str
    logo_url: str | None
    working_hours: dict[str, Any] | None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}
