import uuid
from decimal import Decimal

from pydantic import BaseModel, Field


class MenuItemCreate(BaseModel):
    category_id: uuid.UUID | None = None
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    price: Decimal = Field(ge=0, decimal_places=2)
    is_available: bool = True


class MenuItemResponse(BaseModel):
    id: uuid.UUID
    restaurant_id: uuid.UUID
    category_id: uuid.UUID | None
    name: str
    description: str | None
    price: Decimal
    is_available: bool

    model_config = {"from_attributes": True}
