from pydantic import BaseModel


class PlatformStats(BaseModel):
    """Platform-wide counts for the super-admin overview."""

    restaurants: int
    active_restaurants: int
    orders: int
    orders_by_status: dict[str, int]
