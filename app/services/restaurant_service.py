import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import DuplicateSlugError, NotFoundError
from app.models.category import Category
from app.models.menu_item import MenuItem
from app.models.restaurant import Restaurant
from app.schemas.category import CategoryCreate
from app.schemas.menu_item import MenuItemCreate
from app.schemas.restaurant import RestaurantCreate

logger = logging.getLogger(__name__)


async def get_restaurant(db: AsyncSession, restaurant_id: uuid.UUID) -> Restaurant:
    restaurant = await db.get(Restaurant, restaurant_id)
    if restaurant is None:
        raise NotFoundError("Restaurant", restaurant_id)
    return restaurant


async def create_restaurant(db: AsyncSession, data: RestaurantCreate) -> Restaurant:
    existing = await db.execute(select(Restaurant.id).where(Restaurant.slug == data.slug))
    if existing.first() is not None:
        raise DuplicateSlugError(data.slug)

    restaurant = Restaurant(**data.model_dump())
    db.add(restaurant)
    await db.commit()
    logger.info(
        "Restaurant created",
        extra={"restaurant_id": str(restaurant.id), "slug": restaurant.slug},
    )
    return restaurant


# ---------------------------------------------------------------------------
# Menu
# ---------------------------------------------------------------------------


async def create_category(
    db: AsyncSession, restaurant_id: uuid.UUID, data: CategoryCreate
) -> Category:
    category = Category(restaurant_id=restaurant_id, **data.model_dump())
    db.add(category)
    await db.commit()
    logger.info(
        "Category created",
        extra={"category_id": str(category.id), "restaurant_id": str(restaurant_id)},
    )
    return category


async def list_categories(db: AsyncSession, restaurant_id: uuid.UUID) -> list[Category]:
    """Active categories in menu order."""
    result = await db.execute(
        select(Category)
        .where(Category.restaurant_id == restaurant_id, Category.is_active.is_(True))
        .order_by(Category.sort_order, Category.name)
    )
    return list(result.scalars().all())


async def create_menu_item(
    db: AsyncSession, restaurant_id: uuid.UUID, data: MenuItemCreate
) -> MenuItem:
    if data.category_id is not None:
        # A category of another restaurant is reported the same as a missing one.
        category = await db.get(Category, data.category_id)
        if category is None or category.restaurant_id != restaurant_id:
            raise NotFoundError("Category", data.category_id)

    item = MenuItem(restaurant_id=restaurant_id, **data.model_dump())
    db.add(item)
    await db.commit()
    return item


async def list_menu_items(
    db: AsyncSession, restaurant_id: uuid.UUID, category_id: uuid.UUID | None = None
) -> list[MenuItem]:
    query = select(MenuItem).where(MenuItem.restaurant_id == restaurant_id)
    if category_id is not None:
        query = query.where(MenuItem.category_id == category_id)
    result = await db.execute(query.order_by(MenuItem.name))
    return list(result.scalars().all())
