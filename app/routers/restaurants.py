import logging
import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.routers.deps import tenant_id
from app.schemas.category import CategoryCreate, CategoryResponse
from app.schemas.menu_item import MenuItemCreate, MenuItemResponse
from app.schemas.restaurant import RestaurantCreate, RestaurantResponse
from app.services import restaurant_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=RestaurantResponse, status_code=status.HTTP_201_CREATED)
async def create_restaurant(
    body: RestaurantCreate,
    db: AsyncSession = Depends(get_db),
) -> RestaurantResponse:
    restaurant = await restaurant_service.create_restaurant(db, body)
    return RestaurantResponse.model_validate(restaurant)


@router.get("/{restaurant_id}", response_model=RestaurantResponse)
async def get_restaurant(
    restaurant_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> RestaurantResponse:
    restaurant = await restaurant_service.get_restaurant(db, restaurant_id)
    return RestaurantResponse.model_validate(restaurant)


@router.post(
    "/{restaurant_id}/menu-items",
    response_model=MenuItemResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_menu_item(
    body: MenuItemCreate,
    restaurant_id: uuid.UUID = Depends(tenant_id),
    db: AsyncSession = Depends(get_db),
) -> MenuItemResponse:
    item = await restaurant_service.create_menu_item(db, restaurant_id, body)
    return MenuItemResponse.model_validate(item)


@router.get("/{restaurant_id}/menu-items", response_model=list[MenuItemResponse])
async def list_menu_items(
    restaurant_id: uuid.UUID = Depends(tenant_id),
    category_id: uuid.UUID | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> list[MenuItemResponse]:
    items = await restaurant_service.list_menu_items(db, restaurant_id, category_id)
    return [MenuItemResponse.model_validate(item) for item in items]


@router.post(
    "/{restaurant_id}/categories",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_category(
    body: CategoryCreate,
    restaurant_id: uuid.UUID = Depends(tenant_id),
    db: AsyncSession = Depends(get_db),
) -> CategoryResponse:
    category = await restaurant_service.create_category(db, restaurant_id, body)
    return CategoryResponse.model_validate(category)


@router.get("/{restaurant_id}/categories", response_model=list[CategoryResponse])
async def list_categories(
    restaurant_id: uuid.UUID = Depends(tenant_id),
    db: AsyncSession = Depends(get_db),
) -> list[CategoryResponse]:
    categories = await restaurant_service.list_categories(db, restaurant_id)
    return [CategoryResponse.model_validate(c) for c in categories]
