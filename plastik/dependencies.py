from typing import AsyncGenerator, Callable

from fastapi import BackgroundTasks, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from plastik.core.config import Settings, get_settings
from plastik.database import async_session
from plastik.services.cache import CacheBackend
from plastik.services.checkout_service import CheckoutService
from plastik.services.discogs.inventory import InventoryService
from plastik.services.order_service import OrderService
from plastik.services.webhook_processor import StripeWebhookProcessor


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_factory() -> Callable[[], AsyncSession]:
    """Session factory for work that outlives the request (background decrements)."""
    return async_session


def get_cache(request: Request) -> CacheBackend:
    return request.app.state.cache


def get_inventory_service(request: Request) -> InventoryService:
    return request.app.state.inventory_service


def get_order_service(
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    inventory: InventoryService = Depends(get_inventory_service),
    session_factory: Callable[[], AsyncSession] = Depends(get_session_factory),
) -> OrderService:
    return OrderService(
        db,
        inventory,
        session_factory=session_factory,
        schedule=background_tasks.add_task,
    )


def get_webhook_processor(
    order_service: OrderService = Depends(get_order_service),
    settings: Settings = Depends(get_settings),
) -> StripeWebhookProcessor:
    return StripeWebhookProcessor(
        order_service,
        settings.STRIPE_WEBHOOK_SECRET,
        tolerance=settings.STRIPE_WEBHOOK_TOLERANCE,
    )


def get_checkout_service(
    inventory: InventoryService = Depends(get_inventory_service),
    settings: Settings = Depends(get_settings),
) -> CheckoutService:
    return CheckoutService(inventory, settings.STRIPE_SECRET_KEY, currency=settings.STRIPE_CURRENCY)
