"""
Inventory ledger for MenuItem.stock.

Stock is never read-then-written: reservation is a single conditional
UPDATE (``stock = stock - q WHERE stock >= q``) and release is an
unconditional increment. Both run inside the caller's transaction so they
commit or roll back together with the order rows.
"""

import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.errors import InsufficientStockError, NotFoundError
from canteen.models.menu_item import MenuItem

logger = logging.getLogger(__name__)


class InventoryLedger:
    async def reserve(self, db: AsyncSession, menu_item_id: uuid.UUID, quantity: int) -> None:
        result = await db.execute(
            update(MenuItem)
            .where(
                MenuItem.id == menu_item_id,
                MenuItem.deleted_at.is_(None),
                MenuItem.stock >= quantity,
            )
            .values(stock=MenuItem.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return

        # Lost a race with a concurrent order, or the item was removed
        row = (
            await db.execute(
                select(MenuItem.name, MenuItem.stock).where(
                    MenuItem.id == menu_item_id, MenuItem.deleted_at.is_(None)
                )
            )
        ).first()
        if row is None:
            raise NotFoundError(f"Menu(s) not found: {menu_item_id}")
        logger.info(
            "Stock reservation rejected",
            extra={"menu_item_id": str(menu_item_id), "available": row.stock, "requested": quantity},
        )
        raise InsufficientStockError(row.name, row.stock, quantity)

    async def release(self, db: AsyncSession, menu_item_id: uuid.UUID, quantity: int) -> None:
        await db.execute(
            update(MenuItem)
            .where(MenuItem.id == menu_item_id)
            .values(stock=MenuItem.stock + quantity)
            .execution_options(synchronize_session=False)
        )
        logger.debug(
            "Stock released",
            extra={"menu_item_id": str(menu_item_id), "quantity": quantity},
        )
