"""CRUD for ticket categories, product types and priorities."""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.models.ticket_attribute import TicketCategory, TicketPriority, TicketProductType

logger = logging.getLogger(__name__)

AttributeModel = type[TicketCategory] | type[TicketProductType] | type[TicketPriority]

ATTRIBUTE_MODELS: dict[str, AttributeModel] = {
    "categories": TicketCategory,
    "product-types": TicketProductType,
    "priorities": TicketPriority,
}


class AttributeNotFoundError(Exception):
    pass


class AttributeExistsError(Exception):
    pass


class TicketAttributeService:
    """Name-only lookup records, parameterised by model class."""

    def __init__(self, db: AsyncSession, model: AttributeModel):
        self.db = db
        self.model = model

    async def list(self):
        result = await self.db.execute(select(self.model).order_by(self.model.id))
        return list(result.scalars().all())

    async def get(self, attribute_id: int):
        item = await self.db.get(self.model, attribute_id)
        if item is None:
            raise AttributeNotFoundError(f"{self.model.__name__} {attribute_id} not found")
        return item

    async def _ensure_unique(self, name: str, exclude_id: int | None = None) -> None:
        query = select(self.model.id).where(func.lower(self.model.name) == name.lower())
        if exclude_id is not None:
            query = query.where(self.model.id != exclude_id)
        if (await self.db.execute(query)).first() is not None:
            raise AttributeExistsError(f"'{name}' already exists")

    async def create(self, name: str):
        name = name.strip()
        await self._ensure_unique(name)
        item = self.model(name=name)
        self.db.add(item)
        await self.db.flush()
        logger.info(f"Created {self.model.__name__} {name!r}")
        return item

    async def update(self, attribute_id: int, name: str):
        item = await self.get(attribute_id)
        name = name.strip()
        await self._ensure_unique(name, exclude_id=attribute_id)
        item.name = name
        await self.db.flush()
        return item

    async def delete(self, attribute_id: int) -> None:
        item = await self.get(attribute_id)
        await self.db.delete(item)
        await self.db.flush()
        logger.info(f"Deleted {self.model.__name__} {attribute_id}")
