"""
Resource Store access.

Narrow read/write contract over the per-category resource tables. Rows are
validated into typed records here, so nothing above this layer sees an
untyped row.
"""

from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from finops_agent.core.exceptions import ConfigurationError, PartialFetchError
from finops_agent.models.resource import RESOURCE_MODELS, ResourceCategory, Volume
from finops_agent.schemas.resource import RECORD_TYPES, ResourceRecord

logger = structlog.get_logger()


def parse_category(value: str) -> ResourceCategory:
    """
    Parse a category from a table name or URL slug ("rds-instances").

    Raises:
        ValueError: If the category is unknown
    """
    return ResourceCategory(value.replace("-", "_"))


class ResourceStore:
    """Typed access to the resource tables through one database session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def ping(self) -> None:
        """
        Verify the store is reachable.

        Raises:
            ConfigurationError: If the database cannot be reached or rejects the credentials
        """
        try:
            await self.db.execute(text("SELECT 1"))
        except (DBAPIError, OSError) as e:
            logger.error("resource_store.unreachable", error=str(e))
            raise ConfigurationError(f"Resource store unreachable: {e}") from e

    def _to_record(self, category: ResourceCategory, row: Any) -> ResourceRecord:
        return RECORD_TYPES[category].model_validate(row)

    async def _get_row(self, category: ResourceCategory, resource_id: str) -> Any:
        model = RESOURCE_MODELS[category]
        result = await self.db.execute(
            select(model)
            .where(model.id == resource_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def fetch(self, category: ResourceCategory | str) -> list[ResourceRecord]:
        """
        Read every resource of a category as typed records.

        Rows that fail validation are skipped with a warning.

        Raises:
            PartialFetchError: If the category cannot be read at all
        """
        category = ResourceCategory(category)
        model = RESOURCE_MODELS[category]
        try:
            result = await self.db.execute(select(model).order_by(model.id))
            rows = result.scalars().all()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PartialFetchError(category.value, str(e)) from e

        records: list[ResourceRecord] = []
        for row in rows:
            try:
                records.append(self._to_record(category, row))
            except ValidationError as e:
                logger.warning(
                    "resource_store.invalid_row",
                    category=category.value,
                    resource_id=row.id,
                    errors=e.error_count(),
                )
        return records

    async def get(self, category: ResourceCategory | str, resource_id: str) -> ResourceRecord | None:
        """Re-read one resource from the database, bypassing the identity map."""
        category = ResourceCategory(category)
        row = await self._get_row(category, resource_id)
        if row is None:
            return None
        return self._to_record(category, row)

    async def update(
        self, category: ResourceCategory | str, resource_id: str, fields: dict[str, Any]
    ) -> ResourceRecord | None:
        """
        Update fields on one resource.

        Args:
            category: Resource category
            resource_id: Resource id
            fields: Column values to set

        Returns:
            Updated record, or None if the resource no longer exists
        """
        category = ResourceCategory(category)
        row = await self._get_row(category, resource_id)
        if row is None:
            return None

        for field, value in fields.items():
            setattr(row, field, value)

        await self.db.commit()
        await self.db.refresh(row)
        return self._to_record(category, row)

    async def delete(self, category: ResourceCategory | str, resource_id: str) -> bool:
        """Delete one resource. Returns False if it was already gone."""
        category = ResourceCategory(category)
        row = await self._get_row(category, resource_id)
        if row is None:
            return False

        await self.db.delete(row)
        await self.db.commit()
        return True

    async def live_volume_ids(self) -> frozenset[str]:
        """Ids of volumes that still exist."""
        result = await self.db.execute(select(Volume.id).where(Volume.state != "deleted"))
        return frozenset(result.scalars().all())
