"""Bulk import of listings into the ``imported_properties`` table."""

import logging
from datetime import datetime
from typing import Any, Iterable, List, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from property_ingest.db import ImportedPropertyDB, utcnow
from property_ingest.errors import InvalidQuery, PersistenceError
from property_ingest.models import Property
from property_ingest.services.normalizer import normalize

logger = logging.getLogger(__name__)


class PropertyImporter:
    """Saves listings on behalf of an owner."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def import_properties(
        self,
        properties: Iterable[Union[Property, Any]],
        owner_id: str,
    ) -> int:
        """
        Insert listings for ``owner_id`` in a single transaction.

        Either every listing is written or none is. Raw payloads are
        normalized first, so any JSON shape the normalizer accepts can be
        imported.

        Args:
            properties: Property records or raw listing payloads.
            owner_id: Identifier of the user the listings belong to.

        Returns:
            Number of listings imported.

        Raises:
            InvalidQuery: If ``owner_id`` is blank.
            PersistenceError: If the transaction fails.
        """
        owner_id = (owner_id or "").strip()
        if not owner_id:
            raise InvalidQuery("Owner id is required.")

        records = [p if isinstance(p, Property) else normalize(p) for p in properties]
        if not records:
            return 0

        now = utcnow()
        rows = [self._to_row(record, owner_id, now) for record in records]

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add_all(rows)
        except SQLAlchemyError as e:
            logger.error("Import of %d properties for %s failed: %s", len(rows), owner_id, e)
            raise PersistenceError("The properties could not be imported.") from e

        logger.info("Imported %d properties for owner %s", len(rows), owner_id)
        return len(rows)

    @staticmethod
    def _to_row(prop: Property, owner_id: str, now: datetime) -> ImportedPropertyDB:
        return ImportedPropertyDB(
            property_id=prop.id,
            owner_id=owner_id,
            source_url=prop.source_url,
            address=prop.address,
            postcode=prop.postcode,
            price=prop.price,
            property_type=prop.property_type,
            bedrooms=prop.bedrooms,
            bathrooms=prop.bathrooms,
            main_image_url=prop.main_image_url,
            is_synthetic=prop.is_synthetic,
            data=prop.model_dump(mode="json", by_alias=True),
            created_at=now,
            updated_at=now,
        )

    async def list_for_owner(self, owner_id: str) -> List[Property]:
        """Listings previously imported by ``owner_id``, oldest first."""
        try:
            async with self.session_factory() as session:
                rows = await session.scalars(
                    select(ImportedPropertyDB)
                    .where(ImportedPropertyDB.owner_id == owner_id)
                    .order_by(ImportedPropertyDB.id)
                )
                return [Property.model_validate(row.data) for row in rows]
        except SQLAlchemyError as e:
            logger.error("Could not read imports for %s: %s", owner_id, e)
            raise PersistenceError("Imported properties could not be read.") from e
