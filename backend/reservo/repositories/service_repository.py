# backend/reservo/repositories/service_repository.py
"""
Service Repository for the Reservo booking engine.

Loads services together with their business and resource pool, and takes
the row lock that serializes admission commits per service.
"""

import logging
from typing import Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload, selectinload

from ..core.exceptions import RepositoryException
from ..models.service import Service
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ServiceRepository(BaseRepository[Service]):
    def __init__(self, db: Session):
        super().__init__(db, Service)
        self.logger = logging.getLogger(__name__)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(joinedload(Service.business), selectinload(Service.resources))

    def get_active_service(self, service_id: str) -> Optional[Service]:
        """Active service with business and resources loaded, else None."""
        try:
            return cast(
                Optional[Service],
                self._apply_eager_loading(self.db.query(Service))
                .filter(Service.id == service_id, Service.is_active.is_(True))
                .first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting active service: {str(e)}")
            raise RepositoryException(f"Failed to get service: {str(e)}")

    def lock_for_update(self, service_id: str) -> None:
        """
        Take a row lock on the service for the current transaction.

        Serializes concurrent admission commits for the same service on
        PostgreSQL. SQLite has no row locks; the unique indexes guard it.
        """
        if self.dialect_name != "postgresql":
            return
        try:
            self.db.query(Service.id).filter(Service.id == service_id).with_for_update().first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking service {service_id}: {str(e)}")
            raise RepositoryException(f"Failed to lock service: {str(e)}") from e
