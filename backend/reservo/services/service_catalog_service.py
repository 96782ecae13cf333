# backend/reservo/services/service_catalog_service.py
"""
Service Catalog Service: reads and policy updates for bookable services.

Updates go through the ServiceUpdate command, which enumerates every
mutable field and rejects anything else.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException
from ..models.service import Service
from ..repositories import RepositoryFactory
from ..repositories.service_repository import ServiceRepository
from ..schemas.service import ServiceUpdate
from .base import BaseService

logger = logging.getLogger(__name__)


class ServiceCatalogService(BaseService):
    def __init__(self, db: Session, repository: Optional[ServiceRepository] = None):
        super().__init__(db)
        self.logger = logging.getLogger(__name__)
        self.repository = repository or RepositoryFactory.create_service_repository(db)

    def get_service(self, service_id: str) -> Service:
        service = self.repository.get_by_id(service_id)
        if service is None:
            raise NotFoundException(
                "Service not found", code="SERVICE_NOT_FOUND", details={"service_id": service_id}
            )
        return service

    @BaseService.measure_operation("update_service")
    def update_service(self, service_id: str, update: ServiceUpdate) -> Service:
        """Apply the fields present in ``update``; others are left untouched."""
        changes = update.changes()
        with self.transaction():
            service = self.repository.update(service_id, **changes)
            if service is None:
                raise NotFoundException(
                    "Service not found", code="SERVICE_NOT_FOUND", details={"service_id": service_id}
                )
        self.log_operation("update_service", service_id=service_id, fields=sorted(changes))
        return service
