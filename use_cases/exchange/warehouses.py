"""
Warehouse Directory.

Administrator CRUD for warehouses, plus the active-warehouse lookup used
when an exchange is approved.
"""

import logging
from typing import Any, Dict, List, Optional

from core.errors import NotFoundError, ValidationError

from .access import AccessControl
from .domain.models import Warehouse
from .domain.services import WarehouseBuilder
from .repositories import WarehouseRepository

logger = logging.getLogger(__name__)


class WarehouseDirectory:

    def __init__(self, repository: WarehouseRepository, access: AccessControl):
        self._repo = repository
        self._access = access
        self._builder = WarehouseBuilder()

    def resolve_active(self, warehouse_id: Optional[str]) -> Warehouse:
        """
        The warehouse an approved item ships to.

        A missing, unknown or inactive warehouse is an input problem of the
        approval, so it is reported as a ValidationError.
        """
        if not warehouse_id:
            raise ValidationError("Please select a warehouse for shipping the product")
        warehouse = self._repo.get_by_id(warehouse_id)
        if warehouse is None:
            raise ValidationError(f"Warehouse {warehouse_id} does not exist")
        if not warehouse.is_active:
            raise ValidationError(f"Warehouse {warehouse.name} is not active")
        return warehouse

    def list(self, admin_id: str, active_only: bool = False) -> List[Warehouse]:
        self._access.require_admin(admin_id)
        return self._repo.list_all(active_only=active_only)

    def get(self, admin_id: str, warehouse_id: str) -> Warehouse:
        self._access.require_admin(admin_id)
        warehouse = self._repo.get_by_id(warehouse_id)
        if warehouse is None:
            raise NotFoundError(f"Warehouse {warehouse_id} not found")
        return warehouse

    def create(self, admin_id: str, data: Dict[str, Any]) -> Warehouse:
        self._access.require_admin(admin_id)
        warehouse = self._repo.add(self._builder.execute(data))
        logger.info(f"Warehouse {warehouse.id} ({warehouse.name}) created by {admin_id}")
        return warehouse

    def update(self, admin_id: str, warehouse_id: str, data: Dict[str, Any]) -> Warehouse:
        existing = self.get(admin_id, warehouse_id)
        changes = {k: v for k, v in data.items() if k not in ("id", "createdAt", "updatedAt")}
        warehouse = self._repo.save(self._builder.execute(changes, existing=existing))
        logger.info(f"Warehouse {warehouse.id} updated by {admin_id}")
        return warehouse

    def delete(self, admin_id: str, warehouse_id: str) -> None:
        self._access.require_admin(admin_id)
        if not self._repo.delete(warehouse_id):
            raise NotFoundError(f"Warehouse {warehouse_id} not found")
        logger.info(f"Warehouse {warehouse_id} deleted by {admin_id}")
