"""
Table Registry.

Maps a physical table (QR code) to its restaurant and to the open session
seated there. The session pointer is written only by the session lifecycle,
through occupy() and release(), inside the lifecycle's own transaction.
"""

from __future__ import annotations

import secrets

from sqlalchemy import select
from sqlalchemy.orm import Session

from shared.config.constants import SessionStatus, TableStatus
from shared.config.logging import get_logger
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import ConflictError, TableNotFoundError, ValidationError
from session_api.models import DiningSession, Restaurant, RestaurantTable

logger = get_logger(__name__)

QR_CODE_BYTES = 12


def generate_qr_code() -> str:
    """Opaque, unguessable token printed on the table's QR sticker."""
    return secrets.token_urlsafe(QR_CODE_BYTES)


class TableRegistry:
    """Domain service for tables and their current-session pointer."""

    def __init__(self, db: Session):
        self._db = db

    # =========================================================================
    # Read path
    # =========================================================================

    def resolve_by_qr_code(self, code: str) -> RestaurantTable:
        """
        Resolve a scanned QR code.

        Raises TableNotFoundError if the code is unknown or the table is
        disabled or out of service.
        """
        table = self._db.scalar(
            select(RestaurantTable).where(RestaurantTable.qr_code == code)
        )
        if table is None or not table.enabled:
            raise TableNotFoundError(code)
        return table

    def get_table(self, table_id: str, *, for_update: bool = False) -> RestaurantTable:
        stmt = select(RestaurantTable).where(RestaurantTable.id == table_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        table = self._db.scalar(stmt)
        if table is None:
            raise TableNotFoundError(table_id)
        return table

    def current_session(self, table_id: str) -> str | None:
        return self.get_table(table_id).current_session_id

    def list_tables(self, restaurant_id: str) -> list[RestaurantTable]:
        return list(
            self._db.scalars(
                select(RestaurantTable)
                .where(RestaurantTable.restaurant_id == restaurant_id)
                .order_by(RestaurantTable.table_number)
            ).all()
        )

    # =========================================================================
    # Admin
    # =========================================================================

    def create_table(
        self,
        restaurant_id: str,
        table_number: str,
        capacity: int = 4,
        location_description: str | None = None,
    ) -> RestaurantTable:
        if self._db.get(Restaurant, restaurant_id) is None:
            raise ValidationError("Unknown restaurant", restaurant_id=restaurant_id)
        if capacity < 1:
            raise ValidationError("Capacity must be at least 1", field="capacity")

        existing = self._db.scalar(
            select(RestaurantTable.id).where(
                RestaurantTable.restaurant_id == restaurant_id,
                RestaurantTable.table_number == table_number,
            )
        )
        if existing is not None:
            raise ConflictError(f"Table {table_number} already exists", restaurant_id=restaurant_id)

        table = RestaurantTable(
            restaurant_id=restaurant_id,
            table_number=table_number,
            capacity=capacity,
            location_description=location_description,
            qr_code=generate_qr_code(),
            status=TableStatus.AVAILABLE,
        )
        self._db.add(table)
        safe_commit(self._db)
        self._db.refresh(table)

        logger.info("Table created", table_id=table.id, restaurant_id=restaurant_id, number=table_number)
        return table

    def set_enabled(self, table_id: str, enabled: bool) -> RestaurantTable:
        """Enable or take a table out of service. A seated table cannot be disabled."""
        table = self.get_table(table_id, for_update=True)
        if not enabled and table.current_session_id is not None:
            raise ConflictError(
                "Table has an open session and cannot be disabled",
                table_id=table_id,
                session_id=table.current_session_id,
            )

        table.is_active = enabled
        if enabled:
            table.status = TableStatus.OCCUPIED if table.current_session_id else TableStatus.AVAILABLE
        else:
            table.status = TableStatus.OUT_OF_SERVICE
        safe_commit(self._db)
        self._db.refresh(table)

        logger.info("Table availability changed", table_id=table_id, enabled=enabled)
        return table

    # =========================================================================
    # Pointer writes (lifecycle only, caller commits)
    # =========================================================================

    def occupy(self, table: RestaurantTable, session_id: str) -> None:
        table.current_session_id = session_id
        table.status = TableStatus.OCCUPIED

    def release(self, table: RestaurantTable, session_id: str) -> bool:
        """
        Clear the pointer if it still references ``session_id``.
        Returns True when something changed.
        """
        if table.current_session_id != session_id:
            return False
        table.current_session_id = None
        if table.status == TableStatus.OCCUPIED:
            table.status = TableStatus.AVAILABLE
        return True

    def reconcile_pointers(self) -> int:
        """
        Clear pointers that reference a terminal or missing session and
        repair table status. Returns the number of tables fixed.
        """
        fixed = 0
        tables = self._db.scalars(
            select(RestaurantTable)
            .where(RestaurantTable.current_session_id.is_not(None))
            .with_for_update()
        ).all()
        for table in tables:
            session = self._db.get(DiningSession, table.current_session_id)
            if session is None or session.status in SessionStatus.TERMINAL:
                logger.warning(
                    "Clearing stale table pointer",
                    table_id=table.id,
                    session_id=table.current_session_id,
                    session_status=session.status if session else None,
                )
                self.release(table, table.current_session_id)
                fixed += 1
            elif table.status == TableStatus.AVAILABLE:
                table.status = TableStatus.OCCUPIED
                fixed += 1

        self._db.flush()

        # Open sessions whose table lost its pointer
        orphans = self._db.execute(
            select(DiningSession, RestaurantTable)
            .join(RestaurantTable, DiningSession.table_id == RestaurantTable.id)
            .where(
                DiningSession.status.in_(SessionStatus.OPEN),
                RestaurantTable.current_session_id.is_(None),
            )
        ).all()
        for session, table in orphans:
            logger.warning("Restoring missing table pointer", table_id=table.id, session_id=session.id)
            self.occupy(table, session.id)
            fixed += 1

        safe_commit(self._db)
        if fixed:
            logger.info("Table pointers reconciled", fixed=fixed)
        return fixed
