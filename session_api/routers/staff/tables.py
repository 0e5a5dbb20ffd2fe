"""
Staff table administration. ADMIN or MANAGER only.
"""

from fastapi import APIRouter, Depends, status

from shared.config.constants import MANAGEMENT_ROLES
from shared.security.auth import current_staff_context, require_restaurant, require_roles
from shared.utils.schemas import CreateTableRequest, TableOutput
from session_api.dependencies import get_table_registry
from session_api.services.domain import TableRegistry
from session_api.services.session_view import build_table

router = APIRouter(
    prefix="/tables",
    tags=["staff-tables"],
    dependencies=[Depends(current_staff_context)],
)


@router.post("", response_model=TableOutput, status_code=status.HTTP_201_CREATED)
def create_table(
    body: CreateTableRequest,
    ctx: dict = Depends(current_staff_context),
    tables: TableRegistry = Depends(get_table_registry),
) -> TableOutput:
    """Register a table; its QR code is generated here."""
    require_roles(ctx, MANAGEMENT_ROLES)
    require_restaurant(ctx, body.restaurant_id)
    table = tables.create_table(
        body.restaurant_id,
        body.table_number,
        capacity=body.capacity,
        location_description=body.location_description,
    )
    return build_table(table)


@router.get("/restaurant/{restaurant_id}", response_model=list[TableOutput])
def list_tables(
    restaurant_id: str,
    ctx: dict = Depends(current_staff_context),
    tables: TableRegistry = Depends(get_table_registry),
) -> list[TableOutput]:
    require_restaurant(ctx, restaurant_id)
    return [build_table(table) for table in tables.list_tables(restaurant_id)]


def _set_enabled(tables: TableRegistry, ctx: dict, table_id: str, enabled: bool) -> TableOutput:
    require_roles(ctx, MANAGEMENT_ROLES)
    require_restaurant(ctx, tables.get_table(table_id).restaurant_id)
    return build_table(tables.set_enabled(table_id, enabled))


@router.post("/{table_id}/disable", response_model=TableOutput)
def disable_table(
    table_id: str,
    ctx: dict = Depends(current_staff_context),
    tables: TableRegistry = Depends(get_table_registry),
) -> TableOutput:
    """Take a table out of service. Refused while a session is open there."""
    return _set_enabled(tables, ctx, table_id, False)


@router.post("/{table_id}/enable", response_model=TableOutput)
def enable_table(
    table_id: str,
    ctx: dict = Depends(current_staff_context),
    tables: TableRegistry = Depends(get_table_registry),
) -> TableOutput:
    return _set_enabled(tables, ctx, table_id, True)
