from typing import Dict, Optional, Union

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from core.aggregator import Aggregator
from core.bootstrap import bootstrap
from core.errors import ConfigurationError, ValidationError
from db.database import get_async_session
from db.inventory.catalog import CatalogStore
from schemas.inventory import BootstrapRead, ErrorRead, ItemRead, TransactionCreate, TransactionResult

router = APIRouter()

BOOTSTRAP_ACTIONS = {"bootstrap", "init"}

ERROR_RESPONSES = {status: {"model": ErrorRead} for status in (400, 401, 404, 409, 500)}


async def get_catalog(
    request: Request,
    db: AsyncSession = Depends(get_async_session),
) -> CatalogStore:
    """Catalog store with a loaded schema; retries a schema load that failed at startup."""
    catalog: CatalogStore = request.app.state.catalog
    try:
        catalog.schema
    except ConfigurationError:
        await catalog.reload(db)
    return catalog


def get_aggregator(request: Request) -> Aggregator:
    return request.app.state.aggregator


@router.get(
    "/",
    response_model=Union[BootstrapRead, ItemRead],
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
async def query(
    action: Optional[str] = None,
    identity: Optional[str] = None,
    email: Optional[str] = None,
    code: Optional[str] = None,
    db: AsyncSession = Depends(get_async_session),
    catalog: CatalogStore = Depends(get_catalog),
):
    """
    Read-side entry point.

    - `action=bootstrap&identity=...` (or the older `action=init&email=...`)
      returns user, locations and the full item list for a client session.
    - `code=...` is the stateless single-item lookup.
    """
    if action:
        if action.strip().lower() not in BOOTSTRAP_ACTIONS:
            raise ValidationError(f"Unknown action '{action}'")
        return await bootstrap(db, catalog, identity if identity is not None else (email or ""))

    if code is not None:
        row = await catalog.find_item(db, code)
        if row is None:
            error = ErrorRead(error="not found", message=f"Item code '{code}' not found")
            return JSONResponse(error.model_dump(), status_code=404)
        return catalog.schema.item_to_dict(row)

    raise ValidationError("Specify action=bootstrap&identity=... or code=...")


@router.post(
    "/",
    response_model=TransactionResult,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
async def submit_transaction(
    payload: TransactionCreate,
    catalog: CatalogStore = Depends(get_catalog),
    aggregator: Aggregator = Depends(get_aggregator),
) -> Dict:
    """Apply one signed-quantity transaction and return old/new quantities."""
    return await aggregator.submit(payload.model_dump())
