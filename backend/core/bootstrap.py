import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import Unauthorized
from db.inventory.catalog import CatalogStore
from db.users import AllowedUser

logger = structlog.get_logger(__name__)


async def find_allowed_user(db: AsyncSession, identity: str):
    key = (identity or "").strip().lower()
    if not key:
        return None
    res = await db.execute(
        select(AllowedUser).where(func.lower(func.trim(AllowedUser.email)) == key)
    )
    return res.scalars().first()


async def bootstrap(db: AsyncSession, catalog: CatalogStore, identity: str) -> dict:
    """Everything a client session needs, in one response.

    An identity missing from the allow-list gets Unauthorized and nothing else:
    no locations and no items are read.
    """
    user = await find_allowed_user(db, identity)
    if user is None:
        logger.warning("bootstrap_unauthorized", identity=(identity or "").strip())
        raise Unauthorized(f"User {(identity or '').strip() or '(empty)'} is not authorized")

    locations = await catalog.list_locations(db)
    schema = catalog.schema
    items = [schema.item_to_dict(row) for row in await catalog.all_items(db)]

    logger.info(
        "bootstrap_served",
        identity=user.email,
        locations=len(locations),
        items=len(items),
    )
    return {
        "success": True,
        "user": user.to_schema,
        "locations": [loc.to_schema for loc in locations],
        "items": items,
    }
