from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import uvicorn
import structlog
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from core.config import settings
from core.aggregator import Aggregator
from core.errors import ConfigurationError, InventoryError
from core.locks import KeyedLocks
from core.logging import configure_logging
from db import database
from db.database import create_db_and_tables
from db.inventory.catalog import CatalogStore
from db.inventory.ledger import TransactionLedger
from routers.inventory import router as inventory_router
from contextlib import asynccontextmanager

logger = structlog.get_logger(__name__)


def create_app(engine: AsyncEngine = None, lock_timeout: float = None) -> FastAPI:
    engine = engine if engine is not None else database.engine
    session_maker = async_sessionmaker(engine, expire_on_commit=False)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level, json=settings.log_json, echo_sql=settings.database_echo)
        await create_db_and_tables(engine)
        try:
            async with engine.connect() as conn:
                await app.state.catalog.load(conn)
        except ConfigurationError as e:
            # Requests retry the load and report the configuration error until it is fixed
            logger.error("catalog_schema_deferred", reason=e.message)
        yield
        await engine.dispose()

    app = FastAPI(
        title="Inventory Ledger API",
        description="Per-location stock quantities, an append-only transaction ledger and session bootstrap",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    catalog = CatalogStore(settings.items_table)
    app.state.session_maker = session_maker
    app.state.catalog = catalog
    app.state.aggregator = Aggregator(
        session_maker,
        catalog,
        TransactionLedger(),
        KeyedLocks(timeout=settings.lock_timeout_seconds if lock_timeout is None else lock_timeout),
    )

    # Every outcome is carried in the JSON body; clients check for `error`
    @app.exception_handler(InventoryError)
    async def inventory_error_handler(request: Request, exc: InventoryError):
        if isinstance(exc, ConfigurationError):
            logger.error("configuration_error", path=request.url.path, message=exc.message)
        return JSONResponse(exc.to_payload(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        return JSONResponse({"error": "validation", "message": problems or "Malformed request"}, status_code=400)

    @app.exception_handler(Exception)
    async def server_error_handler(request: Request, exc: Exception):
        logger.exception("request_failed", path=request.url.path)
        return JSONResponse({"error": "server", "message": "Internal server error"}, status_code=500)

    app.include_router(inventory_router, tags=["inventory"])
    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
