"""
lectio API Server

FastAPI application around the voting services. The store is created in
the lifespan (PostgreSQL) unless one is handed to create_app, which is how
tests run the whole API on MemoryDatabase.
"""

import random
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import config, get_logger
from database.db_postgres import Database
from database.store import Store
from exceptions import ServiceError
from server.metrics import metrics
from server.middleware.logging import log_requests
from server.middleware.metrics import metrics_middleware
from server.middleware.request_id import RequestIDMiddleware
from server.routes import auth, cron, discussion, groups, monitoring
from userland.auth import init_jwt
from voting.seeds import RandomSource
from voting.services import build_services

logger = get_logger(__name__).bind(component="api")


def _attach_store(app: FastAPI, db: Store, rng: RandomSource,
                  clock: Optional[Callable[[], datetime]]) -> None:
    app.state.db = db
    app.state.services = build_services(
        db,
        rng=rng,
        clock=clock,
        metrics=metrics,
        seed_count=config.SEED_COUNT,
        default_timezone=config.DEFAULT_TIMEZONE,
        default_voting_hours=config.DEFAULT_VOTING_DURATION_HOURS,
    )


def create_app(
    database: Optional[Store] = None,
    jwt_secret: Optional[str] = None,
    cron_secret: Optional[str] = None,
    rng: RandomSource = random.random,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    """Build the API application

    Args:
        database: Store to serve from; PostgreSQL is opened in the lifespan when None
        jwt_secret: Token signing secret (defaults to config.JWT_SECRET)
        cron_secret: Shared secret for the cron endpoint (defaults to config.CRON_SECRET)
        rng: Random source for seeds and tie-breaks
        clock: Wall clock for every time-based rule
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open the PostgreSQL pool when no store was injected"""
        owned: Optional[Database] = None
        if getattr(app.state, "db", None) is None:
            owned = await Database.create()
            _attach_store(app, owned, rng, clock)
            logger.info("initialized PostgreSQL database with async connection pool")

        yield

        if owned is not None:
            try:
                await owned.close()
                logger.info("closed PostgreSQL connection pool")
            except Exception as e:
                # Shutdown proceeds regardless
                logger.error("error closing connection pool", error=str(e), exc_info=True)

    app = FastAPI(title="lectio API", description="Weekly reading votes", lifespan=lifespan)
    app.state.db = None
    app.state.cron_secret = cron_secret if cron_secret is not None else config.CRON_SECRET

    if database is not None:
        _attach_store(app, database, rng, clock)

    secret = jwt_secret or config.JWT_SECRET
    if secret:
        init_jwt(secret)
        logger.info("JWT authentication initialized")
    else:
        logger.warning("LECTIO_JWT_SECRET not set; authenticated routes will reject requests")

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    # Request ID middleware (must be early in stack for tracing)
    app.add_middleware(RequestIDMiddleware)

    # Last registered runs first: metrics wraps logging
    @app.middleware("http")
    async def log_requests_middleware(request, call_next):
        return await log_requests(request, call_next)

    @app.middleware("http")
    async def metrics_middleware_wrapper(request, call_next):
        return await metrics_middleware(request, call_next)

    app.include_router(monitoring.router)
    app.include_router(auth.router)
    app.include_router(groups.router)
    app.include_router(discussion.router)
    app.include_router(cron.router)

    return app


if __name__ == "__main__":
    import asyncio
    import sys

    import uvicorn

    logger.info("configuration", config_summary=config.summary())

    if len(sys.argv) > 1 and sys.argv[1] == "--init-db":
        async def init_db():
            db = await Database.create()
            try:
                await db.init_schema()
                logger.info("database schema applied")
            finally:
                await db.close()

        asyncio.run(init_db())
        sys.exit(0)

    uvicorn.run(
        create_app(),
        host=config.API_HOST,
        port=config.API_PORT,
        access_log=False,  # request logging middleware covers this
    )
