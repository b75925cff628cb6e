import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from mangum import Mangum
from starlette.middleware.cors import CORSMiddleware

from pointcore.containers import Container
from pointcore.core.exception_handlers import register_exception_handlers
from pointcore.core.logging_middleware import LoggingMiddleware
from pointcore.logging_config import setup_logging
from pointcore.middleware.rate_limit import RateLimitMiddleware
from pointcore.routers import coupon_router, health_router, point_router, quota_router

load_dotenv("pointcore/.env")

logger = logging.getLogger(__name__)


def create_app(container: Optional[Container] = None) -> FastAPI:
    container = container or Container()
    settings = container.config()

    setup_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        container.init_resources()
        logger.info(f"{settings.APP_NAME} started ({settings.ENVIRONMENT})")
        try:
            yield
        finally:
            container.shutdown_resources()
            container.engine().dispose()
            logger.info(f"{settings.APP_NAME} stopped")

    app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG, lifespan=lifespan)
    app.container = container  # type: ignore

    register_exception_handlers(app)

    # 마지막에 추가한 미들웨어가 가장 바깥에서 실행됨
    if settings.RATE_LIMIT_ENABLED:
        app.add_middleware(
            RateLimitMiddleware, exclude_paths=settings.RATE_LIMIT_EXCLUDE_PATHS
        )
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router.router)
    app.include_router(point_router.router, prefix=settings.API_V1_STR)
    app.include_router(coupon_router.router, prefix=settings.API_V1_STR)
    app.include_router(quota_router.router, prefix=settings.API_V1_STR)

    return app


app = create_app()

handler = Mangum(app)
