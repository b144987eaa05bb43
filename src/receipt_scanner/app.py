from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from receipt_scanner.api.routes import health, receipts
from receipt_scanner.core import settings
from receipt_scanner.extractor import ReceiptExtractor
from receipt_scanner.logger import get_logger, setup_logging

logger = get_logger(__name__)


def create_app() -> FastAPI:
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Initializing services...")
        settings.log_environment()

        config = settings.load_extractor_config()
        if not config.api_key:
            logger.warning("GOOGLE_API_KEY not set. Receipt scanning will be unavailable.")

        extractor = ReceiptExtractor(config=config)
        app.state.extractor = extractor

        logger.info("Services initialized.")
        yield
        extractor.close()
        logger.info("Service shutting down.")

    app = FastAPI(title="Receipt Scanner", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_env_list("CORS_ORIGINS", "*"),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(receipts.router)

    return app


app = create_app()
