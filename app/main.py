from fastapi import FastAPI
from contextlib import asynccontextmanager
import logging

from app.config.settings import Settings, settings
from app.core.dispatcher import DispatchEngine
from app.core.session_store import create_session_store
from app.middleware.error_handlers import register_error_handlers
from app.services import admin_endpoints, webhook_endpoints
from app.services.airtable_service import AirtableService
from app.services.whatsapp_service import WhatsAppService
from app.utils.logger import setup_logger

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logger(app.state.settings)
    logger.info("Starting WhatsApp catalog bot...")
    config: Settings = app.state.settings
    owned = []

    if app.state.store is None:
        app.state.store = create_session_store(config)
        owned.append(app.state.store)
    if app.state.catalog is None:
        app.state.catalog = AirtableService.from_settings(config)
        await app.state.catalog.initialize()
        owned.append(app.state.catalog)
    if app.state.gateway is None:
        app.state.gateway = WhatsAppService.from_settings(config)
        await app.state.gateway.initialize()
        owned.append(app.state.gateway)

    app.state.engine = DispatchEngine(app.state.store, app.state.catalog)

    if await app.state.store.ping():
        logger.info("Session store connection established")
    else:
        logger.warning("Session store is not reachable; replies will degrade to apologies")

    try:
        yield
    finally:
        logger.info("Stopping WhatsApp catalog bot...")
        for component in owned:
            await component.close()

def create_app(config: Settings = settings, store=None, catalog=None, gateway=None) -> FastAPI:
    app = FastAPI(
        title="WhatsApp Catalog Bot",
        description="Conversational product catalog and FAQ assistant for WhatsApp",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = config
    app.state.store = store
    app.state.catalog = catalog
    app.state.gateway = gateway
    app.state.engine = DispatchEngine(store, catalog) if store is not None and catalog is not None else None

    register_error_handlers(app)
    app.include_router(webhook_endpoints.router)
    app.include_router(admin_endpoints.router)

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.port)
