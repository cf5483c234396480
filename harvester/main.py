from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from harvester.api.errors import register_api_exception_handlers
from harvester.api.router import router as api_router
from harvester.http.middleware import RequestLoggingMiddleware, parse_skip_paths
from harvester.logging_config import configure_logging, parse_redact_fields
from harvester.services.browser.session import BrowserManager, PlaywrightEnvironmentFactory
from harvester.services.scan.commands import ScanCommandService
from harvester.services.scan.config import ScanConfig
from harvester.services.scan.events import scan_events
from harvester.settings import settings

logger = logging.getLogger(__name__)

configure_logging(
    level=settings.log_level,
    log_format=settings.log_format,
    redact_fields=parse_redact_fields(settings.log_redact_fields),
    include_uvicorn_access=settings.log_uvicorn_access,
)


def build_scan_service(browser: BrowserManager) -> ScanCommandService:
    return ScanCommandService(
        environment_factory=PlaywrightEnvironmentFactory(browser=browser, settings=settings),
        config=ScanConfig.from_settings(settings),
        publisher=scan_events,
    )


@asynccontextmanager
async def lifespan(application: FastAPI):
    browser = BrowserManager.from_settings(settings)
    application.state.scan_service = build_scan_service(browser)
    logger.info(
        "app.started",
        extra={
            "event": "app.started",
            "headless": settings.browser_headless,
            "log_format": settings.log_format,
        },
    )
    yield
    await application.state.scan_service.shutdown()
    await browser.close()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
register_api_exception_handlers(app)
app.add_middleware(
    RequestLoggingMiddleware,
    log_requests=settings.log_requests,
    skip_paths=parse_skip_paths(settings.log_request_skip_paths),
)
app.include_router(api_router)


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}
