from __future__ import annotations

import logging

from fastapi import FastAPI, Request, Response
from fastapi.responses import RedirectResponse

from nutripilot.core.config import get_settings
from nutripilot.core.database import init_db
from nutripilot.core.errors import install_error_handlers
from nutripilot.routers import day_log, foods_lookup, health, micro_targets, nutrition, summary


CORE_ROUTERS = (
    (health.router, {"tags": ["health"]}),
    (day_log.router, {}),
    (nutrition.router, {}),
    (summary.router, {}),
    (foods_lookup.router, {}),
    (micro_targets.router, {}),
)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url=settings.docs_url,
    )
    install_error_handlers(application)

    @application.middleware("http")
    async def enforce_utf8_json(request: Request, call_next):
        response = await call_next(request)
        if response.headers.get("content-type", "").startswith("application/json"):
            response.headers["content-type"] = "application/json; charset=utf-8"
        return response

    @application.get("/favicon.ico", include_in_schema=False)
    def favicon():
        return Response(status_code=204)

    for router, include_kwargs in CORE_ROUTERS:
        application.include_router(router, **include_kwargs)

    @application.get("/", include_in_schema=False)
    def root():
        return RedirectResponse(settings.docs_url or "/docs")

    @application.on_event("startup")
    async def _startup():
        await init_db()

    return application


app = create_app()
