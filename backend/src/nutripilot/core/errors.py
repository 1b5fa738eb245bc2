from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class NutriPilotError(Exception):
    """Base class for errors raised by the nutrition pipeline."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(NutriPilotError):
    """A required external credential or setting is missing."""

    status_code = 503


class ValidationError(NutriPilotError):
    status_code = 400


class UpstreamError(NutriPilotError):
    """Datastore or external service failure. Never retried automatically."""

    status_code = 502

    def __init__(self, message: str, upstream: Optional[str] = None):
        super().__init__(message)
        self.upstream = upstream


class EstimationError(UpstreamError):
    """The estimation service refused, truncated or malformed its answer."""

    def __init__(self, message: str):
        super().__init__(message, upstream="estimation")


@dataclass
class DataQualityWarning:
    kind: str
    message: str
    item_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(NutriPilotError)
    async def _handle(request: Request, exc: NutriPilotError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.message})
