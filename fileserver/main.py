from __future__ import annotations

import logging
from http import HTTPStatus
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, settings
from .routers import files
from .schemas import HealthResponse

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent / 'static'


def _status_text(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return str(status_code)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return PlainTextResponse(_status_text(exc.status_code), status_code=exc.status_code, headers=getattr(exc, 'headers', None))


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error('Unhandled error on %s %s', request.method, request.url.path, exc_info=exc)
    return PlainTextResponse(_status_text(500), status_code=500)


def healthz() -> HealthResponse:
    return HealthResponse(ok=True)


def create_app(config: Optional[Settings] = None) -> FastAPI:
    config = config or settings
    app = FastAPI(title=config.app_name, docs_url=None, redoc_url=None, openapi_url=None)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.mount('/static', StaticFiles(directory=str(STATIC_DIR)), name='static')
    app.add_api_route('/healthz', healthz, methods=['GET'])

    for mount in files.order_mounts(config.mounts):
        logger.info('Mounting %s at %r (upload=%s, delete=%s)', mount.root_path, mount.route_prefix, mount.allow_upload, mount.allow_delete)
        app.include_router(files.build_router(mount, config.archive_chunk_size))

    return app


app = create_app()
