from __future__ import annotations

import logging
import os
import stat
from urllib.parse import unquote_to_bytes

from fastapi import APIRouter, Request
from fastapi.responses import FileResponse, HTMLResponse, RedirectResponse, Response, StreamingResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from ..errors import FeatureDisabled, IOFailure, NotFound, PermissionDenied
from ..schemas import MountConfig
from ..services import archive, listing
from ..services.file_ops import UploadTarget, delete_file, save_upload
from ..services.paths import resolve_path
from ..services.render import render_listing

logger = logging.getLogger(__name__)

METHODS = ['GET', 'HEAD', 'POST', 'DELETE']
UPLOAD_FIELD = 'file'


def _stat(os_path: str) -> os.stat_result:
    return os.stat(os_path)


def _url_path(request: Request) -> str:
    # request.url would split the decoded path on '#' or '?'
    raw = request.scope.get('raw_path')
    if raw:
        # scope['path'] has lost file name bytes that are not valid UTF-8
        return os.fsdecode(unquote_to_bytes(raw))
    return request.scope['path']


def _client(request: Request) -> str:
    return f'{request.client.host}:{request.client.port}' if request.client else 'unknown'


class FileHandler:
    """Serves one mount: listings, archives, uploads, deletes and raw files."""

    def __init__(self, mount: MountConfig, chunk_size: int = archive.COPY_BUFSIZE):
        self.mount = mount
        self.chunk_size = chunk_size

    async def dispatch(self, request: Request) -> Response:
        logger.info('[%s] %s %s %s', self.mount.root_path, _client(request), request.method, request.url)
        resolved = resolve_path(self.mount.route_prefix, self.mount.root_path, _url_path(request))
        os_path = resolved.os_path

        try:
            info = _stat(os_path)
        except (FileNotFoundError, NotADirectoryError):
            raise NotFound()
        except PermissionError:
            raise PermissionDenied()
        except (OSError, ValueError) as exc:
            logger.warning('stat %s failed: %s', os_path, exc)
            raise IOFailure()

        method = request.method
        is_dir = stat.S_ISDIR(info.st_mode)
        query = request.query_params

        if method == 'DELETE' and not self.mount.allow_delete:
            raise FeatureDisabled('Deleting is disabled')
        if method == 'POST' and not self.mount.allow_upload:
            raise FeatureDisabled('Uploading is disabled')
        if query.get(listing.ZIP_KEY):
            return await self._serve_archive(os_path, archive.ArchiveFormat.ZIP)
        if query.get(listing.TAR_GZ_KEY):
            return await self._serve_archive(os_path, archive.ArchiveFormat.TAR_GZ)
        if self.mount.allow_upload and is_dir and method == 'POST':
            return await self._serve_upload(request, os_path)
        if self.mount.allow_delete and not is_dir and method == 'DELETE':
            return await self._serve_delete(os_path)
        if method == 'DELETE':
            raise FeatureDisabled('Directories cannot be deleted')
        if is_dir:
            return await self._serve_dir(request, os_path)
        return FileResponse(os_path, stat_result=info)

    async def _serve_archive(self, os_path: str, fmt: archive.ArchiveFormat) -> Response:
        try:
            chunks = await run_in_threadpool(archive.open_archive_stream, os_path, fmt, self.chunk_size)
        except Exception as exc:
            logger.warning('%s archive of %s failed before streaming: %s', fmt.value, os_path, exc)
            raise IOFailure()

        headers = {'Content-Disposition': archive.content_disposition(archive.archive_filename(os_path, fmt))}
        return StreamingResponse(chunks, media_type=archive.CONTENT_TYPES[fmt], headers=headers)

    async def _serve_dir(self, request: Request, os_path: str) -> Response:
        try:
            data = await run_in_threadpool(listing.list_directory, self.mount, os_path, _url_path(request), request.url.query)
            body = render_listing(data)
        except Exception as exc:
            logger.warning('listing %s failed: %s', os_path, exc)
            raise IOFailure()
        return HTMLResponse(body)

    async def _serve_upload(self, request: Request, os_path: str) -> Response:
        location = listing.request_target(_url_path(request), request.url.query)
        try:
            form = await request.form()
        except Exception as exc:
            logger.warning('reading upload form for %s failed: %s', os_path, exc)
            raise IOFailure()

        try:
            upload = form.get(UPLOAD_FIELD)
            if not isinstance(upload, UploadFile) or not upload.filename:
                # An empty form is accepted; the browser just re-renders the listing
                logger.info('upload to %s carried no file', os_path)
                return RedirectResponse(location, status_code=303)

            target = UploadTarget(os_path, upload.filename)
            try:
                written = await run_in_threadpool(save_upload, target, upload.file, self.chunk_size)
            except Exception as exc:
                logger.warning('upload %r into %s failed: %s', upload.filename, os_path, exc)
                raise IOFailure()
        finally:
            await form.close()

        logger.info('stored upload %s', written)
        return RedirectResponse(location, status_code=303)

    async def _serve_delete(self, os_path: str) -> Response:
        try:
            await run_in_threadpool(delete_file, os_path)
        except Exception as exc:
            logger.warning('delete %s failed: %s', os_path, exc)
            raise IOFailure()
        logger.info('deleted %s', os_path)
        return Response(status_code=200)


def build_router(mount: MountConfig, chunk_size: int = archive.COPY_BUFSIZE) -> APIRouter:
    handler = FileHandler(mount, chunk_size)
    router = APIRouter(tags=['files'])
    base = mount.route_path
    if base:
        router.add_api_route(base, handler.dispatch, methods=METHODS, include_in_schema=False)
    router.add_api_route(f'{base}/{{path:path}}', handler.dispatch, methods=METHODS, include_in_schema=False)
    return router


def order_mounts(mounts: list[MountConfig]) -> list[MountConfig]:
    """Longest prefix first, so nested mounts win over the ones containing them."""
    return sorted(mounts, key=lambda m: len(m.route_path), reverse=True)
