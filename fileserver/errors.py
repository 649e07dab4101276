from __future__ import annotations

from http import HTTPStatus

from fastapi import HTTPException, status


class FileServerError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str | None = None):
        super().__init__(status_code=self.status_code, detail=detail or HTTPStatus(self.status_code).phrase)


class NotFound(FileServerError):
    status_code = status.HTTP_404_NOT_FOUND


class PermissionDenied(FileServerError):
    status_code = status.HTTP_403_FORBIDDEN


class FeatureDisabled(FileServerError):
    status_code = status.HTTP_403_FORBIDDEN


class IOFailure(FileServerError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
