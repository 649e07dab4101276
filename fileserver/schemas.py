from __future__ import annotations

import os

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MountConfig(BaseModel):
    """One URL prefix bound to a directory on disk."""

    model_config = ConfigDict(frozen=True)

    route_prefix: str = '/'
    root_path: str = Field(default='.', min_length=1)
    allow_upload: bool = False
    allow_delete: bool = False

    @field_validator('root_path')
    @classmethod
    def _absolute_root(cls, value: str) -> str:
        return os.path.normpath(os.path.abspath(value))

    @field_validator('route_prefix')
    @classmethod
    def _plain_prefix(cls, value: str) -> str:
        if '..' in value.replace('\\', '/').split('/'):
            raise ValueError('route_prefix must not contain ".." segments')
        return value

    @property
    def route_path(self) -> str:
        """Prefix as a route path: leading slash, no trailing slash, '' for the site root."""
        stripped = self.route_prefix.strip('/')
        return f'/{stripped}' if stripped else ''


class HealthResponse(BaseModel):
    ok: bool = True
