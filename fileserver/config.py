from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .schemas import MountConfig


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8')

    app_name: str = 'fileserver'
    app_host: str = '0.0.0.0'
    app_port: int = 8080
    log_level: str = 'info'
    log_file: str = ''
    mounts: list[MountConfig] = Field(default_factory=lambda: [MountConfig()])
    archive_chunk_size: int = Field(default=64 * 1024, ge=4096, le=16 * 1024 * 1024)


settings = Settings()
