from __future__ import annotations

import uvicorn

from .config import settings
from .logging_config import setup_logging


def main() -> None:
    setup_logging(settings)
    uvicorn.run('fileserver.main:app', host=settings.app_host, port=settings.app_port, log_config=None, log_level=settings.log_level)


if __name__ == '__main__':
    main()
