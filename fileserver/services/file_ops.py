from __future__ import annotations

import ntpath
import os
import shutil
from dataclasses import dataclass
from typing import BinaryIO

from .archive import COPY_BUFSIZE


@dataclass(frozen=True)
class UploadTarget:
    directory_os_path: str
    declared_filename: str

    @property
    def base_name(self) -> str:
        # ntpath splits on both '/' and '\\' and drops drive prefixes
        return ntpath.basename(self.declared_filename)

    @property
    def os_path(self) -> str:
        name = self.base_name
        if name in ('', '.', '..'):
            raise IsADirectoryError(f'Upload filename {self.declared_filename!r} has no usable base name')
        return os.path.join(self.directory_os_path, name)


def save_upload(target: UploadTarget, source: BinaryIO, chunk_size: int = COPY_BUFSIZE) -> str:
    out_path = target.os_path
    fd = os.open(out_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC | getattr(os, 'O_BINARY', 0), 0o600)
    with os.fdopen(fd, 'wb') as out:
        shutil.copyfileobj(source, out, chunk_size)
        out.flush()
        os.fsync(out.fileno())
    return out_path


def delete_file(os_path: str) -> None:
    if os.path.isdir(os_path) and not os.path.islink(os_path):
        raise IsADirectoryError(f'{os_path} is a directory')
    os.remove(os_path)
