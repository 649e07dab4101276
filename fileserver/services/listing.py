from __future__ import annotations

import os
import posixpath
import stat
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from urllib.parse import parse_qsl, quote, urlencode

from ..schemas import MountConfig
from .archive import ArchiveFormat, display_name

ZIP_KEY = ArchiveFormat.ZIP.value
TAR_GZ_KEY = ArchiveFormat.TAR_GZ.value
ARCHIVE_VALUE = 'true'

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'

KB = 1024
MB = 1024 * KB
GB = 1024 * MB


def format_size(size: int) -> str:
    def div_by(unit: int) -> int:
        # Half-up rounding, 1536 bytes is 2K
        return int(size / unit + 0.5)

    if size < KB:
        return str(size)
    if size < MB:
        return f'{div_by(KB)}K'
    if size < GB:
        return f'{div_by(MB)}M'
    return f'{div_by(GB)}G'


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    is_dir: bool
    size_bytes: int
    modified_at: datetime
    url: str

    @property
    def size(self) -> str:
        return format_size(self.size_bytes)

    @property
    def last_modified(self) -> str:
        return self.modified_at.strftime(TIMESTAMP_FORMAT)


@dataclass(frozen=True)
class DirectoryListing:
    title: str
    zip_url: str
    tar_gz_url: str
    parent_url: Optional[str] = None
    entries: list[DirectoryEntry] = field(default_factory=list)
    allow_upload: bool = False
    allow_delete: bool = False


def request_target(path: str, query: str = '') -> str:
    """Percent-encoded path plus the raw query, as sent in a request line.

    The path is quoted from its file system bytes so names that are not valid
    UTF-8 still link back to the same file.
    """
    target = quote(os.fsencode(path or '/'))
    return f'{target}?{query}' if query else target


def child_url(current_path: str, name: str, is_dir: bool, query: str = '') -> str:
    joined = posixpath.normpath(posixpath.join(current_path or '/', name))
    if is_dir:
        joined += '/'
    return request_target(joined, query)


def parent_url(current_path: str, query: str = '') -> Optional[str]:
    trimmed = current_path[:-1] if current_path.endswith('/') else current_path
    last_slash = trimmed.rfind('/')
    if last_slash > 1:
        return request_target(trimmed[:last_slash], query)
    return None


def archive_url(current_path: str, query: str, key: str) -> str:
    params = [(k, v) for k, v in parse_qsl(query, keep_blank_values=True) if k != key]
    params.append((key, ARCHIVE_VALUE))
    return request_target(current_path, urlencode(sorted(params)))


def listing_title(mount_root: str, os_path: str) -> str:
    relative = os.path.relpath(os_path, mount_root)
    return display_name(os.path.normpath(os.path.join(os.path.basename(mount_root), relative)))


def _stat_entry(entry: os.DirEntry) -> os.stat_result:
    try:
        return entry.stat()
    except OSError:
        # Dangling symlinks still get a row
        return entry.stat(follow_symlinks=False)


def _directory_entry(entry: os.DirEntry, current_path: str, query: str) -> DirectoryEntry:
    st = _stat_entry(entry)
    is_dir = stat.S_ISDIR(st.st_mode)
    name = display_name(entry.name)
    if is_dir:
        name += os.sep
    return DirectoryEntry(
        name=name,
        is_dir=is_dir,
        size_bytes=st.st_size,
        modified_at=datetime.fromtimestamp(st.st_mtime),
        url=child_url(current_path, entry.name, is_dir, query),
    )


def list_directory(mount: MountConfig, os_path: str, current_path: str, query: str = '') -> DirectoryListing:
    with os.scandir(os_path) as it:
        children = sorted(it, key=lambda e: os.fsencode(e.name))

    return DirectoryListing(
        title=listing_title(mount.root_path, os_path),
        zip_url=archive_url(current_path, query, ZIP_KEY),
        tar_gz_url=archive_url(current_path, query, TAR_GZ_KEY),
        parent_url=parent_url(current_path, query),
        entries=[_directory_entry(child, current_path, query) for child in children],
        allow_upload=mount.allow_upload,
        allow_delete=mount.allow_delete,
    )
