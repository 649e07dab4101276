from __future__ import annotations

import gzip
import logging
import os
import stat
import tarfile
import zipfile
from dataclasses import dataclass
from enum import Enum
from itertools import chain
from typing import Callable, Iterator
from urllib.parse import quote

logger = logging.getLogger(__name__)

COPY_BUFSIZE = 64 * 1024


class ArchiveFormat(str, Enum):
    ZIP = 'zip'
    TAR_GZ = 'tar.gz'


CONTENT_TYPES = {
    ArchiveFormat.ZIP: 'application/zip',
    ArchiveFormat.TAR_GZ: 'application/x-tar+gzip',
}


@dataclass(frozen=True)
class ArchiveMember:
    os_path: str
    name: str
    is_dir: bool


class _ChunkSink:
    """Write-only file object holding encoder output until it is drained."""

    def __init__(self):
        self._chunks: list[bytes] = []

    def write(self, data) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = b''.join(self._chunks)
        self._chunks.clear()
        return data


def display_name(name: str) -> str:
    """Name as valid UTF-8, with undecodable file name bytes replaced by U+FFFD."""
    return os.fsencode(name).decode('utf-8', 'replace')


def archive_filename(os_path: str, fmt: ArchiveFormat) -> str:
    base = display_name(os.path.basename(os.path.normpath(os_path))) or 'archive'
    return f'{base}.{fmt.value}'


def content_disposition(filename: str) -> str:
    if filename.isascii() and '"' not in filename and '\\' not in filename:
        return f'attachment; filename="{filename}"'
    fallback = filename.encode('ascii', 'replace').decode().replace('"', '_').replace('\\', '_')
    return f'attachment; filename="{fallback}"; filename*=UTF-8\'\'{quote(filename)}'


def _name_key(entry: os.DirEntry) -> bytes:
    return os.fsencode(entry.name)


def walk_tree(root: str, prefix: str = '') -> Iterator[ArchiveMember]:
    """Yield the members below root depth first, siblings in byte order of name.

    Names are joined with '/' whatever the host separator is.
    """
    with os.scandir(root) as it:
        entries = sorted(it, key=_name_key)
    for entry in entries:
        name = prefix + entry.name
        if entry.is_dir(follow_symlinks=False):
            yield ArchiveMember(entry.path, name, True)
            yield from walk_tree(entry.path, name + '/')
        elif entry.is_symlink() and entry.is_dir():
            # Linked directories are recorded but not followed
            yield ArchiveMember(entry.path, name, True)
        elif entry.is_file():
            yield ArchiveMember(entry.path, name, False)


def iter_members(root: str) -> Iterator[ArchiveMember]:
    if os.path.isdir(root):
        return walk_tree(root)
    return iter([ArchiveMember(root, os.path.basename(root), False)])


def stream_zip(root: str, chunk_size: int = COPY_BUFSIZE) -> Iterator[bytes]:
    sink = _ChunkSink()
    with zipfile.ZipFile(sink, mode='w', compression=zipfile.ZIP_DEFLATED, allowZip64=True, strict_timestamps=False) as zf:
        for member in iter_members(root):
            name = display_name(member.name)
            if name != member.name:
                logger.warning('zip entry %r is not valid UTF-8, stored as %r', member.name, name)
            info = zipfile.ZipInfo.from_file(member.os_path, name, strict_timestamps=False)
            if member.is_dir:
                zf.writestr(info, b'')
            else:
                info.compress_type = zipfile.ZIP_DEFLATED
                with open(member.os_path, 'rb') as src, zf.open(info, mode='w') as dest:
                    while chunk := src.read(chunk_size):
                        dest.write(chunk)
                        if data := sink.drain():
                            yield data
            if data := sink.drain():
                yield data
    if data := sink.drain():
        yield data


def _tar_info(member: ArchiveMember) -> tarfile.TarInfo:
    st = os.stat(member.os_path)
    info = tarfile.TarInfo(member.name)
    info.mode = stat.S_IMODE(st.st_mode)
    info.mtime = int(st.st_mtime)
    info.uid = st.st_uid
    info.gid = st.st_gid
    if member.is_dir:
        info.type = tarfile.DIRTYPE
        info.size = 0
    else:
        info.type = tarfile.REGTYPE
        info.size = st.st_size
    return info


def stream_tar_gz(root: str, chunk_size: int = COPY_BUFSIZE) -> Iterator[bytes]:
    sink = _ChunkSink()
    offset = 0
    # mtime=0 keeps the gzip header identical between runs
    with gzip.GzipFile(fileobj=sink, mode='wb', mtime=0) as gz:
        for member in iter_members(root):
            info = _tar_info(member)
            header = info.tobuf(tarfile.PAX_FORMAT, tarfile.ENCODING, 'surrogateescape')
            gz.write(header)
            offset += len(header)
            if not member.is_dir:
                remaining = info.size
                with open(member.os_path, 'rb') as src:
                    while remaining:
                        chunk = src.read(min(chunk_size, remaining))
                        if not chunk:
                            raise OSError(f'{member.os_path} shrank while being archived')
                        gz.write(chunk)
                        remaining -= len(chunk)
                        if data := sink.drain():
                            yield data
                padding = -info.size % tarfile.BLOCKSIZE
                gz.write(tarfile.NUL * padding)
                offset += info.size + padding
            if data := sink.drain():
                yield data

        trailer = tarfile.NUL * (2 * tarfile.BLOCKSIZE)
        offset += len(trailer)
        gz.write(trailer + tarfile.NUL * (-offset % tarfile.RECORDSIZE))
    if data := sink.drain():
        yield data


ENCODERS: dict[ArchiveFormat, Callable[[str, int], Iterator[bytes]]] = {
    ArchiveFormat.ZIP: stream_zip,
    ArchiveFormat.TAR_GZ: stream_tar_gz,
}


def _log_aborts(chunks: Iterator[bytes], root: str, fmt: ArchiveFormat) -> Iterator[bytes]:
    try:
        yield from chunks
    except Exception:
        logger.exception('%s archive of %s aborted after the response started', fmt.value, root)
        raise


def open_archive_stream(root: str, fmt: ArchiveFormat, chunk_size: int = COPY_BUFSIZE) -> Iterator[bytes]:
    """Start encoding root and return the remaining byte stream.

    Encoding runs up to the first chunk before this returns, so errors at the top
    of the tree are raised here while the response status can still change.
    Errors after that point end the stream early and are only logged.
    """
    chunks = ENCODERS[fmt](root, chunk_size)
    first = next(chunks, b'')
    return _log_aborts(chain([first], chunks), root, fmt)
