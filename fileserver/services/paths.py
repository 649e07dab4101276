from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ResolvedPath:
    url_path: str
    os_path: str


def _strip_prefix(url_path: str, prefix: str) -> str:
    if prefix and url_path.startswith(prefix):
        return url_path[len(prefix):]
    return url_path


def clean_relative(url_path: str, pathmod=os.path) -> str:
    """Lexically clean a URL path into a relative path that cannot climb upwards.

    Segments are resolved as if the path were rooted, so a '..' at the top is
    dropped. Returns '' for the top itself.
    """
    windows = pathmod.sep == '\\'
    parts: list[str] = []
    for segment in url_path.replace('/', pathmod.sep).split(pathmod.sep):
        # A drive prefix such as 'C:' would re-anchor the join
        segment = pathmod.splitdrive(segment)[1]
        if windows and segment not in ('.', '..'):
            # Windows ignores trailing dots and spaces in names
            segment = segment.rstrip(' .')
        if segment in ('', '.'):
            continue
        if segment == '..':
            if parts:
                parts.pop()
            continue
        parts.append(segment)
    return pathmod.sep.join(parts)


def _strip_mount_base(url_path: str, route_prefix: str) -> str:
    # '/files/' is routed at '/files' too, which neither raw form above matches
    trimmed = route_prefix.strip('/')
    if not trimmed:
        return url_path
    base = '/' + trimmed
    if url_path == base or url_path.startswith(base + '/'):
        return url_path[len(base):]
    return url_path


def resolve_path(route_prefix: str, root_path: str, url_path: str, pathmod=os.path) -> ResolvedPath:
    if not url_path.startswith('/'):
        url_path = '/' + url_path
    relative = _strip_prefix(url_path, route_prefix)
    relative = _strip_prefix(relative, '/' + route_prefix)
    if relative == url_path:
        relative = _strip_mount_base(url_path, route_prefix)

    cleaned = clean_relative(relative, pathmod)
    os_path = pathmod.join(root_path, cleaned) if cleaned else root_path
    return ResolvedPath(url_path=url_path, os_path=os_path)
