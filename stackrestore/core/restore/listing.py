from __future__ import annotations

import os
import time
from dataclasses import dataclass
from typing import List

ARCHIVE_SUFFIXES = (".tar.gz", ".tgz", ".zip")
_SIZE_UNITS = ["Bytes", "KB", "MB", "GB"]


@dataclass(frozen=True)
class ArchiveInfo:
    name: str
    path: str
    created: str
    size_bytes: int


def format_bytes(n: int) -> str:
    n = int(n or 0)
    if n <= 0:
        return "0 Bytes"
    value = float(n)
    i = 0
    while value >= 1024 and i < len(_SIZE_UNITS) - 1:
        value /= 1024
        i += 1
    text = f"{round(value, 2):.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[i]}"


def list_archives(backup_dir: str) -> List[ArchiveInfo]:
    if not os.path.isdir(backup_dir):
        return []
    items: List[ArchiveInfo] = []
    for fn in os.listdir(backup_dir):
        p = os.path.join(backup_dir, fn)
        if not fn.endswith(ARCHIVE_SUFFIXES) or not os.path.isfile(p):
            continue
        st = os.stat(p)
        items.append(
            ArchiveInfo(
                name=fn,
                path=p,
                created=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(st.st_mtime)),
                size_bytes=int(st.st_size),
            )
        )
    items.sort(key=lambda a: os.path.getmtime(a.path), reverse=True)
    return items
