from __future__ import annotations

import os
import tarfile
import zipfile
from typing import List, Optional

from stackrestore.core.errors import ExtractionError
from stackrestore.core.logger import get_logger
from stackrestore.core.restore.paths import StagedArchive

_IGNORED_TOP_LEVEL = {"__MACOSX", ".DS_Store"}


def _is_within(base: str, target: str) -> bool:
    base = os.path.realpath(base)
    target = os.path.realpath(target)
    return target == base or target.startswith(base + os.sep)


def _unsafe_tar_members(tf: tarfile.TarFile, out_dir: str) -> List[str]:
    bad: List[str] = []
    for m in tf.getmembers():
        if os.path.isabs(m.name) or not _is_within(out_dir, os.path.join(out_dir, m.name)):
            bad.append(m.name)
            continue
        if m.issym() or m.islnk():
            link_base = os.path.dirname(os.path.join(out_dir, m.name)) if m.issym() else out_dir
            if os.path.isabs(m.linkname) or not _is_within(out_dir, os.path.join(link_base, m.linkname)):
                bad.append(m.name)
                continue
        if m.isdev():
            bad.append(m.name)
    return bad


def _extract_tar(archive_path: str, out_dir: str) -> None:
    with tarfile.open(archive_path, mode="r:*") as tf:
        bad = _unsafe_tar_members(tf, out_dir)
        if bad:
            raise ExtractionError("Archive contains entries outside the staging directory.", archive=archive_path, entries=bad[:10])
        if hasattr(tarfile, "data_filter"):
            tf.extractall(path=out_dir, filter="data")
        else:
            tf.extractall(path=out_dir)  # noqa: S202


def _extract_zip(archive_path: str, out_dir: str) -> None:
    with zipfile.ZipFile(archive_path, "r") as z:
        bad = [n for n in z.namelist() if os.path.isabs(n) or not _is_within(out_dir, os.path.join(out_dir, n))]
        if bad:
            raise ExtractionError("Archive contains entries outside the staging directory.", archive=archive_path, entries=bad[:10])
        z.extractall(path=out_dir)


def _locate_root(run_dir: str) -> Optional[str]:
    entries = [e for e in os.listdir(run_dir) if e not in _IGNORED_TOP_LEVEL and not e.startswith("._")]
    if "manifest.json" in entries:
        return run_dir
    dirs = [e for e in entries if os.path.isdir(os.path.join(run_dir, e))]
    if len(dirs) == 1 and len(entries) == 1:
        return os.path.join(run_dir, dirs[0])
    return None


def extract_archive(archive_path: str, *, staging_root: str, run_id: str) -> StagedArchive:
    """
    Unpack a backup archive into ``staging_root/<run_id>``.

    The archive must hold exactly one top-level folder (the layout backup runs
    produce); a flat archive with ``manifest.json`` at the top is accepted too.
    """
    log = get_logger("extract")
    if not os.path.exists(archive_path):
        raise ExtractionError("Backup archive not found.", archive=archive_path)
    if not os.path.isfile(archive_path):
        raise ExtractionError("Backup archive is not a regular file.", archive=archive_path)

    run_dir = os.path.join(staging_root, run_id)
    try:
        os.makedirs(run_dir, exist_ok=True)
        if zipfile.is_zipfile(archive_path):
            _extract_zip(archive_path, run_dir)
        else:
            _extract_tar(archive_path, run_dir)
    except ExtractionError:
        raise
    except (tarfile.TarError, zipfile.BadZipFile, EOFError, OSError) as e:
        raise ExtractionError("Backup archive is unreadable or corrupt.", archive=archive_path, reason=str(e)) from e

    root = _locate_root(run_dir)
    if root is None:
        raise ExtractionError("Backup archive must contain exactly one top-level folder.", archive=archive_path, entries=sorted(os.listdir(run_dir))[:10])
    log.info(f"  extracted to: {root}")
    return StagedArchive(root=root, run_dir=run_dir)
