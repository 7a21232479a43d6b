"""Unpacking a level archive and packing the cleaned tree for deployment."""
from __future__ import annotations

import fnmatch
import logging
import shutil
import zipfile
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

from ..core.discovery.level_scanner import find_level_root
from ..models.errors import LevelTreeError

logger = logging.getLogger(__name__)


class Compression(str, Enum):
    NO_COMPRESSION = "no_compression"
    FASTEST = "fastest"
    OPTIMAL = "optimal"
    SMALLEST = "smallest"


# diagnostics written next to the level must not ship
PACK_EXCLUDE_GLOBS = ("*_Warnings.txt", "*_Errors.txt", "*_Deleted.txt")

_ZIP_SETTINGS = {
    Compression.NO_COMPRESSION: (zipfile.ZIP_STORED, None),
    Compression.FASTEST: (zipfile.ZIP_DEFLATED, 1),
    Compression.OPTIMAL: (zipfile.ZIP_DEFLATED, 6),
    Compression.SMALLEST: (zipfile.ZIP_DEFLATED, 9),
}


def unpack(archive_path: Path, dest_suffix: str = "_unpacked") -> Path:
    """
    Extract ``archive_path`` into ``<archive dir>/<dest_suffix>`` and return the
    level root found inside. A previous extraction at the same place is removed.
    """
    archive_path = Path(archive_path)
    if not archive_path.is_file():
        raise LevelTreeError(f"Archive not found: {archive_path}")
    target = archive_path.parent / dest_suffix
    if target.exists():
        shutil.rmtree(target)
    target.mkdir(parents=True)
    try:
        with zipfile.ZipFile(archive_path) as zf:
            for member in zf.infolist():
                dest = (target / member.filename).resolve()
                try:
                    dest.relative_to(target.resolve())
                except ValueError:
                    raise LevelTreeError(f"Archive entry escapes the target directory: {member.filename}")
            zf.extractall(target)
    except zipfile.BadZipFile as e:
        raise LevelTreeError(f"Not a valid zip archive: {archive_path} ({e})")
    logger.info("Unpacked %s to %s", archive_path, target)

    root = find_level_root(target)
    # the game mounts levels/<name>/; archives built from the level folder itself lack that layer
    if root.parent.name.lower() != "levels":
        levels_dir = target / "levels"
        levels_dir.mkdir(exist_ok=True)
        moved = levels_dir / root.name
        shutil.move(str(root), str(moved))
        root = moved
    return root


def remove_mod_info(source: Path) -> bool:
    """Drop the ``mod_info`` folder of an unpacked working copy so it does not ship in a deploy build."""
    mod_info = Path(source) / "mod_info"
    if mod_info.is_dir():
        shutil.rmtree(mod_info)
        logger.info("Removed %s", mod_info)
        return True
    return False


def deploy_archive_name(level_name: str, when: Optional[datetime] = None) -> str:
    when = when or datetime.now()
    return f"{level_name}_deploy_{when.strftime('%y%m%d')}.zip"


def _level_dir(source: Path, level_name: str) -> Path:
    for candidate in (source / "levels" / level_name, source / level_name):
        if (candidate / "info.json").is_file():
            return candidate
    raise LevelTreeError(f"Nothing to pack, no level {level_name} under {source}")


def pack(
    source: Path,
    level_name: str,
    compression: Compression = Compression.OPTIMAL,
    when: Optional[datetime] = None,
    exclude_globs: Iterable[str] = PACK_EXCLUDE_GLOBS,
    include_mod_info: bool = False,
) -> Path:
    """
    Zip the level below ``source`` (the mount root) into
    ``<source parent>/<level>_deploy_<yymmdd>.zip``.

    Only ``levels/<level>/`` is archived, plus ``mod_info/`` when asked for;
    anything else next to the level, such as scan run folders, stays out.
    """
    source = Path(source)
    if not source.is_dir():
        raise LevelTreeError(f"Nothing to pack, not a directory: {source}")
    level_dir = _level_dir(source, level_name)
    method, level = _ZIP_SETTINGS[Compression(compression)]
    out = source.parent / deploy_archive_name(level_name, when)
    if out.exists():
        out.unlink()

    patterns = [g.lower() for g in exclude_globs]

    def _wanted(p: Path) -> bool:
        return p.is_file() and not any(fnmatch.fnmatchcase(p.name.lower(), g) for g in patterns)

    # (file, arcname); the archive always carries the levels/<name>/ layout
    entries = [
        (p, f"levels/{level_name}/{p.relative_to(level_dir).as_posix()}")
        for p in level_dir.rglob("*")
        if _wanted(p)
    ]
    mod_info = source / "mod_info"
    if include_mod_info and mod_info.is_dir():
        entries.extend((p, p.relative_to(source).as_posix()) for p in mod_info.rglob("*") if _wanted(p))
    entries.sort(key=lambda e: e[1])

    with zipfile.ZipFile(out, "w", compression=method, compresslevel=level) as zf:
        for p, arcname in entries:
            zf.write(p, arcname)
    logger.info("Packed %d files from %s into %s", len(entries), level_dir, out)
    return out
