import os
import fnmatch
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

from ...models.errors import LevelTreeError
from ...models.schema import FileRecord, LevelTree
from ...runtime.paths import path_key
from ...utils.diagnostics import DiagnosticLog
from .file_classifier import role_for

logger = logging.getLogger(__name__)

@dataclass
class ScanConfig:
    exclude_dirs: List[str]
    asset_extensions: List[str]
    follow_symlinks: bool = False

def _match_any(path: str, patterns: List[str]) -> bool:
    for pat in patterns:
        if fnmatch.fnmatch(path.lower(), pat.lower()) or fnmatch.fnmatch(os.path.basename(path).lower(), pat.lower()):
            return True
    return False

def iter_files(root: str, cfg: ScanConfig, log: Optional[DiagnosticLog] = None) -> Iterator[str]:
    root_path = Path(root)

    def _onerror(err: OSError) -> None:
        if err.filename and Path(err.filename) == root_path:
            raise LevelTreeError(f"Cannot read level root {root}: {err}")
        if log is not None:
            log.warning(f"Cannot read directory {err.filename}: {err.strerror}")

    for dirpath, dirnames, filenames in os.walk(root_path, onerror=_onerror, followlinks=cfg.follow_symlinks):
        rel_dir = os.path.relpath(dirpath, root_path)
        rel_dir = "" if rel_dir == "." else rel_dir

        # prune excluded directories
        pruned = []
        for d in list(dirnames):
            rel = os.path.join(rel_dir, d).replace("\\", "/")
            if _match_any(rel, cfg.exclude_dirs):
                pruned.append(d)
        for d in pruned:
            dirnames.remove(d)
        dirnames.sort()

        for f in sorted(filenames):
            yield os.path.join(dirpath, f)

def find_level_root(path: Path) -> Path:
    """
    Locate the level directory: the folder holding info.json next to a main/ or
    art/ folder. The shallowest match wins, ties broken by path.
    """
    if not path.is_dir():
        raise LevelTreeError(f"Level path does not exist or is not a directory: {path}")
    if (path / "info.json").is_file():
        return path

    found: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(path):
        dirnames.sort()
        if not any(f.lower() == "info.json" for f in filenames):
            continue
        subdirs = {d.lower() for d in dirnames}
        if "main" in subdirs or "art" in subdirs:
            found.append(Path(dirpath))
    if not found:
        raise LevelTreeError(f"Can't find level data in {path}")
    found.sort(key=lambda p: (len(p.parts), p.as_posix().lower()))
    return found[0]

def mount_root_for(level_root: Path) -> Path:
    parent = level_root.parent
    if parent.name.lower() == "levels":
        return parent.parent
    return parent

def scan_level(level_path: Path, defaults: dict, log: Optional[DiagnosticLog] = None) -> LevelTree:
    root = find_level_root(Path(level_path))

    cfg = ScanConfig(
        exclude_dirs=list(defaults.get("exclude_dirs") or []),
        asset_extensions=list(defaults.get("asset_extensions") or []),
    )

    files: List[FileRecord] = []
    for full in iter_files(str(root), cfg, log):
        p = Path(full)
        rel = p.relative_to(root).as_posix()
        try:
            size = p.stat().st_size
            exists = True
        except OSError:
            size = 0
            exists = False
        role, kind = role_for(rel, cfg.asset_extensions)
        files.append(
            FileRecord(
                path=str(p),
                rel_path=rel,
                key=path_key(rel),
                size_bytes=size,
                exists=exists,
                role=role,
                kind=kind,
            )
        )

    files.sort(key=lambda f: f.key)
    tree = LevelTree(root=root, level_name=root.name, mount_root=mount_root_for(root), files=files)
    logger.info("Scanned level %s: %d files under %s", tree.level_name, len(files), root)
    return tree
