import posixpath
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Optional

_GAME_PREFIX = re.compile(r"^game:", re.IGNORECASE)
_WIN_DRIVE = re.compile(r"^[A-Za-z]:[\\/]")
_DUP_SLASH = re.compile(r"/{2,}")


@dataclass(frozen=True)
class ResourcePath:
    raw: str
    parts: tuple
    anchored: bool  # starts at the game mount (leading "/", "levels/" or "game:")
    absolute: bool  # a real OS path


def normalize_resource_path(value: str) -> Optional[ResourcePath]:
    if value is None:
        return None
    raw = value.strip().strip('"').strip("'")
    if not raw:
        return None
    s = raw.replace("\\", "/")
    if _WIN_DRIVE.match(s):
        return ResourcePath(raw=raw, parts=tuple(p for p in s.split("/") if p), absolute=True, anchored=False)
    anchored = False
    if _GAME_PREFIX.match(s):
        s = _GAME_PREFIX.sub("", s)
        anchored = True
    if s.startswith("/"):
        anchored = True
    s = _DUP_SLASH.sub("/", s).lstrip("/")
    parts: List[str] = []
    for p in s.split("/"):
        if p in ("", "."):
            continue
        if p == "..":
            if parts and parts[-1] != "..":
                parts.pop()
            elif not anchored:
                # relative to the referencing document; collapsed once joined to its directory
                parts.append(p)
            continue
        parts.append(p)
    if not parts:
        return None
    if parts[0].lower() == "levels":
        anchored = True
    # "levels/levels/x" and "levels/game:levels/x" show up in hand-edited files
    while len(parts) > 1 and parts[0].lower() == "levels" and parts[1].lower() in ("levels", "game:levels"):
        parts.pop(1)
    return ResourcePath(raw=raw, parts=tuple(parts), anchored=anchored, absolute=False)


def path_key(rel_posix: str) -> str:
    return rel_posix.replace("\\", "/").casefold()


class PathResolver:
    """
    Resolves resource strings found in level documents to physical files.

    ``index`` maps case-folded posix paths relative to the level root to the
    real relative path; lookups are therefore case-insensitive.
    """

    def __init__(
        self,
        level_root: Path,
        mount_root: Path,
        index: Dict[str, str],
        image_fallbacks: Iterable[str] = (),
    ):
        self.level_root = level_root
        self.mount_root = mount_root
        self.level_name = level_root.name
        self.index = index
        self.image_fallbacks = [e.lower() for e in image_fallbacks]

    def _candidates(self, rp: ResourcePath, doc_dir: str) -> List[str]:
        """Relative-to-level-root keys to try, in order. Absolute keys are prefixed with '!'."""
        parts = list(rp.parts)
        if rp.absolute:
            return ["!" + "/".join(parts)]
        if rp.anchored:
            if parts[0].lower() == "levels":
                if len(parts) > 2 and parts[1].casefold() == self.level_name.casefold():
                    return ["/".join(parts[2:])]
                return ["!" + (self.mount_root / "/".join(parts)).as_posix()]
            # "/art/x.dae" style: relative to the mount, which may be the level itself
            return ["/".join(parts), "!" + (self.mount_root / "/".join(parts)).as_posix()]
        rel = "/".join(parts)
        out = []
        if doc_dir:
            out.append(posixpath.normpath(posixpath.join(doc_dir, rel)))
        out.append(rel)
        # ".." past the level root never names a level file
        return [c for c in out if c != ".." and not c.startswith("../")]

    def _lookup(self, candidate: str) -> Optional[str]:
        if candidate.startswith("!"):
            p = Path(candidate[1:])
            try:
                k = path_key(p.relative_to(self.level_root).as_posix())
                return k if k in self.index else None
            except ValueError:
                pass
            return p.as_posix() if p.is_file() else None
        k = path_key(candidate)
        return k if k in self.index else None

    def _with_fallbacks(self, candidate: str) -> List[str]:
        out = [candidate]
        stem, dot, ext = candidate.rpartition(".")
        if dot and "/" not in ext and ("." + ext.lower()) in self.image_fallbacks:
            for fb in self.image_fallbacks:
                alt = stem + fb
                if alt.lower() != candidate.lower():
                    out.append(alt)
        return out

    def resolve(self, value: str, doc_rel_path: str = "") -> Optional[str]:
        """Return the key of the referenced file, or None when nothing matches."""
        rp = normalize_resource_path(value)
        if rp is None:
            return None
        doc_dir = str(PurePosixPath(doc_rel_path).parent) if doc_rel_path else ""
        if doc_dir == ".":
            doc_dir = ""
        candidates = self._candidates(rp, doc_dir)
        # exact names first, then the image fallbacks
        for c in candidates:
            hit = self._lookup(c)
            if hit:
                return hit
        for c in candidates:
            for alt in self._with_fallbacks(c)[1:]:
                hit = self._lookup(alt)
                if hit:
                    return hit
        return None

    def os_path_key(self, value: str) -> Optional[str]:
        """
        Key of a real OS path that points into this level, or None.

        Game logs write absolute paths of the machine that ran the game, so a
        path that is not below ``level_root`` still matches on its
        ``levels/<level name>/`` segment.
        """
        s = value.strip().strip('"').strip("'").replace("\\", "/")
        if not (_WIN_DRIVE.match(s) or (s.startswith("/") and not s.lower().startswith("/levels/"))):
            return None
        try:
            return path_key(Path(s).relative_to(self.level_root).as_posix())
        except ValueError:
            pass
        parts = [p for p in s.split("/") if p]
        name = self.level_name.casefold()
        for i in range(len(parts) - 2, -1, -1):
            if parts[i].lower() == "levels" and parts[i + 1].casefold() == name:
                rest = parts[i + 2:]
                return path_key("/".join(rest)) if rest else None
        return None


def compute_default_output_dir(level_dir: str, output_folder_name: str = "cleanup_runs") -> str:
    """Runs are written next to the level folder, never inside it."""
    return str(Path(level_dir).resolve().parent / output_folder_name)
