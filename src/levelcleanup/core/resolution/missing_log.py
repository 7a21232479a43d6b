import re
from pathlib import Path
from typing import Iterable, List, Optional, Set

from ...runtime.paths import PathResolver, normalize_resource_path, path_key
from ...utils.diagnostics import DiagnosticLog

# "12.345|I|GELua...": ordinary engine log lines without a missing-file marker
_ENGINE_LINE_RE = re.compile(r"^\s*\d+\.\d+\|")


def missing_paths_from_lines(lines: Iterable[str], markers: Iterable[str]) -> List[str]:
    """Pull resource paths out of a game log or a plain list of paths."""
    markers = [m for m in markers if m]
    out: List[str] = []
    for raw in lines:
        line = raw.rstrip("\r\n")
        if not line.strip():
            continue
        value = None
        for m in markers:
            idx = line.lower().find(m.lower())
            if idx >= 0:
                value = line[idx + len(m):]
                break
        if value is None:
            if _ENGINE_LINE_RE.match(line):
                continue
            value = line
        value = value.strip().lstrip(":").strip().strip("'\"")
        if value:
            out.append(value)
    return out


def read_missing_files_log(
    log_path: Path,
    resolver: PathResolver,
    markers: Iterable[str],
    log: Optional[DiagnosticLog] = None,
) -> Set[str]:
    """
    Keys (case-folded, relative to the level root) of every file the game
    reported as unloadable. A missing texture also matches the same name with
    one of the image fallback extensions.
    """
    try:
        text = Path(log_path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        if log is not None:
            log.error(f"Cannot read missing-files log {log_path}: {e.strerror or e}")
        return set()

    keys: Set[str] = set()
    for value in missing_paths_from_lines(text.splitlines(), markers):
        os_key = resolver.os_path_key(value)
        if os_key is not None:
            keys.add(resolver.resolve(os_key) or os_key)
            continue
        hit = resolver.resolve(value)
        if hit:
            keys.add(hit)
            continue
        rp = normalize_resource_path(value)
        if rp is None or rp.absolute:
            continue
        parts = list(rp.parts)
        if rp.anchored and len(parts) > 2 and parts[0].lower() == "levels" and parts[1].casefold() == resolver.level_name.casefold():
            parts = parts[2:]
        keys.add(path_key("/".join(parts)))
    if log is not None:
        log.info(f"Missing-files log {Path(log_path).name}: {len(keys)} entries")
    return keys
