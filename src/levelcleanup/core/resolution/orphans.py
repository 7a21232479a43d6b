from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from ...models.errors import DuplicateMaterialWarning, StaleLevelError
from ...models.schema import DeleteCandidate, DependencyGraph, LevelTree, MaterialDefinition
from ...utils.diagnostics import DiagnosticLog

logger = logging.getLogger(__name__)


def report_duplicate_materials(graph: DependencyGraph, log: Optional[DiagnosticLog]) -> List[str]:
    by_name: Dict[str, List[MaterialDefinition]] = {}
    for d in graph.material_definitions:
        by_name.setdefault(d.name.casefold(), []).append(d)

    dupes: List[str] = []
    for key in sorted(by_name):
        defs = by_name[key]
        locations = sorted({(d.source_file, d.structural_path) for d in defs})
        if len(locations) < 2:
            continue
        dupes.append(defs[0].name)
        if log is not None:
            where = ", ".join(f"{src} ({path})" for src, path in locations)
            log.warning(
                f"Duplicate material '{defs[0].name}' defined in {where}",
                code=DuplicateMaterialWarning.__name__,
                source_file=locations[0][0],
            )
    return dupes


def resolve_delete_candidates(
    tree: LevelTree,
    graph: DependencyGraph,
    missing_keys: Optional[Iterable[str]] = None,
    log: Optional[DiagnosticLog] = None,
) -> List[DeleteCandidate]:
    """
    Physical files that nothing reachable references, ordered by path.
    A candidate the game itself reported as missing is listed but not
    pre-selected.
    """
    if graph.generation != tree.generation:
        raise StaleLevelError(
            f"Dependency graph is from generation {graph.generation}, level is at {tree.generation}; read the level again"
        )
    missing = {k.casefold() for k in (missing_keys or ())}

    candidates: List[Tuple[str, DeleteCandidate]] = []
    unclassified: List[str] = []
    for f in graph.files:
        if not f.exists:
            continue
        if f.role == "unclassified":
            unclassified.append(f.rel_path)
            continue
        if f.key in graph.referenced or f.key in graph.always_keep or f.key in graph.roots:
            continue
        candidates.append(
            (
                f.key,
                DeleteCandidate(
                    full_path=f.path,
                    rel_path=f.rel_path,
                    size_mb=f.size_mb,
                    preselected=f.key not in missing,
                ),
            )
        )
    candidates.sort(key=lambda kv: kv[0])

    report_duplicate_materials(graph, log)
    if unclassified and log is not None:
        log.info(f"{len(unclassified)} unclassified file(s) kept: {', '.join(unclassified)}")

    out = [c for _, c in candidates]
    logger.info(
        "%d delete candidates (%d pre-selected, %.2f MB)",
        len(out),
        sum(1 for c in out if c.preselected),
        sum(c.size_mb for c in out),
    )
    return out
