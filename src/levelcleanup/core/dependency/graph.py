from __future__ import annotations

import fnmatch
import logging
from collections import deque
from pathlib import PurePosixPath
from typing import Dict, Iterable, List, Optional, Set

from ...models.schema import (
    ROOT_KINDS,
    DependencyGraph,
    FileRecord,
    FileReference,
    LevelTree,
    ParsedDocument,
)
from ...runtime.paths import path_key
from ...utils.diagnostics import DiagnosticLog
from ..extraction.references import DocumentReferences

logger = logging.getLogger(__name__)


def match_always_keep(rel_path: str, globs: Iterable[str]) -> bool:
    rel = rel_path.lower()
    name = PurePosixPath(rel).name
    for pat in globs:
        p = pat.lower()
        if fnmatch.fnmatchcase(rel, p) or fnmatch.fnmatchcase(name, p):
            return True
    return False


def _companion_keys(key: str, companions: Dict[str, str]) -> List[str]:
    out = []
    for ext, other in companions.items():
        if key.endswith(ext.lower()):
            out.append(key[: -len(ext)] + other.lower())
    return out


def build_dependency_graph(
    tree: LevelTree,
    documents: List[ParsedDocument],
    extracted: Dict[str, DocumentReferences],
    always_keep_globs: Iterable[str] = (),
    mesh_companions: Optional[Dict[str, str]] = None,
    prune_unused_materials: bool = False,
    log: Optional[DiagnosticLog] = None,
) -> DependencyGraph:
    """
    Reachability over the parsed documents.

    Root documents (the ones the game loads by convention) are the start set.
    A prefab or mesh only contributes its own references when something
    reachable points at it. The result depends only on the inputs, never on
    directory enumeration order.
    """
    companions = mesh_companions or {}
    index: Dict[str, FileRecord] = tree.index()
    docs: Dict[str, ParsedDocument] = {path_key(d.rel_path): d for d in documents}

    graph = DependencyGraph(generation=tree.generation, files=sorted(tree.files, key=lambda f: f.key))

    edges_by_source: Dict[str, List[FileReference]] = {}
    for src in sorted(extracted):
        refs = sorted(
            extracted[src].references,
            key=lambda e: (e.structural_path, e.target_key),
        )
        edges_by_source[path_key(src)] = refs
        graph.edges.extend(refs)
        for d in extracted[src].material_definitions:
            graph.material_definitions.append(d)

    graph.always_keep = {f.key for f in graph.files if match_always_keep(f.rel_path, always_keep_globs)}
    graph.roots = {k for k in sorted(docs) if docs[k].kind in ROOT_KINDS}

    # material textures are followed separately when pruning
    def _follow(e: FileReference) -> bool:
        return not (prune_unused_materials and e.material is not None)

    referenced: Set[str] = set()
    visited_docs: Set[str] = set()
    queue = deque(sorted(graph.roots))
    while queue:
        key = queue.popleft()
        if key in visited_docs:
            continue
        visited_docs.add(key)
        for e in edges_by_source.get(key, []):
            if not _follow(e):
                continue
            targets = [e.target_key] + [c for c in _companion_keys(e.target_key, companions) if c in index]
            for t in targets:
                if t in referenced:
                    continue
                referenced.add(t)
                if t in docs:
                    queue.append(t)

    used: Set[str] = set()
    for key in sorted(visited_docs):
        ext = extracted.get(docs[key].rel_path)
        if ext is not None:
            used.update(u.name.casefold() for u in ext.material_uses)
    graph.used_materials = used

    if prune_unused_materials:
        unscanned = _unscanned_meshes(referenced, docs, companions)
        if unscanned:
            if log is not None:
                log.warning(
                    f"Material pruning disabled: cannot read material names from {', '.join(unscanned)}",
                    source_file=unscanned[0],
                )
            prune_unused_materials = False
        live = {
            d.name.casefold()
            for d in graph.material_definitions
            if not prune_unused_materials
            or d.name.casefold() in used
            or (d.map_to and d.map_to.casefold() in used)
        }
        for e in graph.edges:
            if e.material is not None and e.material.casefold() in live and path_key(e.source_file) in visited_docs:
                referenced.add(e.target_key)

    # only physical files (or files outside the level that exist) count
    graph.referenced = referenced
    logger.info(
        "Dependency graph: %d files, %d edges, %d referenced, %d roots",
        len(graph.files),
        len(graph.edges),
        len(referenced & set(index)),
        len(graph.roots),
    )
    return graph


def _unscanned_meshes(referenced: Set[str], docs: Dict[str, ParsedDocument], companions: Dict[str, str]) -> List[str]:
    out = []
    for key in sorted(referenced):
        if key.endswith(".dae"):
            if key not in docs:
                out.append(key)
        elif key.endswith(".cdae"):
            if not any(c in docs for c in _companion_keys(key, companions)):
                out.append(key)
    return out
