from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from ...config.loader import load_config, package_root
from ...models.errors import ConcurrentOperationError, FormatError, StaleLevelError
from ...models.schema import (
    POSITION_KINDS,
    DeleteCandidate,
    DependencyGraph,
    LevelTree,
    ParsedDocument,
)
from ...runtime.cancel import CancellationToken
from ...runtime.paths import PathResolver
from ...utils.diagnostics import DiagnosticLog
from ..dependency.graph import build_dependency_graph
from ..discovery.level_scanner import scan_level
from ..extraction.references import DocumentReferences, extract_references
from ..mutation.executor import commit_rewrite, delete_files
from ..parsing.documents import parse_document
from ..resolution.missing_log import read_missing_files_log
from ..resolution.orphans import resolve_delete_candidates
from ..rewrite.positions import rewrite_positions

logger = logging.getLogger(__name__)


@dataclass
class LevelReading:
    tree: LevelTree
    documents: List[ParsedDocument]
    extracted: Dict[str, DocumentReferences]
    graph: DependencyGraph
    failed: List[str] = field(default_factory=list)
    title: Optional[str] = None
    elapsed_seconds: float = 0.0

    @property
    def identity(self) -> Tuple[str, Path]:
        return self.tree.level_name, self.tree.root


@dataclass
class ShiftResult:
    changed: int
    files: List[str]
    log: DiagnosticLog


def _config(config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return config if config is not None else load_config(package_root())


def _prefix(config: Dict[str, Any], op: str, fallback: str) -> str:
    return (config.get("log_prefixes") or {}).get(op) or fallback


def _log_dir(tree: LevelTree, log_dir: Optional[Path]) -> Path:
    return Path(log_dir) if log_dir else tree.root.parent


@contextmanager
def exclusive(tree: LevelTree) -> Iterator[None]:
    """At most one operation runs against a level tree at a time."""
    if not tree._lock.acquire(blocking=False):
        raise ConcurrentOperationError(f"Another operation is already running on {tree.level_name}")
    try:
        yield
    finally:
        tree._lock.release()


def make_resolver(tree: LevelTree, config: Dict[str, Any]) -> PathResolver:
    return PathResolver(
        tree.root,
        tree.mount_root,
        {f.key: f.rel_path for f in tree.files},
        config.get("image_fallback_extensions") or (),
    )


def parse_documents(
    tree: LevelTree,
    log: DiagnosticLog,
    kinds: Optional[Iterable] = None,
) -> Tuple[List[ParsedDocument], List[str]]:
    wanted = set(kinds) if kinds is not None else None
    documents: List[ParsedDocument] = []
    failed: List[str] = []
    for record in tree.files:
        if record.role != "document" or (wanted is not None and record.kind not in wanted):
            continue
        try:
            documents.append(parse_document(record, log))
        except FormatError as e:
            failed.append(record.rel_path)
            log.error(str(e), code=FormatError.__name__, source_file=record.rel_path)
    return documents, failed


def _build(tree: LevelTree, documents: List[ParsedDocument], config: Dict[str, Any], log: DiagnosticLog):
    resolver = make_resolver(tree, config)
    extracted = {d.rel_path: extract_references(d, resolver, log) for d in documents}
    graph = build_dependency_graph(
        tree,
        documents,
        extracted,
        always_keep_globs=config.get("always_keep_globs") or (),
        mesh_companions=config.get("mesh_companion_extensions") or {},
        prune_unused_materials=bool(config.get("prune_unused_materials")),
        log=log,
    )
    return extracted, graph


def read_level(
    level_path: Path,
    config: Optional[Dict[str, Any]] = None,
    log: Optional[DiagnosticLog] = None,
    cancel: Optional[CancellationToken] = None,
    log_dir: Optional[Path] = None,
) -> LevelReading:
    """
    Scan, parse and link a level. Only a missing or unreadable level root is
    fatal; file level problems end up in ``log`` which is flushed before
    returning.
    """
    t0 = time.time()
    config = _config(config)
    log = log if log is not None else DiagnosticLog()
    cancel = cancel or CancellationToken()

    tree = scan_level(Path(level_path), config, log)
    with exclusive(tree):
        cancel.check("parsing")
        documents, failed = parse_documents(tree, log)
        cancel.check("linking")
        extracted, graph = _build(tree, documents, config, log)

        title = next((d.title for d in documents if d.title), None)
        log.info(f"Read level {tree.level_name}{f' ({title})' if title else ''}: {len(documents)} documents, {len(tree.files)} files")
        log.flush(_log_dir(tree, log_dir), _prefix(config, "read", "ReadLevel"))

    return LevelReading(
        tree=tree,
        documents=documents,
        extracted=extracted,
        graph=graph,
        failed=failed,
        title=title,
        elapsed_seconds=round(time.time() - t0, 2),
    )


def find_delete_candidates(
    reading: LevelReading,
    missing_log_path: Optional[Path] = None,
    config: Optional[Dict[str, Any]] = None,
    log: Optional[DiagnosticLog] = None,
    cancel: Optional[CancellationToken] = None,
    log_dir: Optional[Path] = None,
) -> List[DeleteCandidate]:
    config = _config(config)
    log = log if log is not None else DiagnosticLog()
    cancel = cancel or CancellationToken()
    tree = reading.tree

    with exclusive(tree):
        cancel.check("resolving")
        missing = set()
        if missing_log_path:
            missing = read_missing_files_log(
                Path(missing_log_path),
                make_resolver(tree, config),
                config.get("missing_log_markers") or (),
                log,
            )
        candidates = resolve_delete_candidates(tree, reading.graph, missing, log)
        log.flush(_log_dir(tree, log_dir), _prefix(config, "read", "ReadLevel"))
    return candidates


def delete_candidates(
    reading: LevelReading,
    selected: Iterable[DeleteCandidate],
    config: Optional[Dict[str, Any]] = None,
    log: Optional[DiagnosticLog] = None,
    cancel: Optional[CancellationToken] = None,
    log_dir: Optional[Path] = None,
) -> DiagnosticLog:
    """Delete the caller-approved candidates. The reading is stale afterwards."""
    config = _config(config)
    log = log if log is not None else DiagnosticLog()
    cancel = cancel or CancellationToken()
    tree = reading.tree

    with exclusive(tree):
        if reading.graph.generation != tree.generation:
            raise StaleLevelError("The level changed since it was read; read it again before deleting")
        cancel.check("deleting")
        return delete_files(
            tree,
            list(selected),
            log,
            log_dir=_log_dir(tree, log_dir),
            prefix=_prefix(config, "delete", "DeleteAssets"),
        )


def shift_positions(
    tree: LevelTree,
    dx,
    dy,
    dz,
    config: Optional[Dict[str, Any]] = None,
    log: Optional[DiagnosticLog] = None,
    cancel: Optional[CancellationToken] = None,
    log_dir: Optional[Path] = None,
) -> ShiftResult:
    """
    Move every placed object by (dx, dy, dz). Scene documents are read fresh
    from disk. A file that cannot be shifted safely is left untouched and
    reported as an error.
    """
    config = _config(config)
    log = log if log is not None else DiagnosticLog()
    cancel = cancel or CancellationToken()

    with exclusive(tree):
        cancel.check("parsing")
        documents, _ = parse_documents(tree, log, kinds=POSITION_KINDS)
        cancel.check("rewriting")
        plans = rewrite_positions(documents, dx, dy, dz, log)
        cancel.check("writing")
        commit_rewrite(
            tree,
            plans,
            log,
            log_dir=_log_dir(tree, log_dir),
            prefix=_prefix(config, "shift", "ShiftPositions"),
        )
    written = [p for p in plans if p.written]
    return ShiftResult(
        changed=sum(p.changed for p in written),
        files=[p.doc.rel_path for p in written],
        log=log,
    )
