from __future__ import annotations

import json
import time
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from ...models.schema import DeleteCandidate
from ...reporting.csv_export import export_all_to_csv
from ...reporting.render import render_html_report
from ...utils.diagnostics import DiagnosticLog
from .level_session import LevelReading, find_delete_candidates, read_level


def _write_json(path: Path, obj: Any) -> None:
    path.write_text(json.dumps(obj, indent=2, ensure_ascii=False, default=str), encoding="utf-8")


def analyze_level(
    level_path: str,
    output_run_dir: str,
    config: Dict[str, Any],
    missing_log: Optional[str] = None,
    log_dir: Optional[str] = None,
    diagnostics: Optional[DiagnosticLog] = None,
    keep_json: bool = True,
) -> Dict[str, Any]:
    """
    Read a level, resolve its delete candidates and write the run folder:
    artifacts/*.json, csv/*.csv and report.html. Returns the level summary.
    """
    t0 = time.time()
    out_dir = Path(output_run_dir)
    artifacts_dir = out_dir / "artifacts"
    csv_dir = out_dir / "csv"
    out_dir.mkdir(parents=True, exist_ok=True)

    diag = diagnostics if diagnostics is not None else DiagnosticLog()
    reading: LevelReading = read_level(Path(level_path), config, diag, log_dir=log_dir)
    candidates: List[DeleteCandidate] = find_delete_candidates(
        reading,
        Path(missing_log) if missing_log else None,
        config,
        diag,
        log_dir=log_dir,
    )

    tree = reading.tree
    level_summary = {
        "level_name": tree.level_name,
        "level_root": str(tree.root),
        "title": reading.title,
        "generated_at_epoch": int(time.time()),
        "file_count": len(tree.files),
        "document_count": len(reading.documents),
        "unparsed_documents": reading.failed,
        "candidate_count": len(candidates),
        "preselected_count": sum(1 for c in candidates if c.preselected),
        "candidate_mb": round(sum(c.size_mb for c in candidates), 2),
        "error_count": len(diag.errors),
        "warning_count": len(diag.warnings),
        "elapsed_seconds": round(time.time() - t0, 2),
    }
    graph_blob = reading.graph.to_dict()

    if keep_json:
        artifacts_dir.mkdir(parents=True, exist_ok=True)
        _write_json(artifacts_dir / "level_summary.json", level_summary)
        _write_json(artifacts_dir / "files_index.json", [asdict(f) for f in tree.files])
        _write_json(artifacts_dir / "dependency_graph.json", graph_blob)
        _write_json(artifacts_dir / "delete_candidates.json", [asdict(c) for c in candidates])
        _write_json(artifacts_dir / "diagnostics.json", [asdict(d) for d in diag])

    export_all_to_csv(reading.graph, candidates, diag.entries, csv_dir)
    render_html_report(
        out_path=out_dir / "report.html",
        level_summary=level_summary,
        candidates=candidates,
        diagnostics=diag.entries,
        graph=graph_blob,
        csv_dir=csv_dir,
    )
    return level_summary
