from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..models.schema import DeleteCandidate, Diagnostic, Severity


def render_html_report(
    out_path: Path,
    level_summary: Dict[str, Any],
    candidates: List[DeleteCandidate],
    diagnostics: List[Diagnostic],
    graph: Dict[str, Any],
    csv_dir: Path = None,
) -> None:
    """
    Render the cleanup report for one scanned level.

    Args:
        out_path: Path where HTML report will be written
        level_summary: Level identity and counts
        candidates: Delete candidates in path order
        diagnostics: Everything the run reported
        graph: Serialised dependency graph (DependencyGraph.to_dict())
        csv_dir: Directory holding the CSV exports, linked from the report
    """
    templates_dir = Path(__file__).parent / "templates"
    env = Environment(
        loader=FileSystemLoader(str(templates_dir)),
        autoescape=select_autoescape(["html", "xml"]),
    )
    tpl = env.get_template("cleanup_report.html.j2")

    csv_relative_path = None
    if csv_dir:
        try:
            csv_relative_path = str(Path(csv_dir).relative_to(out_path.parent))
        except ValueError:
            csv_relative_path = str(csv_dir)

    html = tpl.render(
        level=level_summary,
        candidates=candidates,
        selected_mb=round(sum(c.size_mb for c in candidates if c.preselected), 2),
        total_mb=round(sum(c.size_mb for c in candidates), 2),
        errors=[d for d in diagnostics if d.severity == Severity.ERROR],
        warnings=[d for d in diagnostics if d.severity == Severity.WARNING],
        infos=[d for d in diagnostics if d.severity == Severity.INFO],
        nodes=graph.get("nodes", []),
        edges=graph.get("edges", []),
        csv_dir_path=csv_relative_path,
    )
    out_path.write_text(html, encoding="utf-8")
