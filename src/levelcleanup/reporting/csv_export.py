"""
CSV Export Module - Level Cleanup Results

Exports scan results to CSV files for review in a spreadsheet before deleting.

Generates:
1. delete_candidates.csv - Orphaned files with size and pre-selection
2. files_inventory.csv - Complete file listing with role and reference state
3. diagnostics.csv - Every info/warning/error of the run

delete_candidates.csv can be edited and fed back to ``levelcleanup delete
--from-csv``: only rows whose Selected column says "Yes" are deleted.
"""

import csv
from pathlib import Path
from typing import Dict, Iterable, List, Set

from ..models.schema import DeleteCandidate, DependencyGraph, Diagnostic

CANDIDATE_COLUMNS = ["Path", "Full Path", "Size (MB)", "Selected"]


def format_size(bytes_val: int) -> str:
    """Format bytes into human-readable size"""
    if bytes_val is None:
        return ""
    if bytes_val < 1024:
        return f"{bytes_val} B"
    elif bytes_val < 1024 * 1024:
        return f"{bytes_val / 1024:.1f} KB"
    else:
        return f"{bytes_val / (1024 * 1024):.2f} MB"


def export_delete_candidates(candidates: List[DeleteCandidate], output_path: Path) -> int:
    with open(output_path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerow(CANDIDATE_COLUMNS)
        for c in candidates:
            writer.writerow([
                c.rel_path,
                c.full_path,
                f"{c.size_mb:.2f}",
                'Yes' if c.preselected else 'No',
            ])
    return len(candidates)


def export_files_inventory(graph: DependencyGraph, output_path: Path) -> int:
    """
    Columns:
    - File Path
    - Role (document/asset/unclassified)
    - Kind (document kind, if any)
    - Size (Bytes)
    - Size (Formatted)
    - Referenced
    - Always Keep
    - Referenced By
    """
    with open(output_path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerow([
            'File Path',
            'Role',
            'Kind',
            'Size (Bytes)',
            'Size (Formatted)',
            'Referenced',
            'Always Keep',
            'Referenced By',
        ])
        for rec in graph.files:
            writer.writerow([
                rec.rel_path,
                rec.role,
                rec.kind.value if rec.kind else '',
                rec.size_bytes,
                format_size(rec.size_bytes),
                'Yes' if rec.key in graph.referenced else 'No',
                'Yes' if rec.key in graph.always_keep else 'No',
                '; '.join(graph.referencing(rec.key)),
            ])
    return len(graph.files)


def export_diagnostics(diagnostics: Iterable[Diagnostic], output_path: Path) -> int:
    count = 0
    with open(output_path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerow(['Severity', 'Code', 'File', 'Message'])
        for d in diagnostics:
            writer.writerow([d.severity.value, d.code, d.source_file or '', d.message])
            count += 1
    return count


def export_all_to_csv(
    graph: DependencyGraph,
    candidates: List[DeleteCandidate],
    diagnostics: Iterable[Diagnostic],
    output_dir: Path,
) -> Dict[str, int]:
    """Returns the number of rows written per file."""
    output_dir.mkdir(parents=True, exist_ok=True)
    return {
        'delete_candidates': export_delete_candidates(candidates, output_dir / "delete_candidates.csv"),
        'files_inventory': export_files_inventory(graph, output_dir / "files_inventory.csv"),
        'diagnostics': export_diagnostics(diagnostics, output_dir / "diagnostics.csv"),
    }


def load_selection(csv_path: Path) -> Set[str]:
    """Relative paths marked Selected=Yes in an (edited) delete_candidates.csv."""
    selected: Set[str] = set()
    with open(csv_path, newline='', encoding='utf-8') as f:
        for row in csv.DictReader(f):
            if (row.get('Selected') or '').strip().lower() in ('yes', 'y', 'true', '1'):
                path = (row.get('Path') or '').strip()
                if path:
                    selected.add(path.replace('\\', '/').casefold())
    return selected
