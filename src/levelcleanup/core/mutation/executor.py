from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional

from ...models.errors import DeletionError, RewriteError
from ...models.schema import DeleteCandidate, LevelTree
from ...utils.diagnostics import DiagnosticLog
from ..discovery.content_loader import write_text
from ..rewrite.positions import FileRewrite

logger = logging.getLogger(__name__)


def _inside(root: Path, path: Path) -> bool:
    try:
        path.resolve().relative_to(root.resolve())
        return True
    except ValueError:
        return False


def write_deleted_summary(log_dir: Path, prefix: str, deleted: List[str]) -> Path:
    log_dir.mkdir(parents=True, exist_ok=True)
    out = log_dir / f"{prefix}_Deleted.txt"
    out.write_text("".join(f"{p}\n" for p in deleted), encoding="utf-8")
    return out


def delete_files(
    tree: LevelTree,
    candidates: Iterable[DeleteCandidate],
    log: DiagnosticLog,
    log_dir: Optional[Path] = None,
    prefix: str = "DeleteAssets",
) -> DiagnosticLog:
    """
    Best effort: a file that cannot be removed is recorded as a DeletionError
    and the rest are still deleted. Any deletion invalidates graphs built
    from ``tree``. The diagnostics are flushed to ``log_dir`` before returning.
    """
    deleted: List[str] = []
    for c in candidates:
        path = Path(c.full_path)
        try:
            if not _inside(tree.root, path):
                raise DeletionError(c.full_path, "outside the level directory; not deleted")
            os.remove(path)
        except FileNotFoundError:
            log.warning(f"{c.full_path}: already gone", source_file=c.rel_path)
            continue
        except DeletionError as e:
            log.error(str(e), code=DeletionError.__name__, source_file=c.rel_path)
            continue
        except OSError as e:
            err = DeletionError(c.full_path, e.strerror or str(e))
            log.error(str(err), code=DeletionError.__name__, source_file=c.rel_path)
            continue
        deleted.append(str(path))

    if deleted:
        gone = {str(Path(p)) for p in deleted}
        tree.files = [f for f in tree.files if str(Path(f.path)) not in gone]
        tree.generation += 1
    log.info(f"Deleted {len(deleted)} file(s)")

    out_dir = log_dir or tree.root.parent
    write_deleted_summary(out_dir, prefix, deleted)
    log.flush(out_dir, prefix)
    return log


def commit_rewrite(
    tree: LevelTree,
    plans: Iterable[FileRewrite],
    log: DiagnosticLog,
    log_dir: Optional[Path] = None,
    prefix: str = "ShiftPositions",
) -> DiagnosticLog:
    """Write every planned file atomically in its original encoding; failures are per file."""
    files = 0
    fields = 0
    for plan in plans:
        doc = plan.doc
        try:
            write_text(doc.path, plan.new_text, doc.encoding)
        except (OSError, UnicodeEncodeError) as e:
            err = RewriteError(doc.rel_path, f"cannot write file: {getattr(e, 'strerror', None) or e}")
            log.error(str(err), code=RewriteError.__name__, source_file=doc.rel_path)
            continue
        plan.written = True
        files += 1
        fields += plan.changed
        log.info(f"Shifted {plan.changed} position(s) in {doc.rel_path}", source_file=doc.rel_path)

    if files:
        tree.generation += 1
    log.info(f"Changed {fields} position field(s) in {files} file(s)")
    log.flush(log_dir or tree.root.parent, prefix)
    return log
