import logging
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Set, Tuple

from ..models.schema import Diagnostic, Severity

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]

_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


class DiagnosticLog:
    """
    Ordered, append-only record of everything an operation has to say.

    Every entry is mirrored to the python logger and, when given, to a
    fire-and-forget ``notify(severity, message)`` callable. Entries with a
    message already seen in this run are dropped.
    """

    def __init__(self, notify: Optional[Notifier] = None):
        self._entries: List[Diagnostic] = []
        self._seen: Set[str] = set()
        self._notify = notify

    def add(self, severity: Severity, message: str, code: str = "", source_file: Optional[str] = None) -> bool:
        if message in self._seen:
            return False
        self._seen.add(message)
        self._entries.append(Diagnostic(severity=severity, message=message, code=code, source_file=source_file))
        logger.log(_LEVELS[severity], message)
        if self._notify is not None:
            try:
                self._notify(severity.value, message)
            except Exception:
                logger.debug("notify callback failed for %r", message, exc_info=True)
        return True

    def info(self, message: str, code: str = "", source_file: Optional[str] = None) -> bool:
        return self.add(Severity.INFO, message, code, source_file)

    def warning(self, message: str, code: str = "", source_file: Optional[str] = None) -> bool:
        return self.add(Severity.WARNING, message, code, source_file)

    def error(self, message: str, code: str = "", source_file: Optional[str] = None) -> bool:
        return self.add(Severity.ERROR, message, code, source_file)

    @property
    def entries(self) -> List[Diagnostic]:
        return list(self._entries)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def by_severity(self, severity: Severity) -> List[Diagnostic]:
        return [d for d in self._entries if d.severity == severity]

    @property
    def warnings(self) -> List[Diagnostic]:
        return self.by_severity(Severity.WARNING)

    @property
    def errors(self) -> List[Diagnostic]:
        return self.by_severity(Severity.ERROR)

    def with_code(self, code: str) -> List[Diagnostic]:
        return [d for d in self._entries if d.code == code]

    def flush(self, log_dir: Path, prefix: str) -> Tuple[Path, Path]:
        """Write ``<prefix>_Warnings.txt`` and ``<prefix>_Errors.txt``, one line per entry."""
        log_dir.mkdir(parents=True, exist_ok=True)
        warn_path = log_dir / f"{prefix}_Warnings.txt"
        err_path = log_dir / f"{prefix}_Errors.txt"
        warn_path.write_text("".join(f"{d.message}\n" for d in self.warnings), encoding="utf-8")
        err_path.write_text("".join(f"{d.message}\n" for d in self.errors), encoding="utf-8")
        logger.info("Wrote %s and %s", warn_path, err_path)
        return warn_path, err_path
