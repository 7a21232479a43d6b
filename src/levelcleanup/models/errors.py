from typing import Optional


class LevelCleanupError(Exception):
    pass


class LevelTreeError(LevelCleanupError):
    """The level root is missing, unreadable or contains no level. Fatal to the run."""


class FormatError(LevelCleanupError):
    def __init__(self, source: str, message: str, line: Optional[int] = None, column: Optional[int] = None):
        self.source = source
        self.line = line
        self.column = column
        where = f" (line {line}, col {column})" if line is not None else ""
        super().__init__(f"{source}{where}: {message}")


class RewriteError(LevelCleanupError):
    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")


class DeletionError(LevelCleanupError):
    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")


class OperationCancelled(LevelCleanupError):
    pass


class StaleLevelError(LevelCleanupError):
    pass


class ConcurrentOperationError(LevelCleanupError):
    pass


# Warning categories. They are never raised; their names tag diagnostics.

class UnresolvedReferenceWarning(UserWarning):
    pass


class DuplicateKeyWarning(UserWarning):
    pass


class DuplicateMaterialWarning(UserWarning):
    pass


class RepairedSyntaxWarning(UserWarning):
    pass
