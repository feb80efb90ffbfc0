from __future__ import annotations


class ProjmanError(RuntimeError):
    pass


class DuplicateProjectError(ProjmanError):
    pass


class ProjectNotFoundError(ProjmanError):
    pass


class PathInvalidError(ProjmanError):
    pass


class StoreError(ProjmanError):
    """Persistence failure (read or write of the registry file)."""


class StoreNotFoundError(StoreError):
    pass


class StoreCorruptError(StoreError):
    pass


class StoreWriteError(StoreError):
    pass


class RevisionConflictError(StoreError):
    """The stored snapshot changed since it was loaded."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Registry revision moved from {expected} to {actual}")
        self.expected = expected
        self.actual = actual


class GitProbeError(ProjmanError):
    pass
