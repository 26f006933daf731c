"""
Repository-layer exceptions for record store flows.
"""

from __future__ import annotations


class StorageError(RuntimeError):
    """
    Raised when the persistence layer fails (I/O error, locked or full
    database, constraint violation). The failed operation is never
    partially applied; the caller may retry or surface it to the user.
    """

    def __init__(self, message: str, *, dataset_type: str | None = None, operation: str | None = None) -> None:
        super().__init__(message)
        self.dataset_type = dataset_type
        self.operation = operation
