"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/errors.py
Error taxonomy shared by the walker, hasher, index and resolution engine.

- AccessError        : unreadable path, skipped and reported
- IoError            : read/write/move failure on a single file
- ConflictError      : destination already exists
- CrossVolumeError   : hard link across filesystem boundaries
- InvariantViolation : operation forbidden by the engine contract, or index/disk desync
- ScanError          : scan root is missing or not a directory
- OperationCancelled : scan or hash pass aborted by the caller
"""

from typing import Optional


class DupIndexError(Exception):
    """Base class for every error raised by the engine."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        digest: Optional[str] = None,
        action: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.path = path
        self.digest = digest
        self.action = action

    @property
    def kind(self) -> str:
        """Taxonomy name reported across the boundary."""
        return type(self).__name__

    def __str__(self) -> str:
        return self.message


class AccessError(DupIndexError):
    pass


class IoError(DupIndexError):
    pass


class ConflictError(DupIndexError):
    pass


class CrossVolumeError(DupIndexError):
    pass


class InvariantViolation(DupIndexError):
    """Logic error in the caller, or an internal index/disk desync."""


class MemberNotFound(InvariantViolation):
    pass


class ScanError(DupIndexError):
    pass


class OperationCancelled(DupIndexError):
    def __init__(self, message: str = "Operation cancelled", **context):
        super().__init__(message, **context)
