from __future__ import annotations

from enum import Enum


class ErrorCode(Enum):
    # === Not Found ===
    NOT_FOUND = "NOT_FOUND"

    # === Validation Failures ===
    # field value is out of bounds, blank, or references a missing scope
    VALIDATION_FAILED = "VALIDATION_FAILED"

    # === Structural Violations ===
    # cycle, duplicate sort order, non-empty delete, cross-gradebook reference
    STRUCTURAL_INVARIANT = "STRUCTURAL_INVARIANT"

    # === Constraint Violations ===
    DUPLICATE_GRADEBOOK = "DUPLICATE_GRADEBOOK"


class GradebookError(Exception):
    """Base class for failures the engine reports to its callers."""

    code: ErrorCode = ErrorCode.VALIDATION_FAILED
    status_code: int = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(GradebookError):
    """Malformed input: blank name, weight out of range, unknown parent scope."""

    code = ErrorCode.VALIDATION_FAILED
    status_code = 400


class StructuralInvariantError(GradebookError):
    """The mutation (or the stored data) would break the tree's invariants."""

    code = ErrorCode.STRUCTURAL_INVARIANT
    status_code = 409


class NotFoundError(GradebookError):
    code = ErrorCode.NOT_FOUND
    status_code = 404


class DuplicateGradebookError(GradebookError):
    code = ErrorCode.DUPLICATE_GRADEBOOK
    status_code = 409
