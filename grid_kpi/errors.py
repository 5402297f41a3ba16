"""Error taxonomy shared by the validators, query builders and routes."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    INVALID_ID_FORMAT = "invalid_id_format"
    INVALID_YEAR_FORMAT = "invalid_year_format"
    MISSING_REQUIRED_FILTER = "missing_required_filter"
    NOT_FOUND = "not_found"
    HIERARCHY_MISMATCH = "hierarchy_mismatch"
    SCHEMA_MISMATCH = "schema_mismatch"
    DATA_SOURCE_ERROR = "data_source_error"

    @property
    def is_client_error(self) -> bool:
        return self not in {ErrorKind.SCHEMA_MISMATCH, ErrorKind.DATA_SOURCE_ERROR}

    @property
    def status_code(self) -> int:
        return 400 if self.is_client_error else 500


class DataAccessError(RuntimeError):
    """Base error carrying a structural kind that decides the HTTP status."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details
        self.extra = dict(extra or {})

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if not self.kind.is_client_error:
            if self.details:
                payload["details"] = self.details
            payload.update(self.extra)
        return payload


class ValidationFailure(DataAccessError):
    """Raised for request input that fails format, presence or hierarchy checks."""


class InvalidIdFormat(ValidationFailure):
    def __init__(self, label: str, raw: Any) -> None:
        super().__init__(
            ErrorKind.INVALID_ID_FORMAT,
            f"Invalid {label} format: '{raw}'. Must be an integer.",
            extra={"column": label, "value": raw},
        )
        self.label = label
        self.raw = raw


class InvalidYearFormat(ValidationFailure):
    def __init__(self, raw: Any) -> None:
        super().__init__(
            ErrorKind.INVALID_YEAR_FORMAT,
            f"Invalid year format: '{raw}'. Must be an integer.",
        )
        self.raw = raw


class MissingRequiredFilter(ValidationFailure):
    def __init__(self, *params: str) -> None:
        super().__init__(
            ErrorKind.MISSING_REQUIRED_FILTER,
            f"{' or '.join(params)} is required.",
        )
        self.params = params


class NotFound(ValidationFailure):
    def __init__(self, label: str, value: int) -> None:
        super().__init__(ErrorKind.NOT_FOUND, f"Invalid {label}: {value} does not exist.")
        self.label = label
        self.value = value


class HierarchyMismatch(ValidationFailure):
    def __init__(self, label: str, value: int, parent_label: str, parent_value: int) -> None:
        super().__init__(
            ErrorKind.HIERARCHY_MISMATCH,
            f"Invalid {label}: {value} does not exist or does not belong to {parent_label}: {parent_value}.",
        )
        self.label = label
        self.value = value
        self.parent_label = parent_label
        self.parent_value = parent_value


class SchemaMismatch(DataAccessError):
    def __init__(self, message: str, tables_checked: list[str], missing: list[str]) -> None:
        super().__init__(
            ErrorKind.SCHEMA_MISMATCH,
            message,
            details=f"Missing in: {', '.join(missing)}",
            extra={"tablesChecked": list(tables_checked), "missingYearColumn": list(missing)},
        )


class DataSourceError(DataAccessError):
    """Raised when the relational store fails (connectivity, timeout, bad SQL)."""

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        super().__init__(ErrorKind.DATA_SOURCE_ERROR, message, details=details)
