"""Error taxonomy shared by the resolvers, the dispatcher and the directory client."""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import Any, Optional


class ToolExecutionError(Exception):
    def __init__(self, error_type: str, message: str, *, recoverable: bool = True, data: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.error_type = error_type
        self.recoverable = recoverable
        self.data = data or {}

    def to_payload(self) -> dict[str, Any]:
        return {
            "error": {
                "type": self.error_type,
                "message": str(self),
                "recoverable": self.recoverable,
                "data": self.data,
            }
        }


class ResolutionKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    AMBIGUOUS = "AMBIGUOUS"
    MULTI_SERVER_NO_DEFAULT = "MULTI_SERVER_NO_DEFAULT"
    WRONG_TYPE = "WRONG_TYPE"


class ResolutionError(ToolExecutionError):
    """A server or channel identifier did not map to exactly one entity.

    ``candidates`` holds the user-facing labels (names, or ``name (ID)`` pairs)
    the caller can retry with.
    """

    def __init__(
        self,
        kind: ResolutionKind,
        message: str,
        *,
        entity: str,
        identifier: Optional[str] = None,
        candidates: Sequence[str] = (),
    ):
        self.kind = kind
        self.entity = entity
        self.identifier = identifier
        self.candidates = list(candidates)
        super().__init__(
            kind.value,
            message,
            recoverable=True,
            data={"entity": entity, "identifier": identifier, "candidates": self.candidates},
        )


class DirectoryError(Exception):
    """The Mezon directory could not be reached or answered with an error."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class EntityNotFound(DirectoryError):
    """The directory answered authoritatively that an ID does not exist."""
