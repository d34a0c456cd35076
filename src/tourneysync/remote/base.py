"""
TourneySync remote store contract.

The remote authoritative store is an opaque collaborator: each operation
returns a ``RemoteResult`` carrying either data or an error, never raising
for ordinary remote failures.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


class RemoteError(Exception):
    """A failure reported by the remote store."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details

    @property
    def is_transient(self) -> bool:
        """Network failures and 5xx responses are worth retrying."""
        return self.status_code is None or self.status_code >= 500


@dataclass
class RemoteResult:
    """(data, error) pair returned by every remote operation."""

    data: Any = None
    error: RemoteError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.data


class RemoteStore(ABC):
    """Abstract per-table CRUD surface of the remote store."""

    @abstractmethod
    def select(self, table: str) -> RemoteResult:
        """Fetch the full snapshot of a table as a list of records."""

    @abstractmethod
    def insert(self, table: str, payload: dict[str, Any]) -> RemoteResult:
        """Create a record; ``data`` should echo the stored row including ``id``."""

    @abstractmethod
    def update(self, table: str, record_id: str, payload: dict[str, Any]) -> RemoteResult:
        """Patch the record with the given server id."""

    @abstractmethod
    def delete(self, table: str, record_id: str) -> RemoteResult:
        """Delete the record with the given server id."""
