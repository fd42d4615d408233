"""
Store interface for Cosmo.

The tool handlers only ever talk to a CapsuleStore. The interface mirrors
the small query/mutation surface the handlers need from a relational
backend: filtered selects with ordering and pagination, exact counts,
insert, update and delete by id.

Filters combine with AND semantics. Every select orders by timestamp
(most recent first by default); ties fall back to insertion order so the
result is stable for a fixed dataset.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

from cosmo.schema import Capsule, NewCapsule


@dataclass(frozen=True)
class CapsuleFilter:
    """
    Row filter for select and count.

    Attributes:
        content_contains: Case-insensitive substring matched against content
        tags_overlap: Match capsules sharing at least one of these tags (OR)
        tags_contain: Match capsules carrying all of these tags (AND)
        timestamp_gte: Keep capsules with timestamp >= this value
        timestamp_gt: Keep capsules with timestamp > this value
    """

    content_contains: str | None = None
    tags_overlap: Sequence[str] | None = None
    tags_contain: Sequence[str] | None = None
    timestamp_gte: int | None = None
    timestamp_gt: int | None = None


class CapsuleStore(ABC):
    """
    Abstract base class for capsule storage backends.

    Implementations raise StorageError subclasses carrying the backend's
    message; they never return partial results on failure.
    """

    @abstractmethod
    def insert(self, capsule: NewCapsule) -> Capsule:
        """Persist a new capsule and return it with its assigned id."""
        ...

    @abstractmethod
    def select_all(
        self,
        filter: CapsuleFilter | None = None,
        descending: bool = True,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Capsule]:
        """Return matching capsules ordered by timestamp."""
        ...

    @abstractmethod
    def count(self, filter: CapsuleFilter | None = None) -> int:
        """Return the exact number of matching capsules."""
        ...

    @abstractmethod
    def get(self, capsule_id: str) -> Capsule | None:
        """Look up a single capsule by id."""
        ...

    @abstractmethod
    def update_by_id(
        self,
        capsule_id: str,
        content: str | None = None,
        tags: list[str] | None = None,
    ) -> Capsule:
        """
        Replace content and/or tags of a capsule.

        The timestamp is left untouched.

        Raises:
            CapsuleNotFoundError: If no capsule has that id
        """
        ...

    @abstractmethod
    def delete_by_id(self, capsule_id: str) -> bool:
        """Delete a capsule. Returns False if it didn't exist."""
        ...

    def close(self) -> None:
        """Release backend resources."""

    def __enter__(self) -> "CapsuleStore":
        """Enter context manager."""
        return self

    def __exit__(self, *args: object) -> None:
        """Exit context manager."""
        self.close()
