"""Database models for api-endpoints."""

from dataclasses import dataclass


@dataclass
class StoredEntry:
    """A response body kept in a ``ResponseStore``."""

    key: str
    value: str
    created_at: float
    ttl_seconds: int
    access_count: int = 0

    @property
    def expires_at(self) -> float:
        return self.created_at + self.ttl_seconds

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at
