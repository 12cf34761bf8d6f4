"""
Pydantic model for the repository message that flows through the pipeline.

WARNING: The JSON shape is shared by the collector (producer) and the validator (consumer) and by anything
subscribed to the outbound subjects. `language` and `topics` are omitted when empty, never sent as "" / [] / null.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from secflow.errors import RecordDecodeError

if TYPE_CHECKING:
    from github.Repository import Repository

_OMIT_WHEN_EMPTY = ("language", "topics")

_ZERO_TIME = datetime(1, 1, 1, tzinfo=UTC)


class RepositoryRecord(BaseModel):
    """Repository metadata published by the collector and routed by the validator."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(min_length=1)
    clone_url: str
    ssh_url: str = ""
    https_url: str = ""
    created_at: datetime = _ZERO_TIME
    updated_at: datetime = _ZERO_TIME
    language: str = ""
    topics: list[str] = Field(default_factory=list)

    @field_validator("language", mode="before")
    @classmethod
    def _null_language(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("topics", mode="before")
    @classmethod
    def _null_topics(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("created_at", "updated_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def to_json(self) -> bytes:
        """Serialize to the wire format, leaving out empty optional fields."""
        exclude = {field for field in _OMIT_WHEN_EMPTY if not getattr(self, field)}
        return self.model_dump_json(exclude=exclude).encode("utf-8")

    @classmethod
    def from_json(cls, payload: bytes | str) -> RepositoryRecord:
        """Decode a wire payload.

        Raises:
            RecordDecodeError: If the payload is not valid JSON or misses required fields
        """
        try:
            return cls.model_validate_json(payload)
        except ValidationError as e:
            raise RecordDecodeError(f"failed to unmarshal repository message: {e}") from e

    @classmethod
    def from_github(cls, repo: Repository) -> RepositoryRecord:
        """Build a record from a PyGithub repository object.

        https_url repeats clone_url; GitHub's clone URL already is the HTTPS one.
        """
        return cls(
            name=repo.name,
            clone_url=repo.clone_url,
            ssh_url=repo.ssh_url or "",
            https_url=repo.clone_url,
            created_at=repo.created_at or _ZERO_TIME,
            updated_at=repo.updated_at or _ZERO_TIME,
            language=repo.language or "",
            topics=list(repo.topics or []),
        )
