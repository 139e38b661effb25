"""Pydantic contracts for the JSON emitted by ``borg info --json``.

Only the fields the report needs are declared; borg emits many more and
those are ignored. Timestamps are naive because borg prints them in the
``TZ`` of the child process, which the invoker pins to UTC.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from borgreport.domain.models import ArchiveInfo


class ArchiveStatsContract(BaseModel):
    model_config = ConfigDict(extra="ignore")

    original_size: int = Field(..., description="Size of the backup source")
    compressed_size: int = Field(..., description="Compressed archive size")
    deduplicated_size: int = Field(..., description="Deduplicated compressed size")
    nfiles: int = Field(..., description="Number of files in the archive")


class ArchiveContract(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    hostname: str
    duration: float = Field(..., ge=0, description="Backup duration in seconds")
    start: datetime
    stats: ArchiveStatsContract

    @field_validator("start")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def to_archive_info(self) -> ArchiveInfo:
        return ArchiveInfo(
            name=self.name,
            hostname=self.hostname,
            start=self.start,
            duration=self.duration,
            original_size=self.stats.original_size,
            compressed_size=self.stats.compressed_size,
            deduplicated_size=self.stats.deduplicated_size,
            nfiles=self.stats.nfiles,
        )


class CacheStatsContract(BaseModel):
    model_config = ConfigDict(extra="ignore")

    unique_csize: int = Field(
        ..., description="Deduplicated and compressed size of the whole repository"
    )


class CacheContract(BaseModel):
    model_config = ConfigDict(extra="ignore")

    stats: CacheStatsContract


class BorgInfoContract(BaseModel):
    """Response of ``borg info --last 1 --json``."""

    model_config = ConfigDict(extra="ignore")

    archives: list[ArchiveContract] = Field(default_factory=list)
    cache: CacheContract

    @property
    def unique_csize(self) -> int:
        return self.cache.stats.unique_csize

    def latest_archive(self) -> ArchiveInfo | None:
        """Return the newest archive; borg lists archives oldest first."""

        if not self.archives:
            return None
        return self.archives[-1].to_archive_info()


__all__ = [
    "ArchiveContract",
    "ArchiveStatsContract",
    "BorgInfoContract",
    "CacheContract",
    "CacheStatsContract",
]
