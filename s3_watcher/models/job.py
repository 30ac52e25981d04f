"""
Job table models.

This module defines the structure of the YAML job table: an ordered list
of jobs, each pairing an external command with a three-dimensional filter.
"""

from typing import Any, List

from pydantic import BaseModel, Field, field_validator


class JobFilter(BaseModel):
    """Filter selecting the events a job is run for."""

    events: List[str] = Field(
        default_factory=list, description="Patterns matched against the event name"
    )
    buckets: List[str] = Field(
        default_factory=list, description="Patterns matched against the bucket name"
    )
    objects: List[str] = Field(
        default_factory=list, description="Patterns matched against the object key"
    )

    @field_validator("events", "buckets", "objects", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        """Treat an empty YAML key (``events:``) as an empty list."""
        if v is None:
            return []
        return v


class JobSpec(BaseModel):
    """An external command and the filter that triggers it."""

    command: str = Field(..., min_length=1, description="Path to the executable to run")
    filter: JobFilter = Field(default_factory=JobFilter)

    @field_validator("filter", mode="before")
    @classmethod
    def none_as_default_filter(cls, v: Any) -> Any:
        if v is None:
            return JobFilter()
        return v


class JobTable(BaseModel):
    """Ordered set of jobs, in declaration order."""

    jobs: List[JobSpec] = Field(default_factory=list)

    @field_validator("jobs", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        if v is None:
            return []
        return v
