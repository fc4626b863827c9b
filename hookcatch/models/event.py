"""Captured webhook event and the aggregate shapes built from it."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EventCreate(BaseModel):
    """Fields taken from an inbound request before the store assigns id and timestamp."""

    headers: dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    method: Optional[str] = None
    url: Optional[str] = None
    query: dict[str, Any] = Field(default_factory=dict)


class Event(BaseModel):
    """A stored event. Immutable once written."""

    model_config = ConfigDict(frozen=True)

    id: int
    timestamp: datetime
    headers: dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    method: Optional[str] = None
    url: Optional[str] = None
    query: dict[str, Any] = Field(default_factory=dict)


class StoreStats(_WireModel):
    total_events: int
    oldest_event: Optional[Event] = None
    newest_event: Optional[Event] = None
    database_size: str = "Unknown"
    database_bytes: Optional[int] = None


class EventPage(_WireModel):
    events: list[Event]
    total: int
    page: int
    limit: int
    total_pages: int


class SearchResult(_WireModel):
    query: str
    events: list[Event]
    total: int
    skip: int
    limit: int


class ExportBundle(_WireModel):
    export_date: datetime
    stats: StoreStats
    events: list[Event]
