from .event import (  # noqa: F401
    Event,
    EventCreate,
    EventPage,
    ExportBundle,
    SearchResult,
    StoreStats,
)
