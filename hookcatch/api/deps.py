"""FastAPI dependencies resolving the process-wide container."""

from fastapi import Request

from hookcatch.container import Container
from hookcatch.services.events import EventService
from hookcatch.services.ingest import IngestService


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_event_service(request: Request) -> EventService:
    return get_container(request).events


def get_ingest_service(request: Request) -> IngestService:
    return get_container(request).ingest
