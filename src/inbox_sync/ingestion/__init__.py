"""Ingestion pipeline components."""

from .cursor import SyncCursorStore
from .folders import resolve_folder_paths, resolve_folders
from .parser import EmailParser
from .pipeline import EmailParserProtocol, EventDispatcher, IngestionPipeline

__all__ = [
    "EmailParser",
    "EmailParserProtocol",
    "EventDispatcher",
    "IngestionPipeline",
    "SyncCursorStore",
    "resolve_folder_paths",
    "resolve_folders",
]
