"""
Repository layer for the engagement analytics feature.
"""

from .event_repository import EventStore, EventStoreError, PostgresEventStore

__all__ = ["EventStore", "EventStoreError", "PostgresEventStore"]
