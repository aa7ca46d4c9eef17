"""
Verified media selection for historical event posts.
"""
from verified_media.core.entities import Accepted, Event, Rejected, SelectionOutcome
from verified_media.workflows import SelectionEngine, create_engine_from_config

__all__ = [
    "Accepted",
    "Event",
    "Rejected",
    "SelectionOutcome",
    "SelectionEngine",
    "create_engine_from_config",
]
