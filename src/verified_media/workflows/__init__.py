"""
Workflows module - Selection orchestration.
"""
from verified_media.workflows.base import MediaSelector
from verified_media.workflows.factory import create_engine_from_config
from verified_media.workflows.selection_engine import SelectionEngine, SelectionState

__all__ = [
    "MediaSelector",
    "SelectionEngine",
    "SelectionState",
    "create_engine_from_config",
]
