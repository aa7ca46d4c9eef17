"""
Contains base class for media selectors
"""
from abc import ABC, abstractmethod

from verified_media.core.entities import Event, SelectionOutcome


class MediaSelector(ABC):
    """
    Orchestrates cache → fetching → filtering → scoring → decision
    for a single event.
    """

    name: str

    @abstractmethod
    async def select_image(self, event: Event, generated_text: str) -> SelectionOutcome:
        """
        Select a verified image for the event, or explain why none was chosen.
        Must never raise uncaught exceptions.
        """
        raise NotImplementedError
