"""
Review Policy Interface

Common interface of the alternative scheduling policies. A policy keeps its
own per-item state and answers one question after each review: when is the
item due next.
"""

import copy
import datetime
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from srs_engine.repetition.models import MemoryState, SchedulingPolicy


class ReviewPolicy(ABC):
    """
    Abstract base class for alternative scheduling policies.

    Items are enrolled lazily on their first review under the policy, or all
    at once through ``seed_all`` when a learner migrates explicitly.
    """

    policy_type: SchedulingPolicy

    def __init__(self, learner_id: str):
        self.learner_id = learner_id
        self._lock = threading.RLock()

    @abstractmethod
    def review(
        self,
        item_id: str,
        quality: float,
        confidence: float,
        reviewed_at: datetime.datetime
    ) -> datetime.datetime:
        """
        Update the item's policy state after a review.

        Args:
            item_id: Reviewed item
            quality: Response quality (0-1)
            confidence: Self-reported confidence (0-1)
            reviewed_at: When the review happened

        Returns:
            Next review date
        """
        pass

    @abstractmethod
    def seed_from_memory_state(self, state: MemoryState) -> None:
        """
        Enroll an item from its current memory state.

        Args:
            state: The item's memory state
        """
        pass

    @abstractmethod
    def enrolled_items(self) -> List[str]:
        """Ids of items with policy state, sorted."""
        pass

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        pass

    def seed_all(self, states: Iterable[MemoryState]) -> int:
        """
        Enroll every given state; returns the number enrolled.
        """
        count = 0
        for state in states:
            if not state.archived:
                self.seed_from_memory_state(state)
                count += 1
        return count

    @abstractmethod
    def _entries(self) -> Dict[str, Any]:
        """Per-item policy state keyed by item id."""
        pass

    def checkpoint(self, item_id: str) -> Optional[Any]:
        """
        Copy of an item's policy state, for ``restore`` after a failed write.

        Args:
            item_id: Item identifier

        Returns:
            The copied entry, or None if the item is not enrolled
        """
        with self._lock:
            return copy.deepcopy(self._entries().get(item_id))

    def restore(self, item_id: str, saved: Optional[Any]) -> None:
        """Put back an entry taken by ``checkpoint``; None unenrolls the item."""
        with self._lock:
            entries = self._entries()
            if saved is None:
                entries.pop(item_id, None)
            else:
                entries[item_id] = saved
