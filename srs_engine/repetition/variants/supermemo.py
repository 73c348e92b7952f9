"""
SuperMemo SM-2

Each item carries an easiness factor (EF), an interval and a repetition
number. A review quality in [0, 1] is mapped to the classic 0-5 grade.
"""

import datetime
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from srs_engine.common.config import SuperMemoConfig
from srs_engine.common.error_handling import PolicyError
from srs_engine.common.logger import app_logger
from srs_engine.common.serialization import serialize
from srs_engine.repetition.intervals import round_half_up
from srs_engine.repetition.models import MemoryState, SchedulingPolicy
from srs_engine.repetition.variants.base import ReviewPolicy

# Module logger
logger = app_logger.getChild("repetition.variants.supermemo")

SUPPORTED_VERSIONS = ("SM-2",)


@dataclass
class SuperMemoItem:
    item_id: str
    easiness_factor: float
    interval: int = 0
    repetition_number: int = 0
    last_quality_response: Optional[int] = None


def quality_to_grade(quality: float) -> int:
    """Map a 0-1 response quality to the 0-5 SM-2 grade."""
    return min(5, max(0, round_half_up(quality * 5)))


class SuperMemoAlgorithm(ReviewPolicy):
    """SM-2 scheduling for one learner."""

    policy_type = SchedulingPolicy.SUPERMEMO

    def __init__(
        self,
        learner_id: str,
        version: str = "SM-2",
        config: Optional[SuperMemoConfig] = None
    ):
        super().__init__(learner_id)
        if version not in SUPPORTED_VERSIONS:
            raise PolicyError(f"Unsupported SuperMemo version: {version}", learner_id)
        self.version = version
        self.config = config or SuperMemoConfig()
        self.items: Dict[str, SuperMemoItem] = {}

    def _clamp_easiness(self, value: float) -> float:
        return min(max(value, self.config.min_easiness), self.config.max_easiness)

    def update_easiness(self, easiness: float, grade: int) -> float:
        """
        SM-2 easiness update.

        Args:
            easiness: Current easiness factor
            grade: Review grade (0-5)

        Returns:
            Clamped new easiness factor
        """
        miss = 5 - grade
        return self._clamp_easiness(easiness + (0.1 - miss * (0.08 + miss * 0.02)))

    def _entries(self) -> Dict[str, SuperMemoItem]:
        return self.items

    def enrolled_items(self) -> List[str]:
        with self._lock:
            return sorted(self.items)

    def review(
        self,
        item_id: str,
        quality: float,
        confidence: float,
        reviewed_at: datetime.datetime
    ) -> datetime.datetime:
        grade = quality_to_grade(quality)
        with self._lock:
            item = self.items.get(item_id)
            if item is None:
                item = SuperMemoItem(item_id=item_id, easiness_factor=self.config.initial_easiness)
                self.items[item_id] = item

            item.easiness_factor = self.update_easiness(item.easiness_factor, grade)
            item.last_quality_response = grade

            if grade < self.config.passing_grade:
                item.repetition_number = 0
                item.interval = self.config.first_interval
            else:
                item.repetition_number += 1
                if item.repetition_number == 1:
                    item.interval = self.config.first_interval
                elif item.repetition_number == 2:
                    item.interval = self.config.second_interval
                else:
                    item.interval = min(
                        self.config.max_interval,
                        max(1, round_half_up(item.interval * item.easiness_factor))
                    )

            logger.debug(
                f"{self.learner_id}/{item_id}: grade={grade}, EF={item.easiness_factor:.2f}, "
                f"interval={item.interval}"
            )
            return reviewed_at + datetime.timedelta(days=item.interval)

    def seed_from_memory_state(self, state: MemoryState) -> None:
        """Derive EF from difficulty and the interval from stability."""
        with self._lock:
            self.items[state.item_id] = SuperMemoItem(
                item_id=state.item_id,
                easiness_factor=self._clamp_easiness(self.config.initial_easiness + (0.5 - state.difficulty)),
                interval=min(self.config.max_interval, max(1, round_half_up(state.stability))),
                repetition_number=state.consecutive_successes
            )

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "policy": self.policy_type.value,
                "version": self.version,
                "learner_id": self.learner_id,
                "item_parameters": serialize(list(self.items.values())),
                "algorithm_parameters": self.config.model_dump()
            }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], config: Optional[SuperMemoConfig] = None) -> 'SuperMemoAlgorithm':
        algorithm = cls(data["learner_id"], version=data.get("version", "SM-2"), config=config)
        for item in data.get("item_parameters", []):
            algorithm.items[item["item_id"]] = SuperMemoItem(**item)
        return algorithm
