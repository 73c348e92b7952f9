"""
Leitner Box System

Cards move through numbered boxes. Box ``i`` is reviewed every
``initial_interval * multiplier^(i-1)`` days. A success streak long enough for
the current box, with enough confidence, promotes the card; a failure, or low
confidence on a review that was not a success, sends it back to box 1.
Completing a streak in the top box earns a graduation bonus.
"""

import datetime
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from srs_engine.common.config import LeitnerConfig
from srs_engine.common.error_handling import PolicyError
from srs_engine.common.logger import app_logger
from srs_engine.common.serialization import parse_datetime, serialize
from srs_engine.repetition.models import MemoryState, SchedulingPolicy
from srs_engine.repetition.variants.base import ReviewPolicy

# Module logger
logger = app_logger.getChild("repetition.variants.leitner")


@dataclass(frozen=True)
class LeitnerBox:
    box_number: int
    review_interval_days: float
    consecutive_successes_required: int
    confidence_threshold: float
    failure_threshold: float
    confidence_drop_threshold: float


@dataclass
class LeitnerCard:
    item_id: str
    box: int = 1
    streak: int = 0
    last_review: Optional[datetime.datetime] = None
    next_review: Optional[datetime.datetime] = None


class LeitnerBoxSystem(ReviewPolicy):
    """Leitner box scheduling for one learner."""

    policy_type = SchedulingPolicy.LEITNER

    def __init__(
        self,
        learner_id: str,
        config: Optional[LeitnerConfig] = None,
        max_boxes: Optional[int] = None,
        initial_interval: Optional[float] = None
    ):
        """
        Initialize the box system.

        Args:
            learner_id: Learner identifier
            config: Leitner settings
            max_boxes: Number of boxes (overrides config)
            initial_interval: Interval of box 1 in days (overrides config)
        """
        super().__init__(learner_id)
        self.config = config or LeitnerConfig()
        self.max_boxes = max_boxes if max_boxes is not None else self.config.max_boxes
        self.initial_interval = (initial_interval if initial_interval is not None
                                 else self.config.initial_interval_days)
        if self.max_boxes < 1:
            raise PolicyError("Leitner system needs at least one box", learner_id)
        if self.initial_interval <= 0:
            raise PolicyError("Leitner initial interval must be positive", learner_id)

        self.boxes: List[LeitnerBox] = [
            LeitnerBox(
                box_number=i,
                review_interval_days=self.initial_interval * self.config.interval_multiplier ** (i - 1),
                consecutive_successes_required=self.config.base_successes_required + (i - 1),
                confidence_threshold=self.config.confidence_threshold,
                failure_threshold=self.config.failure_threshold,
                confidence_drop_threshold=self.config.confidence_drop_threshold
            )
            for i in range(1, self.max_boxes + 1)
        ]
        self.cards: Dict[str, LeitnerCard] = {}

    def box(self, number: int) -> LeitnerBox:
        return self.boxes[number - 1]

    def items_in_box(self, number: int) -> List[str]:
        with self._lock:
            return sorted(card.item_id for card in self.cards.values() if card.box == number)

    def _entries(self) -> Dict[str, LeitnerCard]:
        return self.cards

    def enrolled_items(self) -> List[str]:
        with self._lock:
            return sorted(self.cards)

    def review(
        self,
        item_id: str,
        quality: float,
        confidence: float,
        reviewed_at: datetime.datetime
    ) -> datetime.datetime:
        with self._lock:
            card = self.cards.get(item_id)
            if card is None:
                card = LeitnerCard(item_id=item_id)
                self.cards[item_id] = card

            current = self.box(card.box)
            bonus_days = 0.0

            if quality > self.config.success_threshold:
                card.streak += 1
                if (card.streak >= current.consecutive_successes_required
                        and confidence >= current.confidence_threshold):
                    if card.box < self.max_boxes:
                        card.box += 1
                        logger.debug(f"{self.learner_id}/{item_id} promoted to box {card.box}")
                    else:
                        bonus_days = self.config.graduation_bonus_days
                    card.streak = 0
            elif quality < current.failure_threshold or confidence < current.confidence_drop_threshold:
                if card.box != 1:
                    logger.debug(f"{self.learner_id}/{item_id} demoted to box 1")
                card.box = 1
                card.streak = 0

            interval = datetime.timedelta(days=self.box(card.box).review_interval_days + bonus_days)
            card.last_review = reviewed_at
            card.next_review = reviewed_at + interval
            return card.next_review

    def seed_from_memory_state(self, state: MemoryState) -> None:
        """Place the card in the highest box whose interval fits within its stability."""
        number = 1
        for box in self.boxes:
            if box.review_interval_days <= state.stability:
                number = box.box_number
        with self._lock:
            self.cards[state.item_id] = LeitnerCard(
                item_id=state.item_id,
                box=number,
                last_review=state.last_review_date,
                next_review=state.last_review_date
                + datetime.timedelta(days=self.box(number).review_interval_days)
            )

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "policy": self.policy_type.value,
                "learner_id": self.learner_id,
                "boxes": serialize(self.boxes),
                "cards": serialize(list(self.cards.values())),
                "system_parameters": {
                    "initial_interval_days": self.initial_interval,
                    "interval_multiplier": self.config.interval_multiplier,
                    "max_box_level": self.max_boxes,
                    "graduation_bonus_days": self.config.graduation_bonus_days
                }
            }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], config: Optional[LeitnerConfig] = None) -> 'LeitnerBoxSystem':
        params = data.get("system_parameters", {})
        system = cls(
            data["learner_id"],
            config=config,
            max_boxes=params.get("max_box_level"),
            initial_interval=params.get("initial_interval_days")
        )
        for card in data.get("cards", []):
            system.cards[card["item_id"]] = LeitnerCard(
                item_id=card["item_id"],
                box=card.get("box", 1),
                streak=card.get("streak", 0),
                last_review=parse_datetime(card.get("last_review")),
                next_review=parse_datetime(card.get("next_review"))
            )
        return system
