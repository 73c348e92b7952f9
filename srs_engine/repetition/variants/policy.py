"""
Scheduling Policy Registry

Binds each learner to exactly one scheduling policy. Learners without an
explicit binding use the default forgetting-curve interval calculator.
Switching policies discards the previous variant state; migrating seeds the
new variant once from the learner's current memory states.
"""

import threading
from typing import Any, Dict, Iterable, Optional

from srs_engine.common.config import EngineConfig, get_config
from srs_engine.common.error_handling import PolicyError
from srs_engine.common.logger import app_logger
from srs_engine.repetition.models import MemoryState, SchedulingPolicy
from srs_engine.repetition.variants.base import ReviewPolicy
from srs_engine.repetition.variants.leitner import LeitnerBoxSystem
from srs_engine.repetition.variants.supermemo import SuperMemoAlgorithm

# Module logger
logger = app_logger.getChild("repetition.variants.policy")


class PolicyRegistry:
    """Per-learner policy bindings."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or get_config()
        self._lock = threading.RLock()
        self._policies: Dict[str, ReviewPolicy] = {}

    def active_policy(self, learner_id: str) -> SchedulingPolicy:
        """Policy type the learner is bound to."""
        with self._lock:
            policy = self._policies.get(learner_id)
        return policy.policy_type if policy is not None else SchedulingPolicy.FORGETTING_CURVE

    def get(self, learner_id: str) -> Optional[ReviewPolicy]:
        """The learner's variant policy, or None under the default policy."""
        with self._lock:
            return self._policies.get(learner_id)

    def _build(self, learner_id: str, policy: SchedulingPolicy, **options: Any) -> Optional[ReviewPolicy]:
        if policy is SchedulingPolicy.FORGETTING_CURVE:
            return None
        if policy is SchedulingPolicy.LEITNER:
            return LeitnerBoxSystem(
                learner_id,
                config=self.config.leitner,
                max_boxes=options.get("max_boxes"),
                initial_interval=options.get("initial_interval")
            )
        if policy is SchedulingPolicy.SUPERMEMO:
            return SuperMemoAlgorithm(
                learner_id,
                version=options.get("version", "SM-2"),
                config=self.config.supermemo
            )
        raise PolicyError(f"Unknown scheduling policy: {policy}", learner_id)

    def bind(
        self,
        learner_id: str,
        policy: SchedulingPolicy,
        states: Optional[Iterable[MemoryState]] = None,
        migrate: bool = False,
        **options: Any
    ) -> Optional[ReviewPolicy]:
        """
        Bind a learner to a policy, discarding any previous variant state.

        Args:
            learner_id: Learner identifier
            policy: Policy to activate
            states: Current memory states, used when migrating
            migrate: Seed the new variant from ``states`` once
            **options: Variant options (max_boxes, initial_interval, version)

        Returns:
            The new variant policy, or None for the default policy
        """
        if not isinstance(policy, SchedulingPolicy):
            try:
                policy = SchedulingPolicy(policy)
            except ValueError as e:
                raise PolicyError(f"Unknown scheduling policy: {policy}", learner_id) from e

        variant = self._build(learner_id, policy, **options)
        seeded = 0
        if variant is not None and migrate:
            seeded = variant.seed_all(states or [])

        with self._lock:
            previous = self._policies.pop(learner_id, None)
            if variant is not None:
                self._policies[learner_id] = variant

        logger.info(
            f"Learner {learner_id} switched from "
            f"{previous.policy_type.value if previous else SchedulingPolicy.FORGETTING_CURVE.value} "
            f"to {policy.value} (migrated {seeded} items)"
        )
        return variant

    def unbind(self, learner_id: str) -> None:
        """Return a learner to the default policy."""
        self.bind(learner_id, SchedulingPolicy.FORGETTING_CURVE)
