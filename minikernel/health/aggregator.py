"""In-memory aggregation of health observations."""

from __future__ import annotations

from minikernel.health.fhir import Observation


class HealthDataAggregator:
    """Collects observations in the order they were added."""

    def __init__(self) -> None:
        self._observations: list[Observation] = []

    def add_observation(self, obs: Observation) -> None:
        self._observations.append(obs)

    def observations(self) -> tuple[Observation, ...]:
        """Return every stored observation, oldest first."""
        return tuple(self._observations)