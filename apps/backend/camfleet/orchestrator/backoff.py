from __future__ import annotations

from dataclasses import dataclass

from camfleet.config.schema import BackoffConfig


@dataclass
class BackoffPolicy:
    min_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0
    max_restarts: int = 5

    @classmethod
    def from_config(cls, config: BackoffConfig) -> "BackoffPolicy":
        return cls(
            min_delay_seconds=config.min_delay_seconds,
            max_delay_seconds=config.max_delay_seconds,
            max_restarts=config.max_restarts,
        )

    def delay_for(self, restart_count: int) -> float:
        exponent = min(max(0, restart_count - 1), 30)
        return min(self.max_delay_seconds, self.min_delay_seconds * (2**exponent))

    def exhausted(self, restart_count: int) -> bool:
        return restart_count > self.max_restarts
