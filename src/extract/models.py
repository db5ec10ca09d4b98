"""Data models for counter extraction."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ObservedState:
    """Counters derived from a single extraction pass.

    A None count means the pass found no confident value, which is different
    from 0 (positive evidence of zero orders). Instances are never mutated;
    every pass produces a new one.
    """

    in_progress_count: int | None = None
    completed_count: int | None = None
    order_ids: frozenset[int] = field(default_factory=frozenset)

    @property
    def sorted_order_ids(self) -> list[int]:
        return sorted(self.order_ids)

    def is_empty(self) -> bool:
        """True when the pass found no evidence at all."""
        return (
            self.in_progress_count is None
            and self.completed_count is None
            and not self.order_ids
        )
