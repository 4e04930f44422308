"""RecursionGuard — 限制单轮对话内 tool 调用 / 响应的往返次数。"""

from __future__ import annotations

from enum import Enum


class GuardState(str, Enum):
    ACTIVE = "active"
    EXHAUSTED = "exhausted"


class RecursionGuard:
    """Countdown of permitted tool-call cycles for one conversation turn.

    One unit is spent per dispatched batch of tool calls, however many calls
    the batch holds. ``max_recursions=0`` disables tool looping: the first
    response is always final.

    A guard belongs to a single turn; create a new one per run.
    """

    def __init__(self, max_recursions: int = 5) -> None:
        if isinstance(max_recursions, bool) or not isinstance(max_recursions, int):
            raise ValueError(f"max_recursions must be an int, got {max_recursions!r}")
        if max_recursions < 0:
            raise ValueError(f"max_recursions must be >= 0, got {max_recursions}")
        self.max_recursions = max_recursions
        self.remaining = max_recursions

    @property
    def state(self) -> GuardState:
        return GuardState.ACTIVE if self.remaining > 0 else GuardState.EXHAUSTED

    @property
    def exhausted(self) -> bool:
        return self.remaining == 0

    @property
    def cycles(self) -> int:
        """Number of cycles consumed so far."""
        return self.max_recursions - self.remaining

    def consume(self) -> bool:
        """Spend one cycle. Returns ``False`` (and spends nothing) once exhausted."""
        if self.remaining == 0:
            return False
        self.remaining -= 1
        return True

    def __repr__(self) -> str:
        return f"RecursionGuard(remaining={self.remaining}/{self.max_recursions})"
