"""Export lifecycle state machine and the "looks done" completion heuristic.

The reducer is pure: it never mutates its input and returns the same object
for any (status, action) pair outside the transition table, so callers can
feed it every event without pre-checking the current status.

    idle --start--> running
    running --enter_cooldown--> cooldown --exit_cooldown--> running
    running --pause_rate_limit--> paused_rate_limit --resume_manual--> running
    running --mark_pending_done--> pending_done --complete--> completed
    any non-terminal --cancel--> cancelled
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from enum import Enum


class LifecycleStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COOLDOWN = "cooldown"
    PAUSED_RATE_LIMIT = "paused_rate_limit"
    PENDING_DONE = "pending_done"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({LifecycleStatus.COMPLETED, LifecycleStatus.CANCELLED})


class LifecycleActionType(str, Enum):
    START = "start"
    ACTIVITY = "activity"
    ENTER_COOLDOWN = "enter_cooldown"
    EXIT_COOLDOWN = "exit_cooldown"
    PAUSE_RATE_LIMIT = "pause_rate_limit"
    RESUME_MANUAL = "resume_manual"
    MARK_PENDING_DONE = "mark_pending_done"
    COMPLETE = "complete"
    CANCEL = "cancel"


@dataclass(frozen=True)
class LifecycleState:
    status: LifecycleStatus
    last_activity_at: int

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class LifecycleAction:
    type: LifecycleActionType
    at: int | None = None


@dataclass(frozen=True)
class LooksDoneParams:
    now: int
    idle_threshold_ms: int
    scroll_count: int
    responses_captured: int
    height_stable: bool


# (from, action) -> (to, stamp last_activity_at)
_TRANSITIONS: dict[tuple[LifecycleStatus, LifecycleActionType], tuple[LifecycleStatus, bool]] = {
    (LifecycleStatus.IDLE, LifecycleActionType.START): (LifecycleStatus.RUNNING, True),
    (LifecycleStatus.RUNNING, LifecycleActionType.ACTIVITY): (LifecycleStatus.RUNNING, True),
    (LifecycleStatus.RUNNING, LifecycleActionType.ENTER_COOLDOWN): (LifecycleStatus.COOLDOWN, False),
    (LifecycleStatus.COOLDOWN, LifecycleActionType.EXIT_COOLDOWN): (LifecycleStatus.RUNNING, True),
    (LifecycleStatus.RUNNING, LifecycleActionType.PAUSE_RATE_LIMIT): (
        LifecycleStatus.PAUSED_RATE_LIMIT,
        False,
    ),
    (LifecycleStatus.PAUSED_RATE_LIMIT, LifecycleActionType.RESUME_MANUAL): (
        LifecycleStatus.RUNNING,
        True,
    ),
    (LifecycleStatus.RUNNING, LifecycleActionType.MARK_PENDING_DONE): (
        LifecycleStatus.PENDING_DONE,
        False,
    ),
    (LifecycleStatus.PENDING_DONE, LifecycleActionType.COMPLETE): (LifecycleStatus.COMPLETED, False),
}


def _now_ms() -> int:
    return int(time.time() * 1000)


def create_initial_lifecycle(at: int | None = None) -> LifecycleState:
    return LifecycleState(status=LifecycleStatus.IDLE, last_activity_at=_now_ms() if at is None else at)


def can_transition(state: LifecycleState, action_type: LifecycleActionType) -> bool:
    if state.is_terminal:
        return False
    if action_type is LifecycleActionType.CANCEL:
        return True
    return (state.status, action_type) in _TRANSITIONS


def reduce_lifecycle(state: LifecycleState, action: LifecycleAction) -> LifecycleState:
    """Apply ``action`` to ``state``; undefined transitions leave it untouched."""

    if state.is_terminal:
        return state
    if action.type is LifecycleActionType.CANCEL:
        return replace(state, status=LifecycleStatus.CANCELLED)
    transition = _TRANSITIONS.get((state.status, action.type))
    if transition is None:
        return state
    target, stamp = transition
    if stamp:
        at = _now_ms() if action.at is None else action.at
        return LifecycleState(status=target, last_activity_at=at)
    return replace(state, status=target)


def should_prompt_looks_done(
    state: LifecycleState,
    params: LooksDoneParams,
    min_scroll_count: int = 10,
) -> bool:
    """Heuristic end-of-feed signal; only ever true while actively running."""

    if state.status is not LifecycleStatus.RUNNING:
        return False
    if params.responses_captured <= 0:
        return False
    if params.scroll_count <= min_scroll_count:
        return False
    if not params.height_stable:
        return False
    return params.now - state.last_activity_at >= params.idle_threshold_ms


__all__ = [
    "LifecycleAction",
    "LifecycleActionType",
    "LifecycleState",
    "LifecycleStatus",
    "LooksDoneParams",
    "TERMINAL_STATUSES",
    "can_transition",
    "create_initial_lifecycle",
    "reduce_lifecycle",
    "should_prompt_looks_done",
]
