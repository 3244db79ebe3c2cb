"""Rate limit tracking: header signals in, pacing delay and cooldown triggers out."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from ..config import RateLimitPolicy

LIMIT_HEADER = "x-rate-limit-limit"
REMAINING_HEADER = "x-rate-limit-remaining"
RESET_HEADER = "x-rate-limit-reset"


class RateLimitMode(str, Enum):
    NORMAL = "normal"
    COOLDOWN = "cooldown"
    PAUSED = "paused"


@dataclass
class RateLimitState:
    """Per-session pacing state. Single writer: the owning export session."""

    limit: int
    remaining: int
    reset_epoch_seconds: int = 0
    request_count: int = 0
    dynamic_delay_ms: float = 0.0
    mode: RateLimitMode = RateLimitMode.NORMAL
    retry_count: int = 0
    last_request_at: int = 0
    # request_count at the last batch cooldown
    batch_mark: int = 0


@dataclass(frozen=True)
class RateLimitUpdate:
    triggered_batch_cooldown: bool = False
    triggered_low_remaining_cooldown: bool = False

    @property
    def triggered(self) -> bool:
        return self.triggered_batch_cooldown or self.triggered_low_remaining_cooldown


@dataclass(frozen=True)
class CooldownDetails:
    duration_ms: int
    reason: str


def _now_ms() -> int:
    return int(time.time() * 1000)


def _parse_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        parsed = float(str(value).strip())
    except ValueError:
        return None
    if not math.isfinite(parsed):
        return None
    return int(parsed)


def create_rate_limit_state(policy: RateLimitPolicy | None = None) -> RateLimitState:
    policy = policy or RateLimitPolicy()
    return RateLimitState(
        limit=policy.default_limit,
        remaining=policy.default_remaining,
        dynamic_delay_ms=policy.initial_delay_ms,
    )


def compute_dynamic_delay(remaining: int, limit: int, policy: RateLimitPolicy | None = None) -> float:
    """Map consumption pressure to an inter-request delay within [floor, ceiling]."""

    policy = policy or RateLimitPolicy()
    if limit <= 0:
        return policy.max_delay_ms
    fraction = min(max(remaining / limit, 0.0), 1.0)
    if fraction >= policy.pressure_threshold:
        return policy.min_delay_ms
    pressure = (policy.pressure_threshold - fraction) / policy.pressure_threshold
    delay = policy.min_delay_ms + (policy.max_delay_ms - policy.min_delay_ms) * pressure
    return min(max(delay, policy.min_delay_ms), policy.max_delay_ms)


def apply_rate_limit_info(
    state: RateLimitState,
    info: Mapping[str, Any] | None,
    policy: RateLimitPolicy | None = None,
    now_ms: int | None = None,
) -> RateLimitUpdate:
    """Fold one observed response into ``state`` and report cooldown triggers.

    Missing or malformed fields keep the value currently held by the state, so
    one bad header never stalls pacing.
    """

    policy = policy or RateLimitPolicy()
    state.request_count += 1
    state.last_request_at = _now_ms() if now_ms is None else now_ms
    if info is None:
        return RateLimitUpdate()

    limit = _parse_int(info.get("limit"))
    remaining = _parse_int(info.get("remaining"))
    reset = _parse_int(info.get("reset"))

    if limit is not None and limit > 0:
        state.limit = limit
    if remaining is not None:
        state.remaining = remaining
    if reset is not None and reset >= 0:
        state.reset_epoch_seconds = reset
    state.remaining = min(max(state.remaining, 0), state.limit)
    state.dynamic_delay_ms = compute_dynamic_delay(state.remaining, state.limit, policy)

    batch = state.request_count - state.batch_mark >= policy.batch_size
    if batch:
        state.batch_mark = state.request_count
    return RateLimitUpdate(
        triggered_batch_cooldown=batch,
        triggered_low_remaining_cooldown=state.remaining <= policy.low_remaining_threshold,
    )


def get_cooldown_details(
    state: RateLimitState,
    policy: RateLimitPolicy | None = None,
    now_ms: int | None = None,
) -> CooldownDetails:
    """Pick the cooldown length: batch pacing by default, header reset when known."""

    policy = policy or RateLimitPolicy()
    now = _now_ms() if now_ms is None else now_ms
    duration = policy.batch_cooldown_ms
    reason = f"batch pacing ({state.request_count} requests)"
    if state.remaining <= policy.low_remaining_threshold and state.reset_epoch_seconds > 0:
        wait_ms = state.reset_epoch_seconds * 1000 - now
        if wait_ms > 0:
            duration = wait_ms + policy.reset_grace_ms
            reset_at = datetime.fromtimestamp(state.reset_epoch_seconds).strftime("%H:%M:%S")
            reason = f"API limit low ({state.remaining} left), reset at {reset_at}"
    return CooldownDetails(duration_ms=int(duration), reason=reason)


def reset_rate_limit_state_for_run(state: RateLimitState, policy: RateLimitPolicy | None = None) -> None:
    policy = policy or RateLimitPolicy()
    state.mode = RateLimitMode.NORMAL
    state.request_count = 0
    state.batch_mark = 0
    state.retry_count = 0
    state.limit = policy.default_limit
    state.remaining = policy.default_remaining
    state.dynamic_delay_ms = policy.min_delay_ms


def parse_rate_limit_headers(headers: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Pull the rate-limit triple out of a header mapping, case-insensitively."""

    if not headers:
        return None
    lowered = {str(key).lower(): value for key, value in headers.items()}
    info = {
        "limit": lowered.get(LIMIT_HEADER),
        "remaining": lowered.get(REMAINING_HEADER),
        "reset": lowered.get(RESET_HEADER),
    }
    if all(value is None for value in info.values()):
        return None
    return info


__all__ = [
    "CooldownDetails",
    "RateLimitMode",
    "RateLimitState",
    "RateLimitUpdate",
    "apply_rate_limit_info",
    "compute_dynamic_delay",
    "create_rate_limit_state",
    "get_cooldown_details",
    "parse_rate_limit_headers",
    "reset_rate_limit_state_for_run",
]
