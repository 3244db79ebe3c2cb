"""Engine components: normalize → track rate limits → drive lifecycle → merge → export."""

from .lifecycle import (
    LifecycleAction,
    LifecycleActionType,
    LifecycleState,
    LifecycleStatus,
    LooksDoneParams,
    create_initial_lifecycle,
    reduce_lifecycle,
    should_prompt_looks_done,
)
from .normalizer import normalize_tweet_result
from .parser import ExtractedTimeline, TimelineParser
from .rate_limit import (
    RateLimitMode,
    RateLimitState,
    RateLimitUpdate,
    apply_rate_limit_info,
    create_rate_limit_state,
    get_cooldown_details,
    parse_rate_limit_headers,
    reset_rate_limit_state_for_run,
)
from .resume import (
    MergeMetadata,
    MergeResult,
    ResumeParseResult,
    ResumePayload,
    build_consolidated_meta,
    build_resume_payload,
    merge_items,
    normalize_username,
    parse_resume_input,
)

__all__ = [
    "ExtractedTimeline",
    "LifecycleAction",
    "LifecycleActionType",
    "LifecycleState",
    "LifecycleStatus",
    "LooksDoneParams",
    "MergeMetadata",
    "MergeResult",
    "RateLimitMode",
    "RateLimitState",
    "RateLimitUpdate",
    "ResumeParseResult",
    "ResumePayload",
    "TimelineParser",
    "apply_rate_limit_info",
    "build_consolidated_meta",
    "build_resume_payload",
    "create_initial_lifecycle",
    "create_rate_limit_state",
    "get_cooldown_details",
    "merge_items",
    "normalize_tweet_result",
    "normalize_username",
    "parse_rate_limit_headers",
    "parse_resume_input",
    "reduce_lifecycle",
    "reset_rate_limit_state_for_run",
    "should_prompt_looks_done",
]
