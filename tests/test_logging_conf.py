from __future__ import annotations

import structlog

from timeline_export.logging_conf import session_context


def test_session_context_binds_and_restores() -> None:
    structlog.contextvars.clear_contextvars()
    with session_context("alice", event="response"):
        assert structlog.contextvars.get_contextvars() == {"session": "alice", "event": "response"}
        with session_context("alice", event="finish"):
            assert structlog.contextvars.get_contextvars()["event"] == "finish"
        assert structlog.contextvars.get_contextvars()["event"] == "response"
    assert structlog.contextvars.get_contextvars() == {}
