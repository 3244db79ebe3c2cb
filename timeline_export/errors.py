"""Error taxonomy shared across timeline-export modules."""

from __future__ import annotations


class TimelineExportError(Exception):
    """Base exception for timeline-export."""


class ConfigError(TimelineExportError):
    """Raised when configuration files are unreadable or invalid."""


class ResumeImportError(TimelineExportError):
    """Raised when a user-supplied export/resume file cannot be used."""


class UnsupportedMessageError(TimelineExportError):
    """Raised when the message bus receives a type outside its closed set."""

    def __init__(self, message_type: object) -> None:
        self.message_type = message_type
        super().__init__(f"Unsupported message type: {message_type}")


class UnsupportedEventError(TimelineExportError):
    """Raised when a session receives an event tag it does not know."""

    def __init__(self, event_type: object) -> None:
        self.event_type = event_type
        super().__init__(f"Unsupported session event: {event_type}")


__all__ = [
    "ConfigError",
    "ResumeImportError",
    "TimelineExportError",
    "UnsupportedEventError",
    "UnsupportedMessageError",
]
