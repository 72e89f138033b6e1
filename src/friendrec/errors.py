from __future__ import annotations
from typing import Optional


class FriendRecError(Exception):
    """Base class for everything the recommender raises on purpose."""


class ParseError(FriendRecError):
    """
    A single activity record could not be turned into an ActivityEvent.
    Recoverable: the stream skips the record and keeps going.
    """

    def __init__(self, message: str, line: Optional[str] = None):
        super().__init__(message)
        self.line = line


class ConfigError(FriendRecError):
    """
    Startup input (config file, friend list, relation snapshot) is missing
    or unusable. Fatal: streaming never starts.
    """


class LateEvent(FriendRecError):
    """
    Event arrived behind the watermark and can no longer reach an open window.
    Non-fatal, the event is dropped.
    """

    def __init__(self, timestamp: int, watermark: int, key=None):
        super().__init__(f"late event ts={timestamp} watermark={watermark} key={key}")
        self.timestamp = timestamp
        self.watermark = watermark
        self.key = key
