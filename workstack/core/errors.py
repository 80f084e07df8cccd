"""Common exceptions for the workstack library."""
from __future__ import annotations


class WorkStackError(Exception):
    pass


class ConfigurationError(WorkStackError):
    pass


class RankResolutionError(ConfigurationError):
    pass


class WorkDirectoryError(WorkStackError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"could not create working directory {path}: {reason}")
        self.path = path


class ChannelError(WorkStackError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"channel {path}: {reason}")
        self.path = path


class ChannelTimeout(ChannelError):
    pass
