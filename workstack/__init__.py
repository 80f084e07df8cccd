"""workstack: barrier and registration for processes sharing only a directory."""

from .channel import FileChannel
from .config import PollPolicy, WorkStackConfig
from .coordinator import Coordinator
from .core.errors import (
    ChannelError,
    ChannelTimeout,
    ConfigurationError,
    RankResolutionError,
    WorkDirectoryError,
    WorkStackError,
)
from .identity import ProcessIdentity, Role

__all__ = [
    "Coordinator",
    "FileChannel",
    "PollPolicy",
    "WorkStackConfig",
    "ProcessIdentity",
    "Role",
    "WorkStackError",
    "ConfigurationError",
    "RankResolutionError",
    "WorkDirectoryError",
    "ChannelError",
    "ChannelTimeout",
]
