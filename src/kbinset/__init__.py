"""kbinset - Keyboard-avoidance inset controller driven by obstruction notifications."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("kbinset")
except PackageNotFoundError:
    __version__ = "0+local"
from kbinset.config import InsetConfig
from kbinset.controller import InsetSnapshot, KeyboardInsetController, ObserverHandle
from kbinset.exceptions import (
    InsetConfigError,
    InsetInitializationError,
    KbInsetError,
    NotificationSourceError,
    SourceClosedError,
)
from kbinset.source import LocalNotificationSource, NotificationSource, SubscriptionHandle
from kbinset.state.events import (
    ObstructionEvent,
    ObstructionHidden,
    ObstructionKind,
    ObstructionShown,
    parse_obstruction_event,
)
from kbinset.state.policy import InsetPhase

__all__ = [
    "__version__",
    "InsetConfig",
    "InsetConfigError",
    "InsetInitializationError",
    "InsetPhase",
    "InsetSnapshot",
    "KbInsetError",
    "KeyboardInsetController",
    "LocalNotificationSource",
    "NotificationSource",
    "NotificationSourceError",
    "ObserverHandle",
    "ObstructionEvent",
    "ObstructionHidden",
    "ObstructionKind",
    "ObstructionShown",
    "SourceClosedError",
    "SubscriptionHandle",
    "parse_obstruction_event",
]
