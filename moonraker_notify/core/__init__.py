"""Core primitives for moonraker-notify."""

from .readiness import KlippyReadiness, ReadinessState, ReadinessStateMachine
from .router import MessageRouter
from .rpc import Correlator
from .status import (
    Duration,
    PrinterStatusSnapshot,
    StatusListener,
    StatusMerger,
    format_seconds_hhmmss,
)
from .subscription import DEFAULT_SUBSCRIPTION_OBJECTS, SubscriptionManager
from .utils import deep_merge, lookup_path

__all__ = [
    "Correlator",
    "DEFAULT_SUBSCRIPTION_OBJECTS",
    "Duration",
    "KlippyReadiness",
    "MessageRouter",
    "PrinterStatusSnapshot",
    "ReadinessState",
    "ReadinessStateMachine",
    "StatusListener",
    "StatusMerger",
    "SubscriptionManager",
    "deep_merge",
    "format_seconds_hhmmss",
    "lookup_path",
]
