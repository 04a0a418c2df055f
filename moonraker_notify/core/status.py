"""Printer status snapshot and incremental merging of status deltas.

Moonraker ``notify_status_update`` frames carry ``params[0]``, a partial
object holding only the attributes that changed, and ``params[1]``, the
backend event time. :class:`StatusMerger` folds each delta into a single
:class:`PrinterStatusSnapshot`, touching only the tracked fields whose value
actually changed.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Tuple

from ..errors import ParseError
from .utils import lookup_path

LOGGER = logging.getLogger(__name__)

__all__ = [
    "Duration",
    "PrinterStatusSnapshot",
    "StatusListener",
    "StatusMerger",
    "format_seconds_hhmmss",
]


@dataclass(slots=True, frozen=True)
class Duration:
    """Hours/minutes/seconds breakdown; only ``hours`` carries the sign."""

    hours: int = 0
    minutes: int = 0
    seconds: int = 0

    def __str__(self) -> str:
        return f"{self.hours:02d}:{self.minutes:02d}:{self.seconds:02d}"


def format_seconds_hhmmss(value: float) -> Duration:
    """Split a duration in seconds into :class:`Duration`.

    >>> format_seconds_hhmmss(3725.0)
    Duration(hours=1, minutes=2, seconds=5)
    """

    sign = -1 if value < 0 else 1
    total_seconds = math.floor(abs(value))
    return Duration(
        hours=(total_seconds // 3600) * sign,
        minutes=(total_seconds % 3600) // 60,
        seconds=total_seconds % 60,
    )


@dataclass(slots=True)
class PrinterStatusSnapshot:
    layer: int = 0
    total_layers: int = 0
    time_remaining_seconds: float = 0.0
    time_remaining: Duration = field(default_factory=Duration)
    progress: float = 0.0
    filename: str = ""
    state: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def summary(self) -> str:
        return (
            f"state={self.state or '-'} file={self.filename or '-'} "
            f"layer={self.layer}/{self.total_layers} "
            f"progress={self.progress * 100:.1f}% elapsed={self.time_remaining}"
        )


StatusListener = Callable[[PrinterStatusSnapshot, FrozenSet[str]], None]


def _as_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected integer, got {value!r}")
    return value


def _as_float(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected number, got {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise TypeError(f"expected finite number, got {value!r}")
    return number


def _as_str(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected string, got {value!r}")
    return value


# snapshot attribute, path inside params[0], coercion
_TRACKED_FIELDS: Tuple[Tuple[str, Tuple[str, ...], Callable[[Any], Any]], ...] = (
    ("layer", ("print_stats", "info", "current_layer"), _as_int),
    ("total_layers", ("print_stats", "info", "total_layer"), _as_int),
    ("time_remaining_seconds", ("print_stats", "print_duration"), _as_float),
    ("progress", ("virtual_sdcard", "progress"), _as_float),
    ("filename", ("print_stats", "filename"), _as_str),
    ("state", ("print_stats", "state"), _as_str),
)


class StatusMerger:
    """Sole writer of the printer status snapshot.

    Runs on the event loop that owns the receive task, so merges never
    interleave with each other.
    """

    def __init__(self, snapshot: Optional[PrinterStatusSnapshot] = None) -> None:
        self._snapshot = snapshot if snapshot is not None else PrinterStatusSnapshot()
        self._listeners: list[StatusListener] = []
        self._last_eventtime: Optional[float] = None

    @property
    def snapshot(self) -> PrinterStatusSnapshot:
        return self._snapshot

    @property
    def last_eventtime(self) -> Optional[float]:
        return self._last_eventtime

    def add_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            raise ValueError("Listener already registered")
        self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def apply(self, notification: Mapping[str, Any]) -> FrozenSet[str]:
        """Merge one ``notify_status_update`` frame into the snapshot.

        Returns the names of the snapshot fields that changed. Malformed
        frames are logged and leave the snapshot untouched.
        """

        try:
            delta, eventtime = self._parse(notification)
        except ParseError as exc:
            LOGGER.warning("Ignoring malformed status notification: %s", exc)
            return frozenset()

        if (
            eventtime is not None
            and self._last_eventtime is not None
            and eventtime < self._last_eventtime
        ):
            LOGGER.debug(
                "Dropping stale status notification (eventtime %.3f < %.3f)",
                eventtime,
                self._last_eventtime,
            )
            return frozenset()

        changed = self._merge(delta)
        if eventtime is not None:
            self._last_eventtime = eventtime

        if changed:
            LOGGER.debug("Status fields changed: %s", ", ".join(sorted(changed)))
            self._notify(changed)
        return changed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _parse(
        self, notification: Mapping[str, Any]
    ) -> Tuple[Dict[str, Any], Optional[float]]:
        if not isinstance(notification, Mapping):
            raise ParseError("notification is not an object")

        params = notification.get("params")
        if not isinstance(params, list) or not params:
            raise ParseError(f"params must be a non-empty list, got {params!r}")

        payload = params[0]
        if not isinstance(payload, Mapping):
            raise ParseError(f"params[0] is not an object: {payload!r}")

        delta: Dict[str, Any] = {}
        for name, path, coerce in _TRACKED_FIELDS:
            try:
                value = lookup_path(payload, path)
                if value is not None:
                    delta[name] = coerce(value)
            except TypeError as exc:
                raise ParseError(f"{'.'.join(path)}: {exc}") from exc

        eventtime: Optional[float] = None
        if len(params) > 1:
            candidate = params[1]
            if isinstance(candidate, (int, float)) and not isinstance(candidate, bool):
                eventtime = float(candidate)

        return delta, eventtime

    def _merge(self, delta: Mapping[str, Any]) -> FrozenSet[str]:
        snapshot = self._snapshot
        changed: set[str] = set()
        for name, value in delta.items():
            if getattr(snapshot, name) == value:
                continue
            setattr(snapshot, name, value)
            changed.add(name)

        if "time_remaining_seconds" in changed:
            duration = format_seconds_hhmmss(snapshot.time_remaining_seconds)
            if duration != snapshot.time_remaining:
                snapshot.time_remaining = duration
                changed.add("time_remaining")

        return frozenset(changed)

    def _notify(self, changed: FrozenSet[str]) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._snapshot, changed)
            except Exception:
                LOGGER.exception("Status listener failed")
