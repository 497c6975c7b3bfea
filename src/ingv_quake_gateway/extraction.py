"""Defensive field extraction from parsed QuakeML documents.

The upstream payload is loosely structured: optional elements are simply
absent, numbers arrive as text, and the shape occasionally differs between
service revisions. Each field is therefore read through :func:`try_or`, which
turns any lookup failure into a default instead of failing the whole event.

Sentinel policy: any field that is missing or malformed resolves to ``None``.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from .models import CreationInfo, Depth, Magnitude, Origin, QuakeEvent
from .xml_tree import ATTRIBUTES_KEY

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ACCESS_ERRORS = (
    KeyError,
    IndexError,
    TypeError,
    AttributeError,
    ValueError,
    StopIteration,
)


def try_or(fn: Callable[[], T], default: Optional[T] = None) -> Optional[T]:
    """Return ``fn()`` or ``default`` when the lookup path is broken.

    Example:
        >>> try_or(lambda: {"a": [1]}["a"][0])
        1
        >>> try_or(lambda: {"a": []}["a"][0], default=-1)
        -1
    """
    try:
        return fn()
    except _ACCESS_ERRORS:
        return default


def to_float(value: Any) -> Optional[float]:
    """Convert upstream text to float; ``None`` for empty or malformed input."""
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _text(value: Any) -> Optional[str]:
    # Elements carrying attributes keep their text under "_"
    if isinstance(value, dict):
        value = value.get("_")
    if value is None or value == "":
        return None
    return str(value)


def _quantity(node: Any, name: str) -> Tuple[Optional[float], Optional[float]]:
    """Read a QuakeML ``RealQuantity`` as a ``(value, uncertainty)`` pair."""
    return (
        to_float(try_or(lambda: node[name][0]["value"][0])),
        to_float(try_or(lambda: node[name][0]["uncertainty"][0])),
    )


def extract_magnitude(event: Dict[str, Any]) -> Magnitude:
    magnitude = try_or(lambda: event["magnitude"][0], default={})
    value, uncertainty = _quantity(magnitude, "mag")
    return Magnitude(
        value=value,
        uncertainty=uncertainty,
        type=_text(try_or(lambda: magnitude["type"][0])),
    )


def extract_origin(event: Dict[str, Any]) -> Origin:
    origin = try_or(lambda: event["origin"][0], default={})
    depth, depth_uncertainty = _quantity(origin, "depth")
    return Origin(
        latitude=to_float(try_or(lambda: origin["latitude"][0]["value"][0])),
        longitude=to_float(try_or(lambda: origin["longitude"][0]["value"][0])),
        time=_text(try_or(lambda: origin["time"][0]["value"][0])),
        uncertainty=to_float(try_or(lambda: origin["time"][0]["uncertainty"][0])),
        depth=Depth(value=depth, uncertainty=depth_uncertainty),
    )


def extract_creation_info(event: Dict[str, Any]) -> CreationInfo:
    return CreationInfo(
        agency_id=_text(try_or(lambda: event["creationInfo"][0]["agencyID"][0])),
        author=_text(try_or(lambda: event["creationInfo"][0]["author"][0])),
        creation_time=_text(
            try_or(lambda: event["creationInfo"][0]["creationTime"][0])
        ),
    )


def extract_event(event: Any) -> QuakeEvent:
    """Build a :class:`QuakeEvent` from one parsed ``event`` element.

    Every field is resolved independently; a missing ``magnitude`` does not
    prevent the description or origin from being read.
    """
    if not isinstance(event, dict):
        return QuakeEvent()
    return QuakeEvent(
        public_id=_text(try_or(lambda: event[ATTRIBUTES_KEY]["publicID"])),
        description=_text(try_or(lambda: event["description"][0]["text"][0])),
        magnitude=extract_magnitude(event),
        origin=extract_origin(event),
        creation_info=extract_creation_info(event),
    )


def extract_events(document: Dict[str, Any]) -> List[QuakeEvent]:
    """Collect all events under ``root -> eventParameters[*] -> event[*]``.

    Args:
        document: Output of :func:`ingv_quake_gateway.xml_tree.parse_xml`.
    Returns:
        Events in document order; empty when the document holds none.
    """
    root = try_or(lambda: next(iter(document.values())), default={})
    parameters = try_or(lambda: root["eventParameters"], default=[]) or []

    events: List[QuakeEvent] = []
    for parameter_set in parameters:
        for event in try_or(lambda: parameter_set["event"], default=[]) or []:
            events.append(extract_event(event))
    logger.debug(f"Extracted {len(events)} events")
    return events
