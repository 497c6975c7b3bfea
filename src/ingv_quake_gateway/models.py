"""Core data structures for resolved seismic events.

These lightweight dataclasses are produced by :mod:`ingv_quake_gateway.extraction`
and consumed by the GraphQL layer. They avoid framework dependencies so they
can be serialized into the response cache and rebuilt on a cache hit.

Typical construction (simplified)::

        from ingv_quake_gateway.models import Magnitude, Origin, QuakeEvent

        event = QuakeEvent(
                description="3 km SW Norcia (PG)",
                magnitude=Magnitude(value=3.2, uncertainty=0.1, type="ML"),
                origin=Origin(latitude=42.1, longitude=13.4),
        )
        payload = event.to_dict()
        assert QuakeEvent.from_dict(payload) == event

Design notes:
        * Every scalar is optional. A value that could not be extracted from the
            upstream document is ``None`` (rendered as GraphQL ``null``).
        * ``to_dict`` produces stable keys so cached JSON snapshots stay
            comparable between releases.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional


@dataclass
class Magnitude:
    """Preferred magnitude of an event.

    Attributes:
        value: Magnitude value.
        uncertainty: Magnitude uncertainty.
        type: Magnitude scale (``ML``, ``Mw`` ...), when reported.
    """

    value: Optional[float] = None
    uncertainty: Optional[float] = None
    type: Optional[str] = None


@dataclass
class Depth:
    """Hypocentral depth as reported upstream, with its uncertainty."""

    value: Optional[float] = None
    uncertainty: Optional[float] = None


@dataclass
class Origin:
    """Hypocenter location and origin time.

    Attributes:
        latitude: Decimal degrees.
        longitude: Decimal degrees.
        time: Origin time as an ISO 8601 string (upstream text, unparsed).
        uncertainty: Origin time uncertainty.
        depth: Depth value / uncertainty pair.
    """

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    time: Optional[str] = None
    uncertainty: Optional[float] = None
    depth: Depth = field(default_factory=Depth)


@dataclass
class CreationInfo:
    """Provenance of the event record."""

    agency_id: Optional[str] = None
    author: Optional[str] = None
    creation_time: Optional[str] = None


@dataclass
class QuakeEvent:
    """A single normalized seismic event."""

    public_id: Optional[str] = None
    description: Optional[str] = None
    magnitude: Magnitude = field(default_factory=Magnitude)
    origin: Origin = field(default_factory=Origin)
    creation_info: CreationInfo = field(default_factory=CreationInfo)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-ready nested dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuakeEvent":
        """Rebuild an event from :meth:`to_dict` output (e.g. a cache hit)."""
        origin = dict(data.get("origin") or {})
        depth = Depth(**(origin.pop("depth", None) or {}))
        return cls(
            public_id=data.get("public_id"),
            description=data.get("description"),
            magnitude=Magnitude(**(data.get("magnitude") or {})),
            origin=Origin(depth=depth, **origin),
            creation_info=CreationInfo(**(data.get("creation_info") or {})),
        )
