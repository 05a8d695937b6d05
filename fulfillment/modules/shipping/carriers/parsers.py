"""
Tracking response parsers

Pure functions from a carrier's raw JSON to a TrackingSnapshot. No I/O,
so every vendor shape can be tested with plain dicts.

Missing or oddly-typed fields degrade to UNKNOWN / empty rather than raise.
"""
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from fulfillment.modules.shipping.carriers.base import TrackingEvent, TrackingSnapshot
from fulfillment.modules.shipping.status import (
    TrackingStatus,
    map_carrier_status,
    map_shippo_status,
)

ParserFn = Callable[[Dict[str, Any], datetime], TrackingSnapshot]


def _first(value: Any) -> Dict[str, Any]:
    """First element of a list-of-objects field, or {}."""
    if isinstance(value, list) and value and isinstance(value[0], dict):
        return value[0]
    if isinstance(value, dict):
        return value
    return {}


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _pick(event: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        if key in event and event[key] not in (None, ""):
            return _text(event[key])
    return None


def _legacy_events(raw_events: Any) -> List[TrackingEvent]:
    """Courier event lists use a handful of key spellings; take whichever is present."""
    if not isinstance(raw_events, list):
        return []
    events = []
    for item in raw_events:
        if not isinstance(item, dict):
            continue
        description = _pick(item, "Description", "description", "UpdateDescription", "Status", "status")
        events.append(TrackingEvent(
            status=map_carrier_status(description).value,
            description=description,
            timestamp=_pick(item, "Date", "date", "DateTime", "UpdateDateTime", "timestamp"),
            location=_pick(item, "Location", "location", "UpdateLocation", "Branch"),
            raw_status=_pick(item, "Status", "status", "UpdateCode"),
        ))
    return events


def parse_courier_guy(raw: Dict[str, Any], now: datetime) -> TrackingSnapshot:
    result = _first(raw.get("TrackingResults"))
    carrier_status = _text(result.get("Status"))
    return TrackingSnapshot(
        status=map_carrier_status(carrier_status),
        events=_legacy_events(result.get("TrackingEvents")),
        estimated_delivery=_text(result.get("EstimatedDeliveryDate")),
        last_update=now,
        carrier_status=carrier_status,
    )


def parse_fastway(raw: Dict[str, Any], now: datetime) -> TrackingSnapshot:
    result = raw.get("tracking_results")
    if not isinstance(result, dict):
        result = {}
    carrier_status = _text(result.get("status"))
    return TrackingSnapshot(
        status=map_carrier_status(carrier_status),
        events=_legacy_events(result.get("events")),
        estimated_delivery=None,
        last_update=now,
        carrier_status=carrier_status,
    )


def parse_aramex(raw: Dict[str, Any], now: datetime) -> TrackingSnapshot:
    result = _first(raw.get("TrackingResults"))
    carrier_status = _text(result.get("UpdateCode"))
    return TrackingSnapshot(
        status=map_carrier_status(carrier_status),
        events=_legacy_events(result.get("TrackingEvents")),
        estimated_delivery=_text(result.get("EstimatedDeliveryDate")),
        last_update=now,
        carrier_status=carrier_status,
    )


def _shippo_location(location: Any) -> Optional[str]:
    if not isinstance(location, dict):
        return None
    parts = [_text(location.get(key)) for key in ("city", "state", "zip", "country")]
    joined = ", ".join(part for part in parts if part)
    return joined or None


def parse_shippo(raw: Dict[str, Any], now: datetime) -> TrackingSnapshot:
    """Shippo /tracks response: tracking_status (latest) plus tracking_history."""
    history = raw.get("tracking_history")
    if not isinstance(history, list):
        history = []
    history = sorted(
        (item for item in history if isinstance(item, dict)),
        key=lambda item: str(item.get("status_date") or ""),
    )

    events = [
        TrackingEvent(
            status=map_shippo_status(item.get("status")).value,
            description=_text(item.get("status_details")),
            timestamp=_text(item.get("status_date")),
            location=_shippo_location(item.get("location")),
            raw_status=_text(item.get("status")),
        )
        for item in history
    ]

    latest = raw.get("tracking_status")
    if not isinstance(latest, dict):
        latest = history[-1] if history else {}

    return TrackingSnapshot(
        status=map_shippo_status(latest.get("status")),
        events=events,
        estimated_delivery=_text(raw.get("eta")),
        last_update=now,
        carrier_status=_text(latest.get("status_details")) or _text(latest.get("status")),
    )


TRACKING_PARSERS: Dict[str, ParserFn] = {
    "COURIER_GUY": parse_courier_guy,
    "FASTWAY": parse_fastway,
    "ARAMEX": parse_aramex,
    "shippo": parse_shippo,
}


def parse_tracking(
    parser_key: str,
    raw: Dict[str, Any],
    now: Optional[datetime] = None,
) -> TrackingSnapshot:
    """Parse a raw tracking record with the parser registered under parser_key.

    Unknown keys yield an UNKNOWN snapshot.
    """
    now = now or datetime.now(timezone.utc)
    parser = TRACKING_PARSERS.get(parser_key)
    if parser is None or not isinstance(raw, dict):
        return TrackingSnapshot(status=TrackingStatus.UNKNOWN, last_update=now)
    return parser(raw, now)
