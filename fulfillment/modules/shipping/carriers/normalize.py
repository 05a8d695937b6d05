"""
Carrier selection normalization

Sellers type carriers freely ("UPS", "ups", "Courier Guy", "canada_post").
normalize_carrier() turns that into the stored carrier code, the Shippo
token used for live tracking (if any) and a display label.
"""
import enum
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional


class CarrierCode(str, enum.Enum):
    """Carrier codes stored on orders and shipments."""
    COURIER_GUY = "COURIER_GUY"
    FASTWAY = "FASTWAY"
    POSTNET = "POSTNET"
    PAXI = "PAXI"
    ARAMEX = "ARAMEX"
    ARAMEX_STORE_TO_DOOR = "ARAMEX_STORE_TO_DOOR"
    DSV = "DSV"
    RAM = "RAM"
    USPS = "USPS"
    UPS = "UPS"
    FEDEX = "FEDEX"
    DHL = "DHL"
    OTHER = "OTHER"


LEGACY_COURIERS = frozenset({
    CarrierCode.COURIER_GUY,
    CarrierCode.FASTWAY,
    CarrierCode.POSTNET,
    CarrierCode.PAXI,
    CarrierCode.ARAMEX,
    CarrierCode.ARAMEX_STORE_TO_DOOR,
    CarrierCode.DSV,
    CarrierCode.RAM,
})

# Shippo token -> stored code
SHIPPO_TOKEN_TO_CODE: Dict[str, CarrierCode] = {
    "ups": CarrierCode.UPS,
    "usps": CarrierCode.USPS,
    "fedex": CarrierCode.FEDEX,
    "dhl_express": CarrierCode.DHL,
    "dhl": CarrierCode.DHL,
}

CODE_TO_SHIPPO_TOKEN: Dict[CarrierCode, str] = {
    CarrierCode.UPS: "ups",
    CarrierCode.USPS: "usps",
    CarrierCode.FEDEX: "fedex",
    CarrierCode.DHL: "dhl_express",
}

CARRIER_LABELS: Dict[CarrierCode, str] = {
    CarrierCode.COURIER_GUY: "The Courier Guy",
    CarrierCode.FASTWAY: "Fastway",
    CarrierCode.POSTNET: "PostNet",
    CarrierCode.PAXI: "PAXI",
    CarrierCode.ARAMEX: "Aramex",
    CarrierCode.ARAMEX_STORE_TO_DOOR: "Aramex Store to Door",
    CarrierCode.DSV: "DSV",
    CarrierCode.RAM: "RAM",
    CarrierCode.USPS: "USPS",
    CarrierCode.UPS: "UPS",
    CarrierCode.FEDEX: "FedEx",
    CarrierCode.DHL: "DHL Express",
    CarrierCode.OTHER: "Other",
}

# Codes that share another code's tracking adapter
TRACKING_ALIASES: Dict[CarrierCode, str] = {
    CarrierCode.ARAMEX_STORE_TO_DOOR: CarrierCode.ARAMEX.value,
}

TRACKING_URL_TEMPLATES: Dict[CarrierCode, str] = {
    CarrierCode.UPS: "https://www.ups.com/track?tracknum={tracking_number}",
    CarrierCode.USPS: "https://tools.usps.com/go/TrackConfirmAction?tLabels={tracking_number}",
    CarrierCode.FEDEX: "https://www.fedex.com/fedextrack/?trknbr={tracking_number}",
    CarrierCode.DHL: "https://www.dhl.com/en/express/tracking.html?AWB={tracking_number}",
}

_SHIPPO_TOKEN_RE = re.compile(r"^[a-z0-9_]+$")


@dataclass(frozen=True)
class CarrierSelection:
    """A normalized carrier choice."""
    code: CarrierCode
    token: Optional[str]
    label: str

    @property
    def tracking_key(self) -> str:
        """Registry key of the adapter that tracks this carrier."""
        if self.token:
            return self.token
        return TRACKING_ALIASES.get(self.code, self.code.value)


def is_shippo_token(value: str) -> bool:
    """Lowercase tokens like "ups" or "canada_post" are Shippo carrier tokens."""
    if not value or not _SHIPPO_TOKEN_RE.match(value):
        return False
    if value == "other":
        return False
    upper = value.upper()
    return not (upper in CarrierCode.__members__ and CarrierCode[upper] in LEGACY_COURIERS)


def normalize_carrier(raw: Any) -> Optional[CarrierSelection]:
    """
    Normalize free-text carrier input.

    Returns None for empty input. Unrecognized carriers become OTHER with
    the caller's text as label.
    """
    if not raw or not isinstance(raw, str):
        return None
    value = raw.strip()
    if not value:
        return None

    if is_shippo_token(value):
        code = SHIPPO_TOKEN_TO_CODE.get(value, CarrierCode.OTHER)
        if code == CarrierCode.OTHER:
            return CarrierSelection(code=code, token=value, label=value)
        return CarrierSelection(code=code, token=CODE_TO_SHIPPO_TOKEN[code], label=CARRIER_LABELS[code])

    key = re.sub(r"[\s\-]+", "_", value.upper())
    if key in CarrierCode.__members__:
        code = CarrierCode[key]
        return CarrierSelection(code=code, token=CODE_TO_SHIPPO_TOKEN.get(code), label=CARRIER_LABELS[code])

    for code, label in CARRIER_LABELS.items():
        if label.upper() == value.upper():
            return CarrierSelection(code=code, token=CODE_TO_SHIPPO_TOKEN.get(code), label=label)

    return CarrierSelection(code=CarrierCode.OTHER, token=None, label=value)


def get_tracking_url(carrier: Any, tracking_number: Optional[str]) -> Optional[str]:
    """Public tracking page for carriers that have one."""
    if not tracking_number:
        return None
    selection = normalize_carrier(carrier)
    if selection is None:
        return None
    template = TRACKING_URL_TEMPLATES.get(selection.code)
    if not template:
        return None
    return template.format(tracking_number=tracking_number.strip())
