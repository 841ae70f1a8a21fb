"""
Stock unit model - base unit detection and units-per-piece conversion
"""
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional


DEFAULT_UNIT = "Nos"

# "150 ML", "150ML", "1.5 L"
SIZE_PATTERN = re.compile(r"^([\d.]+)\s*([a-zA-Z%]+)$")
TRAILING_UNIT_PATTERN = re.compile(r"(?:^|[\d\s])(ML|kg|g|L|Nos)\s*$", re.IGNORECASE)

_SYNONYMS = {
    "l": "l", "ltr": "l", "liter": "l", "liters": "l", "litre": "l", "litres": "l",
    "ml": "ml", "milli": "ml", "milliliter": "ml", "milliliters": "ml",
    "g": "g", "gm": "g", "gram": "g", "grams": "g",
    "kg": "kg", "kilo": "kg", "kilogram": "kg", "kilograms": "kg",
    "no": "nos", "nos": "nos", "num": "nos", "number": "nos", "numbers": "nos",
    "pc": "nos", "pcs": "nos", "piece": "nos", "pieces": "nos",
}

_DISPLAY = {"l": "L", "ml": "ML", "g": "g", "kg": "kg", "nos": "Nos"}

# (from, to) -> factor; liquids are treated as 1 L = 1 kg
_CONVERSIONS = {
    ("ml", "l"): Decimal("0.001"),
    ("l", "ml"): Decimal("1000"),
    ("g", "kg"): Decimal("0.001"),
    ("kg", "g"): Decimal("1000"),
    ("ml", "kg"): Decimal("0.001"),
    ("l", "kg"): Decimal("1"),
    ("kg", "l"): Decimal("1"),
    ("ml", "g"): Decimal("1"),
    ("g", "ml"): Decimal("1"),
}

MEASURED_UNITS = {"ml", "l", "g", "kg"}


def canonical_unit(unit: Optional[str]) -> str:
    """Lower-case canonical form of a unit ('Liter' -> 'l', 'pieces' -> 'nos')"""
    if not unit:
        return ""
    key = str(unit).strip().lower().replace(".", "")
    return _SYNONYMS.get(key, key)


def display_unit(unit: Optional[str]) -> str:
    """Display form of a unit ('liter' -> 'L', 'piece' -> 'Nos')"""
    if not unit:
        return DEFAULT_UNIT
    canonical = canonical_unit(unit)
    return _DISPLAY.get(canonical, str(unit).strip())


def unit_from_size_label(size_label: Optional[str]) -> Optional[str]:
    # trailing token of a size label, e.g. "150 ML" -> "ML"
    if not size_label:
        return None
    match = TRAILING_UNIT_PATTERN.search(str(size_label).strip())
    if not match:
        return None
    return display_unit(match.group(1))


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def derive_base_unit(raw: Dict[str, Any]) -> str:
    """Base unit of a product payload.

    Priority: ``unit``, ``inventory.unit``, ``quantityUnit``, the trailing
    token of the size label, ``unitOfMeasure``. Falls back to ``Nos``.
    """
    inventory = raw.get("inventory") or {}
    candidates = (
        _text(raw.get("unit")),
        _text(inventory.get("unit")) if isinstance(inventory, dict) else None,
        _text(raw.get("quantityUnit")),
        unit_from_size_label(_text(raw.get("quantity")) or _text(raw.get("sizeLabel"))),
        _text(raw.get("unitOfMeasure")),
    )
    for candidate in candidates:
        if candidate:
            return display_unit(candidate)
    return DEFAULT_UNIT


def parse_size(size_label: Optional[str]):
    # "150 ML" -> (Decimal("150"), "ml"); None when the label carries no measure
    if not size_label:
        return None
    match = SIZE_PATTERN.match(str(size_label).strip())
    if not match:
        return None
    try:
        value = Decimal(match.group(1))
    except InvalidOperation:
        return None
    return value, canonical_unit(match.group(2))


def convert(value: Decimal, from_unit: str, to_unit: str) -> Optional[Decimal]:
    from_key, to_key = canonical_unit(from_unit), canonical_unit(to_unit)
    if from_key == to_key:
        return value
    factor = _CONVERSIONS.get((from_key, to_key))
    if factor is None:
        return None
    return value * factor


def derive_units_per_piece(raw: Dict[str, Any], base_unit: str) -> Decimal:
    """How much base-unit stock one sold piece consumes.

    An explicit ``unitsPerPiece`` wins. For measured base units (ML, L, g, kg)
    the size label's numeric value converted to the base unit is multiplied by
    ``noQty``; any other product consumes ``noQty`` (default 1) per piece.
    """
    explicit = raw.get("unitsPerPiece")
    if explicit not in (None, ""):
        try:
            value = Decimal(str(explicit))
            if value > 0:
                return value
        except InvalidOperation:
            pass

    try:
        no_qty = Decimal(str(raw.get("noQty") or 1))
    except InvalidOperation:
        no_qty = Decimal("1")
    if no_qty <= 0:
        no_qty = Decimal("1")

    target = canonical_unit(base_unit)
    if target not in MEASURED_UNITS:
        return no_qty

    label = _text(raw.get("quantity")) or _text(raw.get("sizeLabel"))
    size = parse_size(label)
    if size is None and label and _text(raw.get("quantityUnit")):
        # numeric quantity with a separate quantityUnit field
        try:
            size = Decimal(label), canonical_unit(raw.get("quantityUnit"))
        except InvalidOperation:
            size = None
    if size is None:
        return no_qty
    value, size_unit = size
    converted = convert(value, size_unit, target)
    if converted is None or converted <= 0:
        return no_qty
    return converted * no_qty
