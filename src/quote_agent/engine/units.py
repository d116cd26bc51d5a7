"""
Units - canonical units, synonyms, conversions and quantity tokens.

Operates on normalized text (see utils.text.normalize_text).
"""
import re
from dataclasses import dataclass
from typing import Optional

CANONICAL_UNITS = {
    'sqft',
    'linear_feet',
    'cubic_yards',
    'each',
    'square_yards',
    'cubic_feet',
    'pallet',
}

# Phrase -> canonical unit. Phrases are in normalized form.
UNIT_SYNONYMS = {
    'sqft': 'sqft',
    'sq ft': 'sqft',
    'sq feet': 'sqft',
    'sq foot': 'sqft',
    'square feet': 'sqft',
    'square foot': 'sqft',
    'square ft': 'sqft',
    'sf': 'sqft',

    'linear feet': 'linear_feet',
    'linear foot': 'linear_feet',
    'linear ft': 'linear_feet',
    'lin ft': 'linear_feet',
    'lnft': 'linear_feet',
    'lf': 'linear_feet',
    'feet': 'linear_feet',
    'foot': 'linear_feet',
    'ft': 'linear_feet',

    'cubic yards': 'cubic_yards',
    'cubic yard': 'cubic_yards',
    'cu yds': 'cubic_yards',
    'cu yd': 'cubic_yards',
    'cyds': 'cubic_yards',
    'cy': 'cubic_yards',
    'yards': 'cubic_yards',
    'yard': 'cubic_yards',
    'yds': 'cubic_yards',
    'yd': 'cubic_yards',

    'square yards': 'square_yards',
    'square yard': 'square_yards',
    'sq yds': 'square_yards',
    'sq yd': 'square_yards',

    'cubic feet': 'cubic_feet',
    'cubic foot': 'cubic_feet',
    'cu ft': 'cubic_feet',

    'pallets': 'pallet',
    'pallet': 'pallet',

    'each': 'each',
    'ea': 'each',
    'pcs': 'each',
    'pieces': 'each',
    'units': 'each',
}

# (from_unit, to_unit) -> factor
CONVERSIONS = {
    ('square_yards', 'sqft'): 9.0,
    ('cubic_feet', 'cubic_yards'): 1.0 / 27.0,
    ('pallet', 'sqft'): 450.0,
}

UNIT_DISPLAY = {
    'sqft': 'sqft',
    'linear_feet': 'linear ft',
    'cubic_yards': 'cubic yards',
    'each': 'each',
    'square_yards': 'square yards',
    'cubic_feet': 'cubic feet',
    'pallet': 'pallets',
}

NUMBER_WORDS = {
    'one': 1, 'two': 2, 'three': 3, 'four': 4, 'five': 5, 'six': 6,
    'seven': 7, 'eight': 8, 'nine': 9, 'ten': 10, 'eleven': 11, 'twelve': 12,
}

_NUMBER = r'\d+(?:\.\d+)?|' + '|'.join(NUMBER_WORDS)
_UNIT_ALT = '|'.join(re.escape(u) for u in sorted(UNIT_SYNONYMS, key=len, reverse=True))
_LENGTH = r'(?:ft|feet|foot)'

DIMENSION_RE = re.compile(
    rf'\b(?P<a>\d+(?:\.\d+)?)\s*{_LENGTH}?\s*(?:x|by)\s*(?P<b>\d+(?:\.\d+)?)(?:\s*{_LENGTH})?\b'
)
QUANTITY_RE = re.compile(
    rf'\b(?P<num>{_NUMBER})(?:\s*(?P<unit>{_UNIT_ALT})\b|\b)'
)


@dataclass
class QuantityToken:
    """A number found in the text, with its unit if one was attached."""
    value: float
    unit: Optional[str]
    start: int
    end: int
    text: str
    is_dimension: bool = False

    @property
    def is_bare(self) -> bool:
        return self.unit is None


def parse_number(raw: str) -> float:
    if raw in NUMBER_WORDS:
        return float(NUMBER_WORDS[raw])
    return float(raw)


def convert(quantity: float, from_unit: str, to_unit: str) -> Optional[float]:
    """
    Convert a quantity between canonical units.

    Returns None when no conversion is defined.
    """
    if from_unit == to_unit:
        return quantity
    factor = CONVERSIONS.get((from_unit, to_unit))
    if factor is None:
        return None
    return quantity * factor


def is_compatible(from_unit: Optional[str], to_unit: str) -> bool:
    """True if a token with `from_unit` can supply a quantity in `to_unit`."""
    if from_unit is None:
        return True
    return from_unit == to_unit or (from_unit, to_unit) in CONVERSIONS


def display_unit(unit: str) -> str:
    return UNIT_DISPLAY.get(unit, unit)


def find_quantity_tokens(text: str) -> list[QuantityToken]:
    """
    Scan normalized text for quantities.

    Dimension phrases ("12x10", "12 by 10 ft") become a single sqft token;
    other numbers carry the unit phrase that follows them, if any.
    """
    tokens = []
    taken = []

    for m in DIMENSION_RE.finditer(text):
        area = float(m.group('a')) * float(m.group('b'))
        tokens.append(QuantityToken(
            value=area, unit='sqft', start=m.start(), end=m.end(),
            text=m.group(0), is_dimension=True,
        ))
        taken.append((m.start(), m.end()))

    for m in QUANTITY_RE.finditer(text):
        if any(s <= m.start() < e for s, e in taken):
            continue
        unit_phrase = m.group('unit')
        tokens.append(QuantityToken(
            value=parse_number(m.group('num')),
            unit=UNIT_SYNONYMS[unit_phrase] if unit_phrase else None,
            start=m.start(),
            end=m.end('unit') if unit_phrase else m.end('num'),
            text=m.group(0).strip(),
        ))

    tokens.sort(key=lambda t: t.start)
    return tokens
