"""
Catalog data model.

A service catalog is a versioned set of ServiceCatalogEntry objects. Each
entry carries base settings (labor/material/business numbers) and any number
of tagged variable specs. A variable spec knows its own kind and turns a
chosen value into the pricing modifiers it contributes, so the calculator
never switches on service names.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Optional


# Modifier keys the two-tier formula understands
MODIFIER_KEYS = (
    'laborPercentage',
    'fixedLaborHours',
    'laborMultiplier',
    'crewSize',
    'materialMultiplier',
    'wastePercentage',
    'equipmentCost',
    'obstacleCost',
    'scaleWithQuantity',
)

VARIABLE_KINDS = ('select', 'number', 'toggle')

BASE_SETTING_CATEGORIES = ('laborSettings', 'materialSettings', 'businessSettings')

# Number variables with this effect feed a pricing model directly, no modifier
VALUE_EFFECT = 'value'


def extract_modifiers(raw: dict) -> dict:
    """Pick the known modifier keys out of a raw option/whenOn mapping."""
    return {k: raw[k] for k in MODIFIER_KEYS if k in raw}


@dataclass(frozen=True)
class Validation:
    """Numeric range for a setting or number variable."""
    min: float
    max: float
    step: Optional[float] = None

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max

    def describe(self) -> str:
        return f"[{self.min}, {self.max}]"


@dataclass(frozen=True)
class BaseSetting:
    """A single numeric base setting (e.g. hourlyLaborRate)."""
    category: str
    key: str
    value: float
    unit: str = ""
    label: str = ""
    description: str = ""
    validation: Optional[Validation] = None


@dataclass(frozen=True)
class VariableOption:
    """One choice of a select variable."""
    key: str
    label: str
    value: Optional[float] = None
    cues: tuple = ()
    modifiers: dict = field(default_factory=dict)


@dataclass(frozen=True)
class VariableSpec:
    """
    A configurable pricing input.

    `path` is "<category>.<key>", e.g. "siteAccess.accessDifficulty".
    Subclasses implement the kind-specific rules.
    """
    category: str
    key: str
    label: str
    default: Any = None

    kind = ""

    @property
    def path(self) -> str:
        return f"{self.category}.{self.key}"

    @property
    def has_default(self) -> bool:
        return self.default is not None

    def is_valid(self, value) -> bool:
        raise NotImplementedError

    def find_cue(self, text: str):
        """Return (value, cue) if the normalized text carries a cue, else None."""
        return None

    def modifiers_for(self, value) -> dict:
        raise NotImplementedError

    def describe_value(self, value) -> str:
        return str(value)


@dataclass(frozen=True)
class SelectSpec(VariableSpec):
    """Enumerated choice; modifiers are looked up on the chosen option."""
    options: dict = field(default_factory=dict)

    kind = "select"

    def is_valid(self, value) -> bool:
        return value in self.options

    def find_cue(self, text: str):
        # Longest cue across all options wins
        best = None
        for option in self.options.values():
            for cue in option.cues:
                if _contains_phrase(text, cue):
                    if best is None or len(cue) > len(best[1]):
                        best = (option.key, cue)
        return best

    def modifiers_for(self, value) -> dict:
        return dict(self.options[value].modifiers)

    def describe_value(self, value) -> str:
        option = self.options.get(value)
        return option.label if option else str(value)


@dataclass(frozen=True)
class NumberSpec(VariableSpec):
    """Numeric input; the value itself becomes the `effect` modifier."""
    effect: str = 'laborMultiplier'
    validation: Optional[Validation] = None
    pattern: Optional[str] = None

    kind = "number"

    def is_valid(self, value) -> bool:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if self.validation and not self.validation.contains(value):
            return False
        return True

    def find_cue(self, text: str):
        if not self.pattern:
            return None
        match = re.search(self.pattern, text)
        if not match:
            return None
        value = float(match.group(1))
        if not self.is_valid(value):
            return None
        return value, match.group(0)

    def modifiers_for(self, value) -> dict:
        if self.effect == VALUE_EFFECT:
            return {}
        return {self.effect: float(value)}


@dataclass(frozen=True)
class ToggleSpec(VariableSpec):
    """On/off input; `when_on` modifiers apply only when the toggle is on."""
    cues: tuple = ()
    when_on: dict = field(default_factory=dict)

    kind = "toggle"

    def is_valid(self, value) -> bool:
        return isinstance(value, bool)

    def find_cue(self, text: str):
        for cue in sorted(self.cues, key=len, reverse=True):
            if _contains_phrase(text, cue):
                return True, cue
        return None

    def modifiers_for(self, value) -> dict:
        return dict(self.when_on) if value else {}

    def describe_value(self, value) -> str:
        return "yes" if value else "no"


def _contains_phrase(text: str, phrase: str) -> bool:
    return re.search(r'\b' + re.escape(phrase.lower()) + r'\b', text) is not None


@dataclass(frozen=True)
class ServiceCatalogEntry:
    """One priceable service."""
    service_id: str
    service_name: str
    catalog_row: int
    unit: str
    unit_label: str
    category: str
    keywords: frozenset
    base_settings: dict = field(default_factory=dict)  # key -> BaseSetting
    variables: dict = field(default_factory=dict)  # path -> VariableSpec
    fixed_quantity: Optional[float] = None
    pricing_family: Optional[str] = None
    family_role: Optional[str] = None
    mapper: Optional[str] = None
    description: str = ""
    pricing_model: Optional[str] = None  # None prices with the two-tier formula

    def setting(self, key: str, default: Optional[float] = None) -> Optional[float]:
        """Value of a base setting, or `default` if the catalog omits it."""
        setting = self.base_settings.get(key)
        return setting.value if setting else default

    @property
    def display_unit(self) -> str:
        return self.unit_label or self.unit


@dataclass(frozen=True)
class CatalogSnapshot:
    """
    Immutable view of the catalog at one generation.

    The pipeline takes one snapshot per request; admin edits produce a new
    snapshot instead of mutating this one.
    """
    version: str
    last_modified: str
    services: dict  # service_id -> ServiceCatalogEntry
    content_hash: str = ""
    generation: int = 0
    document: dict = field(default_factory=dict, repr=False)

    def get(self, service_id: str) -> Optional[ServiceCatalogEntry]:
        return self.services.get(service_id)

    def get_by_row(self, catalog_row) -> Optional[ServiceCatalogEntry]:
        for entry in self.services.values():
            if entry.catalog_row == catalog_row:
                return entry
        return None

    def find_by_name(self, service_name: str) -> Optional[ServiceCatalogEntry]:
        wanted = service_name.strip().lower()
        for entry in self.services.values():
            if entry.service_name.lower() == wanted:
                return entry
        return None

    def by_pricing_model(self, model: str) -> Optional[ServiceCatalogEntry]:
        for entry in self.services.values():
            if entry.pricing_model == model:
                return entry
        return None

    def family_member(self, family: str, role: str) -> Optional[ServiceCatalogEntry]:
        for entry in self.services.values():
            if entry.pricing_family == family and entry.family_role == role:
                return entry
        return None

    def entries(self) -> list[ServiceCatalogEntry]:
        return list(self.services.values())

    def __len__(self):
        return len(self.services)
