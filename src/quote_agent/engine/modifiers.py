"""
Modifiers - Applies resolved variable options to hours and costs.

Each resolved variable contributes a small dict of modifiers (see
catalog.models.MODIFIER_KEYS). This module folds them into the two tiers
and records a readable line for every step that changed something.
"""
from dataclasses import dataclass

from ..catalog.models import ServiceCatalogEntry


@dataclass
class AppliedModifier:
    """Modifiers contributed by one resolved variable."""
    path: str
    label: str  # "Site Access: Difficult access"
    modifiers: dict


def collect_modifiers(entry: ServiceCatalogEntry, values: dict) -> list[AppliedModifier]:
    """Modifiers for every resolved variable that contributes any."""
    applied = []
    for path, spec in entry.variables.items():
        if path not in values:
            continue
        value = values[path]
        modifiers = spec.modifiers_for(value)
        if not modifiers:
            continue
        applied.append(AppliedModifier(
            path=path,
            label=f"{spec.label}: {spec.describe_value(value)}",
            modifiers=modifiers,
        ))
    return applied


class ModifierSet:
    """The modifiers of one service, applied in a fixed order."""

    def __init__(self, applied: list[AppliedModifier]):
        self.applied = applied

    def apply_to_hours(self, base_hours: float) -> tuple[float, list[str]]:
        """
        Tier 1 adjustments.

        Percentages are taken of the base hours and added, then fixed hours
        are added, then multipliers scale the running total.
        Returns (adjusted_hours, breakdown).
        """
        hours = base_hours
        breakdown = []

        for item in self.applied:
            pct = item.modifiers.get('laborPercentage', 0)
            if pct:
                extra = base_hours * pct / 100.0
                hours += extra
                breakdown.append(f"{item.label}: +{pct:g}% of base = +{extra:.2f} hours")

        for item in self.applied:
            fixed = item.modifiers.get('fixedLaborHours', 0)
            if fixed:
                hours += fixed
                breakdown.append(f"{item.label}: +{fixed:g} fixed hours")

        for item in self.applied:
            factor = item.modifiers.get('laborMultiplier')
            if factor is not None and factor != 1:
                before = hours
                hours *= factor
                breakdown.append(f"{item.label}: ×{factor:g} = {before:.2f} → {hours:.2f} hours")

        return hours, breakdown

    def crew_size(self, default: float = 1.0) -> tuple[float, list[str]]:
        """
        Crew size from the resolved variables.

        Returns (crew_size, breakdown).
        """
        crew = default
        breakdown = []
        for item in self.applied:
            if 'crewSize' in item.modifiers:
                crew = item.modifiers['crewSize']
                breakdown.append(f"{item.label}: crew of {crew:g}")
        return crew, breakdown

    def apply_to_material(self, material_base: float) -> tuple[float, list[str]]:
        """
        Grade multipliers on the base material cost.

        Returns (material_base, breakdown).
        """
        breakdown = []
        for item in self.applied:
            factor = item.modifiers.get('materialMultiplier')
            if factor is not None and factor != 1:
                before = material_base
                material_base *= factor
                breakdown.append(f"{item.label}: material ×{factor:g} = ${before:.2f} → ${material_base:.2f}")
        return material_base, breakdown

    def extra_waste_percentage(self) -> tuple[float, list[str]]:
        """
        Waste percentage added on top of the catalog base waste.

        Returns (percentage, breakdown).
        """
        total = 0.0
        breakdown = []
        for item in self.applied:
            pct = item.modifiers.get('wastePercentage', 0)
            if pct:
                total += pct
                breakdown.append(f"{item.label}: +{pct:g}% waste")
        return total, breakdown

    def flat_costs(self, quantity: float) -> tuple[float, float, list[str]]:
        """
        Equipment and obstacle add-ons.

        Flat per job unless the option sets scaleWithQuantity.
        Returns (equipment_cost, obstacle_cost, breakdown).
        """
        equipment = 0.0
        obstacle = 0.0
        breakdown = []
        for item in self.applied:
            scale = quantity if item.modifiers.get('scaleWithQuantity') else 1.0
            eq = item.modifiers.get('equipmentCost', 0) * scale
            ob = item.modifiers.get('obstacleCost', 0) * scale
            if eq:
                equipment += eq
                breakdown.append(f"{item.label}: equipment ${eq:.2f}")
            if ob:
                obstacle += ob
                breakdown.append(f"{item.label}: obstacles ${ob:.2f}")
        return equipment, obstacle, breakdown
