"""
Pricing Calculator - Two-tier labor/cost formula with traceability.

Tier 1 turns quantity into labor hours:
1. base hours = quantity × laborHoursPerUnit
2. variable percentages of base, fixed hours, then multipliers
3. days = ceil(man-hours / (workday hours × crew size))

Tier 2 turns hours and materials into a price:
1. labor = man-hours × hourly rate
2. materials = quantity × unit cost × grade multipliers, plus waste
3. equipment and obstacle add-ons
4. profit = subtotal × profit margin, total = subtotal + profit

Excavation is priced by soil volume instead: cubic yards = area × depth ÷ 27,
plus waste and compaction, rounded per the catalog; crew time comes in
fixed hours per started area tier. A paver patio with includeExcavation on
carries those hours and that cost inside its own line.

A request is priced completely or not at all.
"""
import logging
import math
import time
from typing import Optional

from ..catalog.models import CatalogSnapshot, ServiceCatalogEntry
from .errors import (
    CalculationInvariantViolation,
    CatalogError,
    InvalidQuantity,
    MissingVariableDefault,
    PricingError,
    QuoteAgentError,
    UnknownCatalogEntry,
)
from .models import (
    ExcavationEstimate,
    ExtractedServiceRequest,
    PricingResult,
    PricingTotals,
    ResolvedVariables,
    ServicePricing,
    Tier1Result,
    Tier2Result,
)
from .modifiers import ModifierSet, collect_modifiers

logger = logging.getLogger(__name__)

DEFAULT_WORKDAY_HOURS = 8.0
IRRIGATION_FAMILY = 'irrigation'

EXCAVATION_MODEL = 'excavation'
CUBIC_FEET_PER_YARD = 27.0
DEFAULT_DEPTH_INCHES = 12.0
DEPTH_PATH = 'calculation.depthInches'
ROUNDING_PATH = 'calculation.roundingRule'
INCLUDE_EXCAVATION_PATH = 'serviceIntegrations.includeExcavation'


def round_cubic_yards(cubic_yards: float, rule: str) -> float:
    """Apply a rounding rule: up_whole, up_half or exact."""
    # 10 × 1.1 is 11.000000000000002 in floats and must stay 11
    cleaned = round(cubic_yards, 6)
    if rule == 'up_whole':
        return float(math.ceil(cleaned))
    if rule == 'up_half':
        return math.ceil(cleaned * 2) / 2
    if rule == 'exact':
        return cubic_yards
    raise PricingError(f"unknown cubic yard rounding rule {rule!r}")


class PricingCalculatorService:
    """Prices extracted services against one catalog snapshot."""

    def __init__(self, snapshot: CatalogSnapshot, profit_margin_override: Optional[float] = None):
        self.snapshot = snapshot
        self.profit_margin_override = profit_margin_override

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def calculate_pricing(self, services: list[ExtractedServiceRequest]) -> PricingResult:
        """
        Price every service in the request.

        Returns a PricingResult; on any failure success is False, error is
        set and no services are included.
        """
        return self._run(services, self._price_all)

    def calculate_irrigation_pricing(self, services: list[ExtractedServiceRequest]) -> PricingResult:
        """
        Price an irrigation request.

        The setup line is a flat per-job cost (always quantity 1, added when
        missing); zones scale per unit. Same result shape as calculate_pricing.
        """
        return self._run(services, self._price_irrigation)

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def _run(self, services, price_fn) -> PricingResult:
        start = time.perf_counter()
        result = PricingResult(catalog_generation=self.snapshot.generation)
        result.add_trace("Catalog", f"Using catalog v{self.snapshot.version}", f"generation {self.snapshot.generation}")

        try:
            if not services:
                raise PricingError("no services to price")
            priced = price_fn(services, result)
            totals = self._totals(priced)
        except (PricingError, CatalogError) as e:
            return self._failure(result, e, services, start)

        result.services = priced
        result.totals = totals
        result.calculation_time_ms = (time.perf_counter() - start) * 1000
        result.add_trace("Total", f"{len(priced)} services, {totals.total_labor_hours:.2f} man-hours",
                         f"${totals.total_cost:.2f}")
        logger.debug("Priced %d services: $%.2f", len(priced), totals.total_cost)
        return result

    def _failure(self, result: PricingResult, error: QuoteAgentError, services, start) -> PricingResult:
        names = [getattr(s, 'service_name', '?') for s in services or []]
        if isinstance(error, (UnknownCatalogEntry, MissingVariableDefault, CatalogError)):
            logger.error("Pricing failed (configuration) for %s: %s", names, error)
        else:
            logger.warning("Pricing failed for %s: %s", names, error)
        result.success = False
        result.error = str(error)
        result.services = []
        result.totals = PricingTotals()
        result.calculation_time_ms = (time.perf_counter() - start) * 1000
        result.add_trace("Failure", type(error).__name__, str(error))
        return result

    def _price_all(self, services, result: PricingResult) -> list[ServicePricing]:
        irrigation = []
        priced = []
        for svc in services:
            entry = self._entry(svc)
            if entry.pricing_family == IRRIGATION_FAMILY:
                irrigation.append(svc)
                continue
            if entry.pricing_model == EXCAVATION_MODEL:
                priced.append(self._price_excavation(entry, svc.quantity, svc.variables))
                continue
            priced.append(self._price_service(entry, svc.quantity, svc.variables))
        if irrigation:
            result.add_trace("Routing", "Irrigation family priced as setup + zones", str(len(irrigation)))
            priced.extend(self._price_irrigation(irrigation, result))
        return priced

    def _price_irrigation(self, services, result: PricingResult) -> list[ServicePricing]:
        setup_entry = self.snapshot.family_member(IRRIGATION_FAMILY, 'setup')
        if setup_entry is None:
            raise UnknownCatalogEntry('irrigation setup')

        setup_priced = None
        zones = []
        for svc in services:
            entry = self._entry(svc)
            if entry.service_id == setup_entry.service_id:
                if svc.quantity not in (None, 1, 1.0):
                    result.add_warning(f"{entry.service_name} is charged once per job; quantity {svc.quantity:g} ignored")
                self._check_quantity(entry, svc.quantity if svc.quantity is not None else 1.0)
                setup_priced = self._price_service(entry, 1.0, svc.variables)
                setup_priced.add_trace("Setup", "Flat per-job cost", "quantity 1")
            elif entry.pricing_family == IRRIGATION_FAMILY:
                zones.append(self._price_service(entry, svc.quantity, svc.variables))
            else:
                raise PricingError(f"{entry.service_name} is not an irrigation service")

        if setup_priced is None:
            setup_priced = self._price_service(setup_entry, 1.0, None)
            setup_priced.add_trace("Setup", "Added automatically for zones", "quantity 1")
            result.add_trace("Irrigation", "Setup line added", setup_entry.service_name)
        return [setup_priced] + zones

    def _entry(self, svc: ExtractedServiceRequest) -> ServiceCatalogEntry:
        entry = self.snapshot.get_by_row(svc.catalog_row)
        if entry is None:
            raise UnknownCatalogEntry(svc.catalog_row)
        return entry

    # ------------------------------------------------------------------
    # Formula
    # ------------------------------------------------------------------

    def _check_quantity(self, entry: ServiceCatalogEntry, quantity):
        if (
            quantity is None
            or isinstance(quantity, bool)
            or not isinstance(quantity, (int, float))
            or not math.isfinite(quantity)
            or quantity <= 0
        ):
            raise InvalidQuantity(entry.service_name, quantity)

    def _resolve_values(self, entry: ServiceCatalogEntry, variables: Optional[ResolvedVariables]) -> dict:
        """Resolved values for every variable, filling catalog defaults."""
        given = variables.values if variables else {}
        values = {}
        for path, spec in entry.variables.items():
            if path in given:
                value = given[path]
                if not spec.is_valid(value):
                    raise PricingError(f"{entry.service_name}: invalid value {value!r} for {path}")
                values[path] = value
            elif spec.has_default:
                values[path] = spec.default
            else:
                raise MissingVariableDefault(entry.service_name, path)
        return values

    def profit_margin(self, entry: ServiceCatalogEntry) -> float:
        """Catalog margin, or the company override checked against the catalog's range."""
        setting = entry.base_settings['profitMarginTarget']
        if self.profit_margin_override is None:
            return setting.value
        margin = self.profit_margin_override
        lo, hi = (setting.validation.min, setting.validation.max) if setting.validation else (0.0, 0.99)
        if not (lo <= margin <= hi):
            raise CatalogError(
                f"Profit margin {margin} outside allowed range [{lo}, {hi}] for {entry.service_name}"
            )
        return margin

    def _price_service(
        self,
        entry: ServiceCatalogEntry,
        quantity,
        variables: Optional[ResolvedVariables],
    ) -> ServicePricing:
        """Tier 1 + Tier 2 for one service."""
        self._check_quantity(entry, quantity)
        if variables is not None and variables.missing:
            raise MissingVariableDefault(entry.service_name, sorted(variables.missing)[0])

        values = self._resolve_values(entry, variables)
        mods = ModifierSet(collect_modifiers(entry, values))

        # Tier 1: labor hours
        rate_per_unit = entry.setting('laborHoursPerUnit')
        base_hours = quantity * rate_per_unit
        breakdown = [f"Base: {quantity:g} {entry.display_unit} × {rate_per_unit:g} hours = {base_hours:.2f} hours"]
        adjusted_hours, hour_steps = mods.apply_to_hours(base_hours)
        breakdown.extend(hour_steps)

        excavation = self._bundled_excavation(entry, values, quantity)
        if excavation is not None:
            adjusted_hours += excavation.hours
            breakdown.append(f"+Excavation (bundled): +{excavation.hours:g} hours")
        excavation_cost = excavation.base_cost if excavation else 0.0

        crew, crew_steps = mods.crew_size(default=1.0)
        breakdown.extend(crew_steps)
        workday = entry.setting('standardWorkdayHours', DEFAULT_WORKDAY_HOURS)
        hours_per_day = workday * crew
        total_man_hours = adjusted_hours

        if not math.isfinite(total_man_hours) or total_man_hours <= 0:
            raise CalculationInvariantViolation(
                f"{entry.service_name}: labor hours must be positive (got {total_man_hours})"
            )
        total_days = math.ceil(total_man_hours / hours_per_day)
        breakdown.append(f"Total: {total_man_hours:.2f} man-hours ÷ {hours_per_day:g} hours/day = {total_days} days")

        tier1 = Tier1Result(
            base_hours=base_hours,
            adjusted_hours=adjusted_hours,
            total_man_hours=total_man_hours,
            total_days=total_days,
            hours_per_day=hours_per_day,
            breakdown=breakdown,
        )

        # Tier 2: costs
        hourly_rate = entry.setting('hourlyLaborRate')
        labor_cost = total_man_hours * hourly_rate

        material_cost_base, material_steps = mods.apply_to_material(quantity * entry.setting('baseMaterialCost'))
        extra_waste, waste_steps = mods.extra_waste_percentage()
        waste_pct = entry.setting('wastePercentage', 0.0) + extra_waste
        material_waste_cost = material_cost_base * waste_pct / 100.0
        total_material_cost = material_cost_base + material_waste_cost

        equipment_cost, obstacle_cost, flat_steps = mods.flat_costs(quantity)

        subtotal = labor_cost + total_material_cost + equipment_cost + obstacle_cost + excavation_cost
        margin = self.profit_margin(entry)
        profit = subtotal * margin
        total = subtotal + profit

        tier2 = Tier2Result(
            labor_cost=labor_cost,
            material_cost_base=material_cost_base,
            material_waste_cost=material_waste_cost,
            total_material_cost=total_material_cost,
            equipment_cost=equipment_cost,
            obstacle_cost=obstacle_cost,
            subtotal=subtotal,
            profit_margin=margin,
            profit=profit,
            total=total,
            price_per_unit=total / quantity,
            excavation_cost=excavation_cost,
        )
        self._check_costs(entry, tier2)

        priced = ServicePricing(
            service_id=entry.service_id,
            service_name=entry.service_name,
            catalog_row=entry.catalog_row,
            quantity=quantity,
            unit=entry.unit,
            unit_label=entry.display_unit,
            tier1=tier1,
            tier2=tier2,
            variables={path: entry.variables[path].describe_value(v) for path, v in values.items()},
        )
        priced.add_trace("Catalog Lookup", f"Row {entry.catalog_row}", entry.service_name)
        priced.add_trace("Tier 1", f"{total_man_hours:.2f} man-hours over {total_days} days", f"{adjusted_hours:.2f} h")
        priced.add_trace("Labor", f"{total_man_hours:.2f} h × ${hourly_rate:.2f}", f"${labor_cost:.2f}")
        for step in material_steps + waste_steps + flat_steps:
            priced.add_trace("Modifier", step)
        priced.add_trace("Materials", f"base ${material_cost_base:.2f} + waste {waste_pct:g}%", f"${total_material_cost:.2f}")
        if excavation is not None:
            priced.add_trace("Excavation", f"{excavation.cubic_yards:g} cubic yards, {excavation.hours:g} h bundled",
                             f"${excavation_cost:.2f}")
        priced.add_trace("Profit", f"{margin:.0%} of ${subtotal:.2f}", f"${profit:.2f}")
        priced.add_trace("Total", f"{quantity:g} {entry.display_unit}", f"${total:.2f}")
        return priced

    # ------------------------------------------------------------------
    # Excavation
    # ------------------------------------------------------------------

    def estimate_excavation(
        self,
        entry: ServiceCatalogEntry,
        area_sqft: float,
        depth_inches: Optional[float] = None,
        rounding_rule: Optional[str] = None,
    ) -> ExcavationEstimate:
        """
        Volume, time and base cost of digging out `area_sqft`.

        cubic yards = area × (depth / 12) ÷ 27, grown by the waste and
        compaction percentages, then rounded. Each started tier of
        `tierSqft` square feet costs `hoursPerTier` man-hours and
        `daysPerTier` days. Base cost is rounded yards × rate, before profit.
        """
        depth = DEFAULT_DEPTH_INCHES if depth_inches is None else float(depth_inches)
        rule = rounding_rule or 'up_whole'
        if not math.isfinite(depth) or depth <= 0:
            raise PricingError(f"{entry.service_name}: invalid excavation depth {depth_inches!r}")

        raw = area_sqft * (depth / 12.0) / CUBIC_FEET_PER_YARD
        adjusted = (raw
                    * (1 + entry.setting('wasteFactor') / 100.0)
                    * (1 + entry.setting('compactionFactor') / 100.0))
        cubic_yards = round_cubic_yards(adjusted, rule)

        tiers = math.ceil(area_sqft / entry.setting('tierSqft'))
        hours = tiers * entry.setting('hoursPerTier')
        days = math.ceil(round(tiers * entry.setting('daysPerTier'), 6))

        return ExcavationEstimate(
            area_sqft=area_sqft,
            depth_inches=depth,
            cubic_yards_raw=raw,
            cubic_yards_adjusted=adjusted,
            cubic_yards=cubic_yards,
            rounding_rule=rule,
            tiers=tiers,
            hours=hours,
            days=days,
            base_cost=cubic_yards * entry.setting('baseRatePerCubicYard'),
        )

    def _price_excavation(
        self,
        entry: ServiceCatalogEntry,
        quantity,
        variables: Optional[ResolvedVariables],
    ) -> ServicePricing:
        """Standalone excavation line in the usual two-tier shape."""
        self._check_quantity(entry, quantity)
        values = self._resolve_values(entry, variables)
        est = self.estimate_excavation(entry, quantity, values.get(DEPTH_PATH), values.get(ROUNDING_PATH))

        tier1 = Tier1Result(
            base_hours=est.hours,
            adjusted_hours=est.hours,
            total_man_hours=est.hours,
            total_days=est.days,
            hours_per_day=entry.setting('hoursPerTier') / entry.setting('daysPerTier'),
            breakdown=[
                f"Volume: {quantity:g} sqft × {est.depth_inches:g} in ÷ 27 = {est.cubic_yards_raw:.2f} cubic yards",
                f"Waste and compaction: {est.cubic_yards_adjusted:.2f} cubic yards",
                f"Rounding ({est.rounding_rule}): {est.cubic_yards:g} cubic yards",
                f"Time: {est.tiers} tier(s) = {est.hours:g} man-hours over {est.days} days",
            ],
        )

        rate = entry.setting('baseRatePerCubicYard')
        margin = self.profit_margin(entry)
        profit = est.base_cost * margin
        total = est.base_cost + profit
        tier2 = Tier2Result(
            labor_cost=est.base_cost,
            material_cost_base=0.0,
            material_waste_cost=0.0,
            total_material_cost=0.0,
            equipment_cost=0.0,
            obstacle_cost=0.0,
            subtotal=est.base_cost,
            profit_margin=margin,
            profit=profit,
            total=total,
            price_per_unit=total / quantity,
        )
        if est.hours <= 0:
            raise CalculationInvariantViolation(f"{entry.service_name}: labor hours must be positive (got {est.hours})")
        self._check_costs(entry, tier2)

        priced = ServicePricing(
            service_id=entry.service_id,
            service_name=entry.service_name,
            catalog_row=entry.catalog_row,
            quantity=quantity,
            unit=entry.unit,
            unit_label=entry.display_unit,
            tier1=tier1,
            tier2=tier2,
            variables={path: entry.variables[path].describe_value(v) for path, v in values.items()},
        )
        priced.add_trace("Catalog Lookup", f"Row {entry.catalog_row}", entry.service_name)
        priced.add_trace("Volume", f"{est.cubic_yards_adjusted:.2f} cubic yards, rounded {est.rounding_rule}",
                         f"{est.cubic_yards:g} cubic yards")
        priced.add_trace("Tier 1", f"{est.hours:g} man-hours over {est.days} days", f"{est.tiers} tier(s)")
        priced.add_trace("Volume Cost", f"{est.cubic_yards:g} cubic yards × ${rate:.2f}", f"${est.base_cost:.2f}")
        priced.add_trace("Profit", f"{margin:.0%} of ${est.base_cost:.2f}", f"${profit:.2f}")
        priced.add_trace("Total", f"{quantity:g} {entry.display_unit}", f"${total:.2f}")
        return priced

    def _bundled_excavation(self, entry: ServiceCatalogEntry, values: dict, area) -> Optional[ExcavationEstimate]:
        """Excavation carried by another service's includeExcavation toggle, at catalog defaults."""
        if values.get(INCLUDE_EXCAVATION_PATH) is not True:
            return None
        excavation = self.snapshot.by_pricing_model(EXCAVATION_MODEL)
        if excavation is None:
            raise UnknownCatalogEntry(EXCAVATION_MODEL)
        if entry.unit != excavation.unit:
            raise PricingError(f"{entry.service_name}: excavation needs an area in {excavation.unit}")
        defaults = self._resolve_values(excavation, None)
        return self.estimate_excavation(excavation, area, defaults.get(DEPTH_PATH), defaults.get(ROUNDING_PATH))

    def _check_costs(self, entry: ServiceCatalogEntry, tier2: Tier2Result):
        for name in ('labor_cost', 'material_cost_base', 'material_waste_cost', 'total_material_cost',
                     'equipment_cost', 'obstacle_cost', 'excavation_cost', 'subtotal', 'profit', 'total', 'price_per_unit'):
            value = getattr(tier2, name)
            if not math.isfinite(value) or value < 0:
                raise CalculationInvariantViolation(f"{entry.service_name}: {name} is {value}")

    def _totals(self, priced: list[ServicePricing]) -> PricingTotals:
        totals = PricingTotals(
            total_cost=sum(p.tier2.total for p in priced),
            total_labor_hours=sum(p.tier1.total_man_hours for p in priced),
            total_labor_cost=sum(p.tier2.labor_cost for p in priced),
            total_material_cost=sum(p.tier2.total_material_cost for p in priced),
            total_days=sum(p.tier1.total_days for p in priced),
        )
        if totals.total_labor_hours <= 0:
            raise CalculationInvariantViolation("total labor hours must be positive")
        return totals
