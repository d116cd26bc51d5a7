"""
Data models for the pricing pipeline.

Uses dataclasses for structured, type-safe data representation.
All of these are created per request and discarded after the response.
"""
from dataclasses import dataclass, field
from typing import Optional


# CollectionResult.status values
COLLECTING = "collecting"
NEEDS_CLARIFICATION = "needs_clarification"
READY_FOR_PRICING = "ready_for_pricing"

# SalesResponse.tone values
CASUAL = "casual"
PROFESSIONAL = "professional"
PREMIUM = "premium"


@dataclass
class TraceStep:
    """A single step in the pricing trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass
class MappedService:
    """A catalog entry matched by a keyword in the input text."""
    service_id: str
    service_name: str
    catalog_row: int
    matched_keyword: str
    match_score: float
    start: int  # span in normalized text
    end: int
    candidates: list[str] = field(default_factory=list)  # tied service_ids sharing this span
    is_repeat: bool = False  # another mention of a service already mapped

    @property
    def is_ambiguous(self) -> bool:
        return len(self.candidates) > 1


@dataclass
class MappingResult:
    """Output of ServiceMappingEngine.map_user_input."""
    services: list[MappedService]
    normalized_text: str
    repeats: list[MappedService] = field(default_factory=list)

    @property
    def service_names(self) -> list[str]:
        return [s.service_name for s in self.services]


@dataclass
class ResolvedVariables:
    """Per-service complexity inputs, keyed by variable path."""
    values: dict = field(default_factory=dict)
    inferred: set = field(default_factory=set)
    defaulted: set = field(default_factory=set)
    missing: set = field(default_factory=set)  # no cue and no default
    evidence: dict = field(default_factory=dict)  # path -> cue text

    def to_dict(self) -> dict:
        return {
            "values": dict(self.values),
            "inferred": sorted(self.inferred),
            "defaulted": sorted(self.defaulted),
            "missing": sorted(self.missing),
        }


@dataclass
class VariableExtractionResult:
    """Output of a domain variable mapper."""
    values: ResolvedVariables
    quantity: float
    extracted_variables: list[str] = field(default_factory=list)
    defaults_used: list[str] = field(default_factory=list)
    confidence: float = 0.0


@dataclass
class ExtractedServiceRequest:
    """One service found in user text, with its quantity if one was found."""
    service_id: str
    service_name: str
    catalog_row: int
    unit: str
    quantity: Optional[float] = None
    source_span: str = ""
    extraction_confidence: float = 0.0
    matched_keyword: str = ""
    match_score: float = 0.0
    # explicit / converted / dimension / adjacent / fixed / bare / follow_up / missing
    quantity_source: str = "missing"
    original_quantity: Optional[float] = None
    original_unit: Optional[str] = None
    candidates: list[str] = field(default_factory=list)
    auto_added: bool = False
    variables: Optional[ResolvedVariables] = None

    @property
    def has_quantity(self) -> bool:
        return self.quantity is not None and self.quantity > 0

    def to_dict(self) -> dict:
        return {
            "serviceName": self.service_name,
            "catalogRow": self.catalog_row,
            "quantity": self.quantity,
            "unit": self.unit,
            "sourceSpan": self.source_span,
            "extractionConfidence": round(self.extraction_confidence, 4),
            "quantitySource": self.quantity_source,
            "candidates": list(self.candidates),
            "autoAdded": self.auto_added,
            "variables": self.variables.to_dict() if self.variables else None,
        }


@dataclass
class CollectionResult:
    """Output of parameter collection."""
    services: list[ExtractedServiceRequest]
    status: str
    confidence: float
    clarifying_questions: list[str] = field(default_factory=list)
    no_services_detected: bool = False
    original_text: str = ""
    unmapped_text: list[str] = field(default_factory=list)

    @property
    def is_ready(self) -> bool:
        return self.status == READY_FOR_PRICING

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "confidence": round(self.confidence, 4),
            "services": [s.to_dict() for s in self.services],
            "clarifyingQuestions": list(self.clarifying_questions),
            "noServicesDetected": self.no_services_detected,
            "unmappedText": list(self.unmapped_text),
        }


@dataclass
class Tier1Result:
    """Labor-hours stage."""
    base_hours: float
    adjusted_hours: float
    total_man_hours: float
    total_days: int
    hours_per_day: float
    breakdown: list[str] = field(default_factory=list)


@dataclass
class Tier2Result:
    """Cost stage."""
    labor_cost: float
    material_cost_base: float
    material_waste_cost: float
    total_material_cost: float
    equipment_cost: float
    obstacle_cost: float
    subtotal: float
    profit_margin: float
    profit: float
    total: float
    price_per_unit: float
    excavation_cost: float = 0.0  # bundled excavation, inside subtotal


@dataclass
class ExcavationEstimate:
    """Soil volume, crew time and base cost of an excavation."""
    area_sqft: float
    depth_inches: float
    cubic_yards_raw: float
    cubic_yards_adjusted: float  # after waste and compaction
    cubic_yards: float  # after rounding
    rounding_rule: str
    tiers: int
    hours: float
    days: int
    base_cost: float


@dataclass
class ServicePricing:
    """One priced service."""
    service_id: str
    service_name: str
    catalog_row: int
    quantity: float
    unit: str
    unit_label: str
    tier1: Tier1Result
    tier2: Tier2Result
    variables: dict = field(default_factory=dict)  # path -> human-readable value
    trace: list[TraceStep] = field(default_factory=list)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the trace for this service."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"→ {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"→ {t.step}: {t.description}")
        return "\n".join(lines)


@dataclass
class PricingTotals:
    total_cost: float = 0.0
    total_labor_hours: float = 0.0
    total_labor_cost: float = 0.0
    total_material_cost: float = 0.0
    total_days: int = 0


@dataclass
class PricingResult:
    """Aggregate pricing across all services in a request."""
    services: list[ServicePricing] = field(default_factory=list)
    totals: PricingTotals = field(default_factory=PricingTotals)
    success: bool = True
    error: Optional[str] = None
    calculation_time_ms: float = 0.0
    catalog_generation: Optional[int] = None
    warnings: list[str] = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the result-level trace."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def add_warning(self, warning: str):
        """Add a result-level warning."""
        self.warnings.append(warning)

    def get_trace_text(self) -> str:
        """Get human-readable result trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"• {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"• {t.step}: {t.description}")
        return "\n".join(lines)

    def get_pricing_summary(self) -> dict:
        """Counts and cost categories for admin panels."""
        if not self.success:
            return {"success": False, "error": self.error, "serviceCount": 0}
        return {
            "success": True,
            "serviceCount": len(self.services),
            "services": [s.service_name for s in self.services],
            "totalCost": round(self.totals.total_cost, 2),
            "totalLaborHours": round(self.totals.total_labor_hours, 2),
            "totalDays": self.totals.total_days,
            "laborCost": round(self.totals.total_labor_cost, 2),
            "materialCost": round(self.totals.total_material_cost, 2),
            "equipmentCost": round(sum(s.tier2.equipment_cost for s in self.services), 2),
            "obstacleCost": round(sum(s.tier2.obstacle_cost for s in self.services), 2),
            "excavationCost": round(sum(s.tier2.excavation_cost for s in self.services), 2),
            "profit": round(sum(s.tier2.profit for s in self.services), 2),
            "calculationTimeMs": round(self.calculation_time_ms, 2),
        }

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "error": self.error,
            "calculationTime": round(self.calculation_time_ms, 2),
            "catalogGeneration": self.catalog_generation,
            "totals": {
                "totalCost": round(self.totals.total_cost, 2),
                "totalLaborHours": round(self.totals.total_labor_hours, 2),
                "totalLaborCost": round(self.totals.total_labor_cost, 2),
                "totalMaterialCost": round(self.totals.total_material_cost, 2),
                "totalDays": self.totals.total_days,
            },
            "services": [
                {
                    "serviceName": s.service_name,
                    "catalogRow": s.catalog_row,
                    "quantity": s.quantity,
                    "unit": s.unit,
                    "variables": dict(s.variables),
                    "tier1": {
                        "baseHours": round(s.tier1.base_hours, 3),
                        "adjustedHours": round(s.tier1.adjusted_hours, 3),
                        "totalManHours": round(s.tier1.total_man_hours, 3),
                        "totalDays": s.tier1.total_days,
                        "breakdown": list(s.tier1.breakdown),
                    },
                    "tier2": {
                        "laborCost": round(s.tier2.labor_cost, 2),
                        "materialCostBase": round(s.tier2.material_cost_base, 2),
                        "materialWasteCost": round(s.tier2.material_waste_cost, 2),
                        "totalMaterialCost": round(s.tier2.total_material_cost, 2),
                        "equipmentCost": round(s.tier2.equipment_cost, 2),
                        "obstacleCost": round(s.tier2.obstacle_cost, 2),
                        "excavationCost": round(s.tier2.excavation_cost, 2),
                        "subtotal": round(s.tier2.subtotal, 2),
                        "profit": round(s.tier2.profit, 2),
                        "total": round(s.tier2.total, 2),
                        "pricePerUnit": round(s.tier2.price_per_unit, 2),
                    },
                }
                for s in self.services
            ],
            "warnings": list(self.warnings),
        }


@dataclass
class CustomerContext:
    """Tone-selection input supplied by the caller."""
    first_name: str = ""
    job_title: Optional[str] = None
    is_return_customer: Optional[bool] = None
    urgency_level: Optional[str] = None  # routine / seasonal / emergency


@dataclass
class SalesResponse:
    """Final customer-facing output."""
    message: str
    tone: str
    kind: str = "quote"  # quote / clarification / apology
    price_range: Optional[str] = None
    urgency: str = "routine"
    follow_up_suggestions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "tone": self.tone,
            "kind": self.kind,
            "priceRange": self.price_range,
            "urgency": self.urgency,
            "followUpSuggestions": list(self.follow_up_suggestions),
        }
