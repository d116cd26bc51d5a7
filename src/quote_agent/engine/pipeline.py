"""
Pricing Agent - Runs one chat message through every pipeline stage.

mapping → collection → variables → pricing → formatting, all against a
single catalog snapshot taken at the start of the request. The agent never
raises for user input: clarification needs become clarification messages
and internal failures become an apology.
"""
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Optional, Union

from ..catalog.models import CatalogSnapshot
from ..catalog.store import CatalogStore
from .models import (
    CollectionResult,
    CustomerContext,
    ExtractedServiceRequest,
    PricingResult,
    SalesResponse,
)
from .parameter_collector import ParameterCollectorService
from .pricing_calculator import PricingCalculatorService
from .sales_personality import SalesPersonalityService
from .service_mapping import ServiceMappingEngine
from .variable_mapper import get_variable_mapper

logger = logging.getLogger(__name__)

STAGE_COMPLETE = "complete"


@dataclass
class AgentResponse:
    """Everything one pipeline run produced."""
    sales_response: SalesResponse
    collection: Optional[CollectionResult] = None
    pricing: Optional[PricingResult] = None
    stage: str = "mapping"  # last stage reached, "complete" on success
    timings_ms: dict = field(default_factory=dict)
    catalog_generation: Optional[int] = None

    @property
    def total_ms(self) -> float:
        return sum(self.timings_ms.values())

    def to_dict(self) -> dict:
        return {
            "response": self.sales_response.to_dict(),
            "stage": self.stage,
            "collection": self.collection.to_dict() if self.collection else None,
            "pricing": self.pricing.to_dict() if self.pricing else None,
            "timingsMs": {k: round(v, 2) for k, v in self.timings_ms.items()},
            "catalogGeneration": self.catalog_generation,
        }


@dataclass
class _Stages:
    generation: int
    snapshot: CatalogSnapshot
    collector: ParameterCollectorService
    calculator: PricingCalculatorService


class PricingAgent:
    """
    End-to-end pricing agent.

    Takes either a CatalogStore (admin edits are picked up on the next
    request) or a fixed CatalogSnapshot.
    """

    def __init__(
        self,
        catalog: Union[CatalogStore, CatalogSnapshot],
        aggregate_threshold: float = 0.8,
        service_threshold: float = 0.5,
        profit_margin_override: Optional[float] = None,
        sales: Optional[SalesPersonalityService] = None,
    ):
        self.catalog = catalog
        self.aggregate_threshold = aggregate_threshold
        self.service_threshold = service_threshold
        self.profit_margin_override = profit_margin_override
        self.sales = sales or SalesPersonalityService()
        self._stages: Optional[_Stages] = None
        self._build_lock = threading.Lock()

    @classmethod
    def from_settings(cls, store: CatalogStore, settings) -> 'PricingAgent':
        return cls(
            store,
            aggregate_threshold=settings.aggregate_confidence_threshold,
            service_threshold=settings.service_confidence_threshold,
            profit_margin_override=settings.profit_margin_override,
        )

    def _snapshot(self) -> CatalogSnapshot:
        if isinstance(self.catalog, CatalogStore):
            return self.catalog.snapshot()
        return self.catalog

    def _stages_for(self, snapshot: CatalogSnapshot) -> _Stages:
        """Stage objects bound to `snapshot`, rebuilt when the generation changes."""
        stages = self._stages
        if stages is not None and stages.snapshot is snapshot:
            return stages
        with self._build_lock:
            stages = self._stages
            if stages is None or stages.snapshot is not snapshot:
                mapping = ServiceMappingEngine(snapshot)
                stages = _Stages(
                    generation=snapshot.generation,
                    snapshot=snapshot,
                    collector=ParameterCollectorService(
                        snapshot,
                        mapping_engine=mapping,
                        aggregate_threshold=self.aggregate_threshold,
                        service_threshold=self.service_threshold,
                    ),
                    calculator=PricingCalculatorService(snapshot, self.profit_margin_override),
                )
                self._stages = stages
                logger.debug("Pipeline stages built for catalog generation %d", snapshot.generation)
        return stages

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run(self, text: str, context: Optional[CustomerContext] = None,
            intent: Optional[str] = None) -> AgentResponse:
        """Price a fresh chat message."""
        return self._run(text, context, intent or "quote", previous=None)

    def run_follow_up(self, text: str, previous: CollectionResult,
                      context: Optional[CustomerContext] = None) -> AgentResponse:
        """Price a clarification answer merged into the previous collection."""
        return self._run(text, context, "follow_up", previous=previous)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _run(self, text: str, context, intent: str, previous: Optional[CollectionResult]) -> AgentResponse:
        snapshot = self._snapshot()
        stages = self._stages_for(snapshot)
        response = AgentResponse(
            sales_response=self.sales.format_apology(context),
            catalog_generation=snapshot.generation,
        )
        text = text or ""

        try:
            response.stage = "collection"
            start = time.perf_counter()
            if previous is not None:
                collection = stages.collector.process_follow_up(text, previous)
            else:
                collection = stages.collector.collect(text)
            response.timings_ms["collection"] = (time.perf_counter() - start) * 1000
            response.collection = collection

            if not collection.is_ready:
                response.stage = "formatting"
                start = time.perf_counter()
                response.sales_response = self.sales.format_clarification(collection, context)
                response.timings_ms["formatting"] = (time.perf_counter() - start) * 1000
                response.stage = "collection"
                return response

            response.stage = "variables"
            start = time.perf_counter()
            requests = self._resolve_variables(snapshot, collection)
            response.timings_ms["variables"] = (time.perf_counter() - start) * 1000

            response.stage = "pricing"
            start = time.perf_counter()
            pricing = stages.calculator.calculate_pricing(requests)
            response.timings_ms["pricing"] = (time.perf_counter() - start) * 1000
            response.pricing = pricing
            if not pricing.success:
                self._log_failure(text, collection, response.stage, pricing.error)
                return response

            response.stage = "formatting"
            start = time.perf_counter()
            response.sales_response = self.sales.format_sales_response(
                pricing, context, intent=intent, text=collection.original_text,
            )
            response.timings_ms["formatting"] = (time.perf_counter() - start) * 1000
            response.stage = STAGE_COMPLETE
        except Exception as e:
            self._log_failure(text, response.collection, response.stage, e, exc_info=True)
            response.sales_response = self.sales.format_apology(context)
            response.pricing = None
        return response

    def _resolve_variables(self, snapshot: CatalogSnapshot,
                           collection: CollectionResult) -> list[ExtractedServiceRequest]:
        """Attach resolved complexity variables to every collected service."""
        requests = []
        for svc in collection.services:
            entry = snapshot.get(svc.service_id)
            if entry is None or not entry.variables:
                requests.append(svc)
                continue
            extraction = get_variable_mapper(entry).extract_variables(collection.original_text, svc.quantity)
            logger.debug("%s variables: inferred=%s defaulted=%s (confidence %.2f)",
                         entry.service_name, sorted(extraction.values.inferred),
                         sorted(extraction.values.defaulted), extraction.confidence)
            requests.append(replace(svc, variables=extraction.values))
        return requests

    def _log_failure(self, text: str, collection: Optional[CollectionResult], stage: str, error,
                     exc_info: bool = False):
        services = [s.service_name for s in collection.services] if collection else []
        logger.error("Pipeline failed at %s stage: %s | text=%r services=%s",
                     stage, error, text, services, exc_info=exc_info)
