"""
Parameter Collector - Quantity extraction and the "enough information yet?" decision.

For every mapped service, finds a quantity + unit in the text, scores how
much the extraction can be trusted and decides between ready_for_pricing and
needs_clarification. Single pass and side-effect free; a caller retries with
process_follow_up() after asking the clarifying questions.
"""
import logging
import re
from dataclasses import replace
from typing import Optional

from ..catalog.models import CatalogSnapshot, ServiceCatalogEntry
from .models import (
    NEEDS_CLARIFICATION,
    READY_FOR_PRICING,
    CollectionResult,
    ExtractedServiceRequest,
    MappedService,
)
from .service_mapping import ServiceMappingEngine
from .units import QuantityToken, convert, display_unit, find_quantity_tokens, is_compatible
from .variable_mapper import get_variable_mapper

logger = logging.getLogger(__name__)

# Connector words that start a new request segment
SEGMENT_SPLIT_RE = re.compile(r'\b(?:and|plus|also|then|as well as)\b')

# A bare number followed by one of these is not a service quantity
NON_QUANTITY_FOLLOWERS = {
    'person', 'people', 'man', 'men', 'worker', 'workers', 'crew',
    'inch', 'inches', 'in', 'hour', 'hours', 'day', 'days', 'week', 'weeks',
    'month', 'months', 'year', 'years', 'am', 'pm', 'percent',
}

AFFIRMATIVE_RE = re.compile(r'\b(?:yes|yep|yeah|correct|right|exactly|thats right|sounds good)\b')

# Confidence factors by quantity source
SOURCE_FACTORS = {
    'explicit': 1.0,
    'dimension': 1.0,
    'adjacent': 1.0,
    'fixed': 1.0,
    'follow_up': 1.0,
    'converted': 0.95,
    'estimated': 0.85,
    'bare': 0.6,
}

AMBIGUITY_FACTOR = 0.5

# Sources where the number carried its own unit
MEASURED_SOURCES = {'explicit', 'dimension', 'converted'}


class ParameterCollectorService:
    """Extracts quantities for mapped services and scores collection confidence."""

    MAX_FILLER_WORDS = 2

    def __init__(
        self,
        snapshot: CatalogSnapshot,
        mapping_engine: Optional[ServiceMappingEngine] = None,
        aggregate_threshold: float = 0.8,
        service_threshold: float = 0.5,
    ):
        self.snapshot = snapshot
        self.mapping_engine = mapping_engine or ServiceMappingEngine(snapshot)
        self.aggregate_threshold = aggregate_threshold
        self.service_threshold = service_threshold

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def collect(self, text: str) -> CollectionResult:
        """Run mapping and quantity extraction over one message."""
        mapping = self.mapping_engine.map_user_input(text)
        normalized = mapping.normalized_text

        if not mapping.services:
            logger.info("No services detected in %r", text)
            return self._finalize([], text, no_services=True,
                                  unmapped=self.mapping_engine.find_unmapped_text(text, mapping))

        tokens = find_quantity_tokens(normalized)
        mapped = [self._disambiguate(m, tokens, normalized) for m in mapping.services]
        repeats = [r for r in mapping.repeats if self.snapshot.get(r.service_id).fixed_quantity is None]
        assigned = self._assign_quantities(mapped + repeats, tokens, normalized)
        services = self._merge_repeats(assigned[:len(mapped)], assigned[len(mapped):])
        services = self._apply_family_rules(services)

        return self._finalize(services, text,
                              unmapped=self.mapping_engine.find_unmapped_text(text, mapping))

    def process_follow_up(self, text: str, previous: CollectionResult) -> CollectionResult:
        """
        Merge a clarification answer into a previous collection result.

        Resolves "did you mean" choices, fills missing quantities, confirms
        low-confidence quantities on a plain "yes" and picks up services that
        are only mentioned in the answer.
        """
        if not previous.services:
            return self.collect(text)

        mapping = self.mapping_engine.map_user_input(text)
        normalized = mapping.normalized_text
        tokens = [t for t in find_quantity_tokens(normalized)
                  if t.value > 0 and not self._is_non_quantity(t, normalized)]
        mentioned = {m.service_id: m for m in mapping.services}

        services = []
        for svc in previous.services:
            svc = replace(svc, candidates=list(svc.candidates))
            if len(svc.candidates) > 1:
                chosen = next((sid for sid in svc.candidates if sid in mentioned), None)
                if chosen:
                    entry = self.snapshot.get(chosen)
                    svc = replace(svc, service_id=entry.service_id, service_name=entry.service_name,
                                  catalog_row=entry.catalog_row, unit=entry.unit, candidates=[])
                    mentioned.pop(chosen, None)
            mentioned.pop(svc.service_id, None)
            services.append(svc)

        # Quantities in the answer go to services still lacking one, in order
        for i, svc in enumerate(services):
            if svc.has_quantity or not tokens:
                continue
            entry = self.snapshot.get(svc.service_id)
            token = next((t for t in tokens if is_compatible(t.unit, entry.unit)), None)
            if token is None:
                continue
            tokens.remove(token)
            quantity = convert(token.value, token.unit or entry.unit, entry.unit)
            services[i] = replace(svc, quantity=quantity, quantity_source='follow_up',
                                  source_span=token.text, original_quantity=token.value,
                                  original_unit=token.unit)

        if AFFIRMATIVE_RE.search(normalized):
            for i, svc in enumerate(services):
                if svc.quantity_source in ('bare', 'estimated', 'converted'):
                    services[i] = replace(svc, quantity_source='follow_up')

        # Services first mentioned in the answer
        if mentioned:
            extra = self._assign_quantities(list(mentioned.values()), tokens, normalized)
            services.extend(extra)
            services = self._apply_family_rules(services)

        combined_text = f"{previous.original_text} {text}".strip()
        return self._finalize(services, combined_text)

    def aggregate_confidence(self, services: list[ExtractedServiceRequest]) -> float:
        """
        Mean per-service confidence, scaled by the share of services with a quantity.

        0.0 for an empty list.
        """
        if not services:
            return 0.0
        mean = sum(s.extraction_confidence for s in services) / len(services)
        coverage = sum(1 for s in services if s.has_quantity) / len(services)
        return mean * coverage

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def _segments(self, normalized: str) -> list[tuple[int, int]]:
        bounds = [0]
        for m in SEGMENT_SPLIT_RE.finditer(normalized):
            bounds.extend([m.start(), m.end()])
        bounds.append(len(normalized))
        return [(bounds[i], bounds[i + 1]) for i in range(0, len(bounds), 2)]

    def _segment_of(self, pos: int, segments: list[tuple[int, int]]) -> int:
        for i, (start, end) in enumerate(segments):
            if start <= pos <= end:
                return i
        return -1

    def _is_non_quantity(self, token: QuantityToken, normalized: str) -> bool:
        if not token.is_bare:
            return False
        following = normalized[token.end:].split(maxsplit=1)
        return bool(following) and following[0] in NON_QUANTITY_FOLLOWERS

    def _is_adjacent(self, token: QuantityToken, mapped: MappedService, normalized: str) -> bool:
        """Number placed right before the service noun ("2 turf zones", "3 small trees")."""
        if token.end > mapped.start:
            return False
        between = normalized[token.end:mapped.start].split()
        return len(between) <= self.MAX_FILLER_WORDS

    def _disambiguate(self, mapped: MappedService, tokens: list[QuantityToken], normalized: str) -> MappedService:
        """Resolve a shared keyword using the nearest unit in the same segment."""
        if not mapped.is_ambiguous:
            return mapped
        segments = self._segments(normalized)
        seg = self._segment_of(mapped.start, segments)
        unit_tokens = [t for t in tokens if t.unit and self._segment_of(t.start, segments) == seg]
        if not unit_tokens:
            return mapped
        nearest = min(unit_tokens, key=lambda t: abs(t.start - mapped.start))
        fitting = [sid for sid in mapped.candidates
                   if is_compatible(nearest.unit, self.snapshot.get(sid).unit)]
        if len(fitting) != 1:
            return mapped
        entry = self.snapshot.get(fitting[0])
        logger.debug("Resolved shared keyword %r to %s by unit %s",
                     mapped.matched_keyword, entry.service_name, nearest.unit)
        return replace(mapped, service_id=entry.service_id, service_name=entry.service_name,
                       catalog_row=entry.catalog_row, candidates=[])

    def _new_request(self, mapped: MappedService, entry: ServiceCatalogEntry, **kwargs) -> ExtractedServiceRequest:
        return ExtractedServiceRequest(
            service_id=entry.service_id,
            service_name=entry.service_name,
            catalog_row=entry.catalog_row,
            unit=entry.unit,
            matched_keyword=mapped.matched_keyword,
            match_score=mapped.match_score,
            candidates=list(mapped.candidates),
            **kwargs,
        )

    def _assign_quantities(
        self,
        mapped_services: list[MappedService],
        tokens: list[QuantityToken],
        normalized: str,
    ) -> list[ExtractedServiceRequest]:
        """
        Pair each service with at most one quantity token.

        Greedy over (same segment, unit quality, distance); each token is used once.
        """
        segments = self._segments(normalized)
        usable = [t for t in tokens
                  if t.value > 0
                  and not self._is_non_quantity(t, normalized)
                  and not any(m.start <= t.start < m.end for m in mapped_services)]

        results = {}
        pairs = []
        for idx, mapped in enumerate(mapped_services):
            entry = self.snapshot.get(mapped.service_id)
            if entry.fixed_quantity is not None:
                results[idx] = self._new_request(
                    mapped, entry,
                    quantity=entry.fixed_quantity,
                    quantity_source='fixed',
                    source_span=normalized[mapped.start:mapped.end],
                )
                continue

            service_seg = self._segment_of(mapped.start, segments)
            for t_idx, token in enumerate(usable):
                if not is_compatible(token.unit, entry.unit):
                    continue
                same_segment = self._segment_of(token.start, segments) == service_seg
                if token.is_bare:
                    if mapped.is_repeat:
                        continue
                    if self._is_adjacent(token, mapped, normalized) and entry.unit == 'each':
                        source, rank = 'adjacent', 0
                    elif same_segment:
                        source, rank = 'bare', 2
                    else:
                        continue
                elif token.unit == entry.unit:
                    source, rank = ('dimension' if token.is_dimension else 'explicit'), 0
                else:
                    source, rank = 'converted', 1
                if token.end <= mapped.start:
                    distance = mapped.start - token.end
                else:
                    distance = max(0, token.start - mapped.end)
                pairs.append(((0 if same_segment else 1, rank, distance), idx, t_idx, source))

        pairs.sort(key=lambda p: p[0])
        used_tokens = set()
        for _, idx, t_idx, source in pairs:
            if idx in results or t_idx in used_tokens:
                continue
            mapped = mapped_services[idx]
            entry = self.snapshot.get(mapped.service_id)
            token = usable[t_idx]
            quantity = convert(token.value, token.unit or entry.unit, entry.unit)
            span_start = min(token.start, mapped.start)
            span_end = max(token.end, mapped.end)
            results[idx] = self._new_request(
                mapped, entry,
                quantity=quantity,
                quantity_source=source,
                original_quantity=token.value,
                original_unit=token.unit,
                source_span=normalized[span_start:span_end],
            )
            used_tokens.add(t_idx)

        services = []
        for idx, mapped in enumerate(mapped_services):
            request = results.get(idx)
            if request is None:
                entry = self.snapshot.get(mapped.service_id)
                request = self._estimate_or_missing(mapped, entry, normalized)
            request.extraction_confidence = self._service_confidence(request)
            services.append(request)
        return services

    def _estimate_or_missing(self, mapped: MappedService, entry: ServiceCatalogEntry, normalized: str) -> ExtractedServiceRequest:
        """Fall back to a size estimate from the domain mapper, if it has one."""
        estimate = get_variable_mapper(entry).estimate_quantity(normalized)
        if estimate is not None:
            quantity, evidence = estimate
            return self._new_request(mapped, entry, quantity=quantity, quantity_source='estimated',
                                     source_span=evidence)
        return self._new_request(mapped, entry, source_span=normalized[mapped.start:mapped.end])

    def _merge_repeats(
        self,
        services: list[ExtractedServiceRequest],
        repeats: list[ExtractedServiceRequest],
    ) -> list[ExtractedServiceRequest]:
        """
        Fold further mentions of a service into its first one.

        Only repeats with a unit-bearing quantity count. They replace a
        missing, estimated or bare quantity and add to any other, so
        "45 sq ft of mulch and 30 sq ft of mulch" is 75 sqft of mulch.
        """
        by_id = {svc.service_id: i for i, svc in enumerate(services)}
        for extra in repeats:
            i = by_id.get(extra.service_id)
            if i is None or extra.quantity_source not in MEASURED_SOURCES or not extra.has_quantity:
                continue
            svc = services[i]
            if not svc.has_quantity or svc.quantity_source in ('estimated', 'bare'):
                merged = replace(extra, matched_keyword=svc.matched_keyword,
                                 match_score=max(svc.match_score, extra.match_score))
            else:
                weaker = min((svc.quantity_source, extra.quantity_source), key=lambda s: SOURCE_FACTORS[s])
                same_unit = svc.original_unit == extra.original_unit
                merged = replace(
                    svc,
                    quantity=svc.quantity + extra.quantity,
                    quantity_source=weaker,
                    source_span=f"{svc.source_span} + {extra.source_span}",
                    original_quantity=svc.original_quantity + extra.original_quantity if same_unit else None,
                    original_unit=svc.original_unit if same_unit else None,
                )
            logger.debug("Merged repeat mention %r into %s -> %g",
                         extra.source_span, svc.service_name, merged.quantity)
            merged.extraction_confidence = self._service_confidence(merged)
            services[i] = merged
        return services

    def _apply_family_rules(self, services: list[ExtractedServiceRequest]) -> list[ExtractedServiceRequest]:
        """A family member without its setup line (zones without setup) gets it added."""
        present = {s.service_id for s in services}
        added = []
        for svc in services:
            entry = self.snapshot.get(svc.service_id)
            if not entry.pricing_family or entry.family_role == 'setup':
                continue
            setup = self.snapshot.family_member(entry.pricing_family, 'setup')
            if setup is None or setup.service_id in present:
                continue
            present.add(setup.service_id)
            added.append(ExtractedServiceRequest(
                service_id=setup.service_id,
                service_name=setup.service_name,
                catalog_row=setup.catalog_row,
                unit=setup.unit,
                quantity=setup.fixed_quantity or 1.0,
                quantity_source='fixed',
                match_score=svc.match_score,
                extraction_confidence=svc.match_score,
                auto_added=True,
            ))
            logger.debug("Added %s for %s", setup.service_name, entry.service_name)
        # Setup lines lead their family
        return added + services if added else services

    def _service_confidence(self, svc: ExtractedServiceRequest) -> float:
        if not svc.has_quantity:
            return 0.0
        confidence = svc.match_score * SOURCE_FACTORS.get(svc.quantity_source, 0.0)
        if len(svc.candidates) > 1:
            confidence *= AMBIGUITY_FACTOR
        return min(confidence, 1.0)

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    def _finalize(
        self,
        services: list[ExtractedServiceRequest],
        text: str,
        no_services: bool = False,
        unmapped: Optional[list[str]] = None,
    ) -> CollectionResult:
        for svc in services:
            svc.extraction_confidence = self._service_confidence(svc)

        confidence = self.aggregate_confidence(services)
        questions = self._clarifying_questions(services) if services else [
            "What can we help you with? For example mulch, edging, sod, irrigation or a paver patio."
        ]

        ready = (
            bool(services)
            and all(s.has_quantity for s in services)
            and all(s.extraction_confidence >= self.service_threshold for s in services)
            and confidence >= self.aggregate_threshold
            and not any(len(s.candidates) > 1 for s in services)
        )

        result = CollectionResult(
            services=services,
            status=READY_FOR_PRICING if ready else NEEDS_CLARIFICATION,
            confidence=confidence,
            clarifying_questions=[] if ready else questions,
            no_services_detected=no_services,
            original_text=text,
            unmapped_text=unmapped or [],
        )
        if not ready and services:
            logger.info("Clarification needed for %r: %s", text, result.clarifying_questions)
        return result

    def _clarifying_questions(self, services: list[ExtractedServiceRequest]) -> list[str]:
        """One question per service that blocks pricing."""
        questions = []
        for svc in services:
            entry = self.snapshot.get(svc.service_id)
            if len(svc.candidates) > 1:
                names = [self.snapshot.get(sid).service_name for sid in svc.candidates]
                questions.append(f"Did you mean {' or '.join(names)}?")
            elif not svc.has_quantity:
                if entry.unit == 'each':
                    questions.append(f"How many {entry.display_unit} do you need for {svc.service_name}?")
                else:
                    questions.append(
                        f"How much {svc.service_name} do you need (in {display_unit(entry.unit)})?"
                    )
            elif svc.extraction_confidence < self.aggregate_threshold:
                questions.append(
                    f"Just to confirm, is that {svc.quantity:g} {entry.display_unit} of {svc.service_name}?"
                )
        return questions
