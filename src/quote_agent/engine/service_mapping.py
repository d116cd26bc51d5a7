"""
Service Mapping Engine - Resolves text spans to catalog entries.

Keyword/synonym matching over normalized text. The longest phrase wins a
span, so "triple ground mulch" consumes the span and "mulch" does not match
again inside it. Quantities are not looked at here.
"""
import logging
import re
from dataclasses import replace
from typing import Optional

from ..catalog.models import CatalogSnapshot
from ..utils.text import normalize_text
from .models import MappedService, MappingResult
from .units import UNIT_SYNONYMS, find_quantity_tokens

logger = logging.getLogger(__name__)

STOPWORDS = {
    'a', 'an', 'and', 'the', 'of', 'for', 'with', 'to', 'in', 'on', 'at', 'by',
    'my', 'our', 'i', 'we', 'me', 'us', 'it', 'is', 'be', 'do', 'can', 'you',
    'need', 'want', 'would', 'like', 'get', 'some', 'about', 'around', 'plus',
    'also', 'please', 'quote', 'price', 'cost', 'how', 'much', 'what', 'x',
    'install', 'installed', 'new', 'front', 'back', 'yard', 'backyard',
}


class ServiceMappingEngine:
    """
    Maps free text to catalog services by keyword.

    Built over one catalog snapshot; rebuild when the snapshot changes.
    """

    BASE_SCORE = 0.8
    EXACT_BONUS = 0.15
    PLURAL_BONUS = 0.10
    SPECIFIC_BONUS = 0.05
    SPECIFIC_LENGTH = 10

    def __init__(self, snapshot: CatalogSnapshot):
        """Index every keyword of the snapshot."""
        self.snapshot = snapshot
        owners = {}
        for entry in snapshot.entries():
            for keyword in entry.keywords:
                owners.setdefault(keyword, []).append(entry.service_id)

        self._patterns = []
        for keyword, service_ids in owners.items():
            service_ids.sort(key=lambda sid: snapshot.get(sid).catalog_row)
            pattern = re.compile(r'\b' + re.escape(keyword) + r'(?:es|s)?\b')
            self._patterns.append((keyword, service_ids, pattern))

    def score_match(self, keyword: str, matched_text: str) -> float:
        """Score a keyword hit: exact forms beat plural variants, long phrases get a bonus."""
        score = self.BASE_SCORE
        if matched_text == keyword:
            score += self.EXACT_BONUS
        else:
            score += self.PLURAL_BONUS
        if len(keyword) > self.SPECIFIC_LENGTH:
            score += self.SPECIFIC_BONUS
        return min(score, 1.0)

    def _find_occurrences(self, normalized: str) -> list[tuple]:
        occurrences = []
        for keyword, service_ids, pattern in self._patterns:
            for m in pattern.finditer(normalized):
                occurrences.append((m.start(), m.end(), keyword, service_ids, m.group(0)))
        # Longest span first, then leftmost
        occurrences.sort(key=lambda o: (-(o[1] - o[0]), o[0]))

        accepted = []
        for occ in occurrences:
            start, end = occ[0], occ[1]
            if any(start < a_end and a_start < end for a_start, a_end, *_ in accepted):
                continue
            accepted.append(occ)
        accepted.sort(key=lambda o: o[0])
        return accepted

    def map_user_input(self, text: str) -> MappingResult:
        """
        Resolve the services mentioned in `text`.

        Returns a MappingResult; an empty service list means nothing to price.
        Further mentions of an already-mapped service land in `repeats`.
        """
        normalized = normalize_text(text)
        best = {}  # service_id -> MappedService
        ambiguous = []
        repeats = []

        for start, end, keyword, service_ids, matched in self._find_occurrences(normalized):
            score = self.score_match(keyword, matched)
            primary = self.snapshot.get(service_ids[0])
            mapped = MappedService(
                service_id=primary.service_id,
                service_name=primary.service_name,
                catalog_row=primary.catalog_row,
                matched_keyword=keyword,
                match_score=score,
                start=start,
                end=end,
                candidates=list(service_ids) if len(service_ids) > 1 else [],
            )
            if mapped.is_ambiguous:
                ambiguous.append(mapped)
                continue
            current = best.get(mapped.service_id)
            if current is None:
                best[mapped.service_id] = mapped
            elif mapped.match_score > current.match_score:
                best[mapped.service_id] = mapped
                repeats.append(replace(current, is_repeat=True))
            else:
                repeats.append(replace(mapped, is_repeat=True))

        # A shared keyword that names a service already matched elsewhere refers to it
        for mapped in ambiguous:
            target = next((sid for sid in mapped.candidates if sid in best), None)
            if target is not None:
                if not best[target].is_ambiguous:
                    entry = self.snapshot.get(target)
                    repeats.append(replace(mapped, service_id=entry.service_id, service_name=entry.service_name,
                                           catalog_row=entry.catalog_row, candidates=[], is_repeat=True))
                continue
            best[mapped.service_id] = mapped

        services = sorted(best.values(), key=lambda s: s.start)
        repeats.sort(key=lambda s: s.start)
        logger.debug("Mapped %r -> %s", normalized, [(s.service_name, s.matched_keyword, s.match_score) for s in services])
        return MappingResult(services=services, normalized_text=normalized, repeats=repeats)

    def map_to_names(self, text: str) -> list[str]:
        """Service names only, in text order."""
        return self.map_user_input(text).service_names

    def find_unmapped_text(self, text: str, result: Optional[MappingResult] = None) -> list[str]:
        """Meaningful words not covered by a service keyword or a quantity."""
        result = result or self.map_user_input(text)
        normalized = result.normalized_text
        covered = [(s.start, s.end) for s in result.services + result.repeats]
        covered.extend((t.start, t.end) for t in find_quantity_tokens(normalized))

        unit_words = {w for phrase in UNIT_SYNONYMS for w in phrase.split()}
        leftovers = []
        for m in re.finditer(r'[a-z][a-z]+', normalized):
            if any(s <= m.start() < e for s, e in covered):
                continue
            word = m.group(0)
            if word in STOPWORDS or word in unit_words or len(word) < 3:
                continue
            leftovers.append(word)
        return leftovers
