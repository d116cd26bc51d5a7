"""
Domain Variable Mappers - Complexity inputs from text, with catalog fallback.

For each variable a service defines (site access, tear-out, grade, crew
size...), look for a cue in the text and pick the matching value; otherwise
take the catalog default. Inferred and defaulted variables are reported
separately so callers can see how much of a quote rests on defaults.
"""
import logging
import re
from typing import Optional

from ..catalog.models import ServiceCatalogEntry
from ..utils.text import normalize_text
from .models import ResolvedVariables, VariableExtractionResult

logger = logging.getLogger(__name__)


class VariableMapper:
    """Generic mapper driven entirely by the cues configured in the catalog."""

    def __init__(self, entry: ServiceCatalogEntry):
        self.entry = entry

    def custom_cues(self, normalized: str) -> dict:
        """Mapper-specific detections: path -> (value, evidence). None here."""
        return {}

    def estimate_quantity(self, normalized: str) -> Optional[tuple[float, str]]:
        """Quantity estimate from descriptive words when no number was given."""
        return None

    def extract_variables(self, text: str, quantity: float) -> VariableExtractionResult:
        """
        Resolve every variable of the service.

        Returns the resolved values with inferred/defaulted sets, readable
        notes for both, and confidence = inferred / total. The quantity is
        echoed back unchanged.
        """
        normalized = normalize_text(text)
        resolved = ResolvedVariables()
        extracted = []
        defaults_used = []
        custom = self.custom_cues(normalized)

        for path, spec in self.entry.variables.items():
            found = custom.get(path)
            if found is not None and not spec.is_valid(found[0]):
                logger.warning("%s: mapper produced invalid value %r for %s",
                               self.entry.service_name, found[0], path)
                found = None
            if found is None:
                found = spec.find_cue(normalized)

            if found is not None:
                value, evidence = found
                resolved.values[path] = value
                resolved.inferred.add(path)
                resolved.evidence[path] = evidence
                extracted.append(f"{spec.label}: {spec.describe_value(value)} (from \"{evidence}\")")
            elif spec.has_default:
                resolved.values[path] = spec.default
                resolved.defaulted.add(path)
                defaults_used.append(f"{spec.label}: {spec.describe_value(spec.default)} (default)")
            else:
                resolved.missing.add(path)

        total = len(self.entry.variables)
        confidence = len(resolved.inferred) / total if total else 1.0

        return VariableExtractionResult(
            values=resolved,
            quantity=quantity,
            extracted_variables=extracted,
            defaults_used=defaults_used,
            confidence=confidence,
        )


# (pattern, value, note) tables, first match wins per variable
PAVER_PATIO_CUES = {
    'excavation.tearoutComplexity': [
        (r'\b(?:removing|remove|demo|demolish|tear out)\s+(?:the\s+)?(?:existing\s+|old\s+)?(?:concrete|cement|slab)\b', 'concrete', 'concrete removal'),
        (r'\b(?:removing|remove|demo|tear out)\s+(?:the\s+)?(?:existing\s+|old\s+)?(?:asphalt|blacktop|pavement)\b', 'asphalt', 'asphalt removal'),
        (r'\b(?:removing|remove)\s+(?:the\s+)?(?:existing\s+)?(?:grass|sod|lawn|turf)\b', 'grass', 'grass/sod removal'),
        (r'\b(?:existing|current|old)\s+(?:patio|surface)\b', 'concrete', 'existing surface (assumed concrete)'),
    ],
    'siteAccess.accessDifficulty': [
        (r'\b(?:tight|narrow|difficult|hard|limited|restricted|challenging)\s*(?:access|space|gate|entrance)\b', 'difficult', 'difficult access'),
        (r'\b(?:no equipment access|hand carry|walk through|narrow gate)\b', 'difficult', 'hand carry required'),
        (r'\b(?:easy|open|wide|simple|good|direct|drive)\s*(?:access|approach)\b', 'easy', 'easy access'),
        (r'\b(?:driveway|front yard|street access)\b', 'easy', 'driveway/front access'),
        (r'\b(?:backyard|back yard|behind (?:the )?house)\b', 'moderate', 'backyard access'),
    ],
    'labor.teamSize': [
        (r'\b(?:2|two)\s*(?:person|man|people|worker)\s*(?:crew|team)\b', 'twoPerson', '2-person crew'),
        (r'\b(?:small|minimal|compact)\s*(?:crew|team)\b', 'twoPerson', 'small crew'),
        (r'\b(?:3|three|4|four|\d+)\s*(?:person|man|people|worker)\s*(?:crew|team)\b', 'threePlus', '3+ person crew'),
        (r'\b(?:full|standard|normal|large)\s*(?:crew|team)\b', 'threePlus', 'full crew'),
    ],
    'excavation.equipmentRequired': [
        (r'\b(?:jackhammer|pneumatic|heavy equipment|excavator|bobcat|skid steer)\b', 'heavyMachinery', 'heavy machinery'),
        (r'\b(?:light machinery|small excavator|compact equipment|mini excavator)\b', 'lightMachinery', 'light machinery'),
        (r'\b(?:demo hammer|power tools|electric tools|attachments?)\b', 'attachments', 'demo attachments'),
        (r'\b(?:hand tools|manual|shovel|pick)\b', 'handTools', 'hand tools'),
    ],
    'materials.paverStyle': [
        (r'\b(?:premium|high end|expensive|luxury|natural stone|designer|custom)\b', 'premium', 'premium materials'),
        (r'\b(?:flagstone|bluestone|travertine)\b', 'premium', 'natural stone'),
        (r'\b(?:basic|budget|economy|cheap|concrete pavers?)\b', 'economy', 'economy grade'),
        (r'\bstandard (?:pavers?|grade)\b', 'standard', 'standard grade'),
    ],
    'materials.cuttingComplexity': [
        (r'\b(?:straight|rectangular|square|simple|basic)\s*(?:design|shape|layout)\b', 'minimal', 'straight edges'),
        (r'\b(?:curves|curved|angles|angled|borders?)\b', 'moderate', 'curves/angles'),
        (r'\b(?:intricate|lots of cutting|detailed|custom shape)\b', 'complex', 'intricate design'),
    ],
    'materials.patternComplexity': [
        (r'\b(?:complex pattern|multiple patterns|mosaic)\b', 'extensive', 'complex pattern'),
        (r'\b(?:herringbone|basket weave|circular|radial)\b', 'some', 'decorative pattern'),
        (r'\b(?:simple|basic|running bond|standard)\s*pattern\b', 'minimal', 'simple pattern'),
    ],
    'siteAccess.obstacleRemoval': [
        (r'\b(?:no obstacles|clear area|open space)\b', 'none', 'clear area'),
        (r'\b(?:large shrubs|structures?|major obstacles|stumps?|old shed)\b', 'major', 'major obstacles'),
        (r'\b(?:shrubs|bushes|small plants|minor landscaping)\b', 'minor', 'shrubs/plants'),
    ],
}

PATIO_SIZE_WORDS = [
    (r'\b(?:small|compact|tiny)\s+(?:paver\s+)?patio\b', 150.0),
    (r'\b(?:medium|average|mid size)\s+(?:paver\s+)?patio\b', 250.0),
    (r'\b(?:large|big|huge)\s+(?:paver\s+)?patio\b', 400.0),
]


class PaverPatioVariableMapper(VariableMapper):
    """
    Paver patio mapper.

    Adds phrase tables for tear-out, access, crew, equipment, grade, cutting,
    pattern and obstacles on top of the catalog cues, and estimates square
    footage from size words ("small patio") when no number was given.
    """

    CUE_TABLES = {
        path: [(re.compile(pattern), value, note) for pattern, value, note in rows]
        for path, rows in PAVER_PATIO_CUES.items()
    }
    SIZE_WORDS = [(re.compile(pattern), sqft) for pattern, sqft in PATIO_SIZE_WORDS]

    def custom_cues(self, normalized: str) -> dict:
        found = {}
        for path, rows in self.CUE_TABLES.items():
            if path not in self.entry.variables:
                continue
            for pattern, value, note in rows:
                match = pattern.search(normalized)
                if match:
                    found[path] = (value, match.group(0))
                    logger.debug("Paver patio %s -> %s (%s)", path, value, note)
                    break
        return found

    def estimate_quantity(self, normalized: str) -> Optional[tuple[float, str]]:
        for pattern, sqft in self.SIZE_WORDS:
            match = pattern.search(normalized)
            if match:
                return sqft, match.group(0)
        return None


MAPPERS = {
    'paver_patio': PaverPatioVariableMapper,
}


def get_variable_mapper(entry: ServiceCatalogEntry) -> VariableMapper:
    """Mapper registered for the entry, or the generic catalog-cue mapper."""
    mapper_cls = MAPPERS.get(entry.mapper, VariableMapper) if entry.mapper else VariableMapper
    return mapper_cls(entry)
