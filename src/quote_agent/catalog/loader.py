"""
Catalog Loader - Validates a service catalog document into a snapshot.

Reads the nested JSON configuration (services -> categories -> leaves),
validates every entry and returns an immutable CatalogSnapshot. All problems
are collected and reported together, the way an admin needs to see them.
"""
import copy
import hashlib
import json
import logging
import math
import re
from pathlib import Path
from typing import Optional

from ..engine.errors import CatalogError
from ..engine.units import CANONICAL_UNITS
from ..utils.text import normalize_text
from .models import (
    BASE_SETTING_CATEGORIES,
    MODIFIER_KEYS,
    VALUE_EFFECT,
    VARIABLE_KINDS,
    BaseSetting,
    CatalogSnapshot,
    NumberSpec,
    SelectSpec,
    ServiceCatalogEntry,
    ToggleSpec,
    Validation,
    VariableOption,
    extract_modifiers,
)

logger = logging.getLogger(__name__)

METADATA_KEYS = {
    'serviceName', 'catalogRow', 'unit', 'unitLabel', 'category', 'keywords',
    'fixedQuantity', 'pricingFamily', 'familyRole', 'mapper', 'description', 'pricingModel',
}

# Base settings every service must carry, and where they live
REQUIRED_SETTINGS = {
    'hourlyLaborRate': 'laborSettings',
    'laborHoursPerUnit': 'laborSettings',
    'baseMaterialCost': 'materialSettings',
    'profitMarginTarget': 'businessSettings',
}

# Services priced outside the two-tier formula: model -> (required settings, unit)
PRICING_MODELS = {
    'excavation': ({
        'baseRatePerCubicYard': 'laborSettings',
        'hoursPerTier': 'laborSettings',
        'daysPerTier': 'laborSettings',
        'tierSqft': 'laborSettings',
        'wasteFactor': 'materialSettings',
        'compactionFactor': 'materialSettings',
        'profitMarginTarget': 'businessSettings',
    }, 'sqft'),
}

COST_MODIFIERS = {'equipmentCost', 'obstacleCost', 'fixedLaborHours'}
FACTOR_MODIFIERS = {'laborMultiplier', 'materialMultiplier', 'crewSize'}


def _is_number(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def get_content_hash(document: dict) -> str:
    """Short SHA256 of the canonical JSON form of a document."""
    canonical = json.dumps(document, sort_keys=True, separators=(',', ':'))
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()[:12]


def parse_validation(raw, where: str) -> tuple[Optional[Validation], list[str]]:
    """
    Parse an optional {min, max, step} block.

    Returns (validation, errors).
    """
    if raw is None:
        return None, []
    if not isinstance(raw, dict):
        return None, [f"{where}: validation must be an object"]
    lo, hi, step = raw.get('min'), raw.get('max'), raw.get('step')
    if not _is_number(lo) or not _is_number(hi):
        return None, [f"{where}: validation needs numeric min and max"]
    if lo > hi:
        return None, [f"{where}: validation range is empty (min {lo} > max {hi})"]
    if step is not None and (not _is_number(step) or step <= 0):
        return None, [f"{where}: validation step must be a positive number"]
    return Validation(min=float(lo), max=float(hi), step=step), []


def check_modifiers(modifiers: dict, where: str) -> list[str]:
    """Validate modifier values on an option or toggle."""
    errors = []
    for key, value in modifiers.items():
        if key == 'scaleWithQuantity':
            if not isinstance(value, bool):
                errors.append(f"{where}: scaleWithQuantity must be true or false")
            continue
        if not _is_number(value):
            errors.append(f"{where}: modifier {key} must be a number")
        elif key in COST_MODIFIERS and value < 0:
            errors.append(f"{where}: modifier {key} must not be negative")
        elif key in FACTOR_MODIFIERS and value <= 0:
            errors.append(f"{where}: modifier {key} must be positive")
    return errors


def parse_base_setting(category: str, key: str, raw: dict, where: str) -> tuple[Optional[BaseSetting], list[str]]:
    """
    Parse a {value, unit, label, description, validation} leaf.

    Returns (setting, errors).
    """
    value = raw.get('value')
    if not _is_number(value):
        return None, [f"{where}: value must be a number"]

    validation, errors = parse_validation(raw.get('validation'), where)
    if errors:
        return None, errors
    if validation and not validation.contains(value):
        return None, [f"{where}: value {value} outside validation range {validation.describe()}"]

    return BaseSetting(
        category=category,
        key=key,
        value=float(value),
        unit=raw.get('unit', ''),
        label=raw.get('label', key),
        description=raw.get('description', ''),
        validation=validation,
    ), []


def _cues(raw) -> tuple:
    return tuple(normalize_text(c) for c in (raw or []) if normalize_text(c))


def parse_variable(category: str, key: str, raw: dict, where: str):
    """
    Parse a tagged variable spec.

    Returns (spec, errors); spec is None with no errors for leaves that are
    not variable specs (unknown shapes are ignored).
    """
    kind = raw.get('type')
    if kind not in VARIABLE_KINDS:
        if kind is not None:
            logger.debug("Ignoring %s: unknown variable type %r", where, kind)
        return None, []

    label = raw.get('label', key)
    default = raw.get('default')
    errors = []

    if kind == 'select':
        raw_options = raw.get('options')
        if not isinstance(raw_options, dict) or not raw_options:
            return None, [f"{where}: select variable needs options"]
        options = {}
        for opt_key, opt in raw_options.items():
            if not isinstance(opt, dict):
                errors.append(f"{where}.{opt_key}: option must be an object")
                continue
            modifiers = extract_modifiers(opt)
            errors.extend(check_modifiers(modifiers, f"{where}.{opt_key}"))
            value = opt.get('value')
            options[opt_key] = VariableOption(
                key=opt_key,
                label=opt.get('label', opt_key),
                value=float(value) if _is_number(value) else None,
                cues=_cues(opt.get('cues')),
                modifiers=modifiers,
            )
        if default is not None and default not in options:
            errors.append(f"{where}: default '{default}' is not one of the options {sorted(options)}")
        if errors:
            return None, errors
        return SelectSpec(category=category, key=key, label=label, default=default, options=options), []

    if kind == 'number':
        validation, errors = parse_validation(raw.get('validation'), where)
        effect = raw.get('effect', 'laborMultiplier')
        if effect != VALUE_EFFECT and (effect not in MODIFIER_KEYS or effect == 'scaleWithQuantity'):
            errors.append(f"{where}: unknown effect '{effect}'")
        pattern = raw.get('pattern')
        if pattern is not None:
            try:
                re.compile(pattern)
            except re.error as e:
                errors.append(f"{where}: bad pattern ({e})")
        if default is not None:
            if not _is_number(default):
                errors.append(f"{where}: default must be a number")
            elif validation and not validation.contains(default):
                errors.append(f"{where}: default {default} outside validation range {validation.describe()}")
        if errors:
            return None, errors
        return NumberSpec(
            category=category, key=key, label=label,
            default=float(default) if default is not None else None,
            effect=effect, validation=validation, pattern=pattern,
        ), []

    # toggle
    if default is not None and not isinstance(default, bool):
        errors.append(f"{where}: toggle default must be true or false")
    when_on = extract_modifiers(raw.get('whenOn') or {})
    errors.extend(check_modifiers(when_on, f"{where}.whenOn"))
    if errors:
        return None, errors
    return ToggleSpec(
        category=category, key=key, label=label, default=default,
        cues=_cues(raw.get('cues')), when_on=when_on,
    ), []


def validate_service(service_id: str, raw: dict) -> tuple[Optional[ServiceCatalogEntry], list[str]]:
    """
    Validate and parse one service definition.

    Returns (entry, errors) - entry is None if validation failed.
    """
    where = f"services.{service_id}"
    if not isinstance(raw, dict):
        return None, [f"{where}: service must be an object"]

    errors = []

    service_name = raw.get('serviceName')
    if not service_name or not isinstance(service_name, str):
        errors.append(f"{where}: serviceName is required")

    catalog_row = raw.get('catalogRow')
    if catalog_row is None or isinstance(catalog_row, bool):
        errors.append(f"{where}: catalogRow is required")

    unit = raw.get('unit')
    if unit not in CANONICAL_UNITS:
        errors.append(f"{where}: unit '{unit}' is not one of {sorted(CANONICAL_UNITS)}")

    keywords = frozenset(k for k in (normalize_text(w) for w in raw.get('keywords', [])) if k)
    if not keywords:
        errors.append(f"{where}: at least one keyword is required")

    pricing_model = raw.get('pricingModel')
    required = REQUIRED_SETTINGS
    if pricing_model is not None:
        if pricing_model not in PRICING_MODELS:
            errors.append(f"{where}: unknown pricingModel '{pricing_model}' (expected one of {sorted(PRICING_MODELS)})")
        else:
            required, model_unit = PRICING_MODELS[pricing_model]
            if unit != model_unit:
                errors.append(f"{where}: pricingModel '{pricing_model}' needs unit '{model_unit}'")

    fixed_quantity = raw.get('fixedQuantity')
    if fixed_quantity is not None and (not _is_number(fixed_quantity) or fixed_quantity <= 0):
        errors.append(f"{where}: fixedQuantity must be a positive number")

    base_settings = {}
    variables = {}

    for category, leaves in raw.items():
        if category in METADATA_KEYS or not isinstance(leaves, dict):
            continue
        for key, leaf in leaves.items():
            if not isinstance(leaf, dict):
                continue
            leaf_where = f"{where}.{category}.{key}"
            if category in BASE_SETTING_CATEGORIES:
                setting, setting_errors = parse_base_setting(category, key, leaf, leaf_where)
                errors.extend(setting_errors)
                if setting:
                    base_settings[key] = setting
            else:
                spec, spec_errors = parse_variable(category, key, leaf, leaf_where)
                errors.extend(spec_errors)
                if spec:
                    variables[spec.path] = spec

    for key, category in required.items():
        if key not in base_settings:
            errors.append(f"{where}.{category}.{key}: required base setting is missing")

    margin = base_settings.get('profitMarginTarget')
    if margin and not (0 <= margin.value < 1):
        errors.append(f"{where}: profitMarginTarget must be a fraction in [0, 1)")

    if errors:
        return None, errors

    return ServiceCatalogEntry(
        service_id=service_id,
        service_name=service_name,
        catalog_row=catalog_row,
        unit=unit,
        unit_label=raw.get('unitLabel', ''),
        category=raw.get('category', ''),
        keywords=keywords,
        base_settings=base_settings,
        variables=variables,
        fixed_quantity=float(fixed_quantity) if fixed_quantity is not None else None,
        pricing_family=raw.get('pricingFamily'),
        family_role=raw.get('familyRole'),
        mapper=raw.get('mapper'),
        description=raw.get('description', ''),
        pricing_model=pricing_model,
    ), []


def load_catalog(document: dict, generation: int = 0) -> CatalogSnapshot:
    """
    Validate a catalog document.

    Returns a CatalogSnapshot, or raises CatalogError listing every problem.
    """
    if not isinstance(document, dict) or not isinstance(document.get('services'), dict):
        raise CatalogError("Invalid catalog", ["document must contain a 'services' object"])

    all_errors = []
    services = {}
    seen_rows = {}
    seen_names = {}

    for service_id, raw in document['services'].items():
        entry, errors = validate_service(service_id, raw)
        if errors:
            all_errors.extend(errors)
            continue

        if entry.catalog_row in seen_rows:
            all_errors.append(
                f"services.{service_id}: catalogRow {entry.catalog_row} already used by {seen_rows[entry.catalog_row]}"
            )
            continue
        name_key = entry.service_name.lower()
        if name_key in seen_names:
            all_errors.append(
                f"services.{service_id}: serviceName '{entry.service_name}' already used by {seen_names[name_key]}"
            )
            continue

        seen_rows[entry.catalog_row] = service_id
        seen_names[name_key] = service_id
        services[service_id] = entry

    if all_errors:
        for err in all_errors:
            logger.error("Catalog validation: %s", err)
        raise CatalogError(f"Invalid catalog ({len(all_errors)} problems)", all_errors)

    snapshot = CatalogSnapshot(
        version=str(document.get('version', '0')),
        last_modified=str(document.get('lastModified', '')),
        services=services,
        content_hash=get_content_hash(document),
        generation=generation,
        document=copy.deepcopy(document),
    )
    logger.debug("Loaded catalog v%s with %d services (hash %s)",
                 snapshot.version, len(services), snapshot.content_hash)
    return snapshot


def read_catalog_document(path: Path) -> dict:
    """Read a catalog JSON file."""
    if not path.exists():
        raise CatalogError(f"Catalog file not found at {path}")
    with open(path, 'r', encoding='utf-8') as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise CatalogError(f"Catalog file {path} is not valid JSON", [str(e)]) from e


def load_catalog_file(path: Path, generation: int = 0) -> CatalogSnapshot:
    """Read and validate a catalog JSON file."""
    return load_catalog(read_catalog_document(path), generation=generation)
