"""Engine subpackage - pipeline stages and their data model."""
from .errors import (
    QuoteAgentError,
    CatalogError,
    PricingError,
    UnknownCatalogEntry,
    MissingVariableDefault,
    InvalidQuantity,
    CalculationInvariantViolation,
)
from .models import (
    CollectionResult,
    CustomerContext,
    ExtractedServiceRequest,
    PricingResult,
    ResolvedVariables,
    SalesResponse,
)

__all__ = [
    'QuoteAgentError', 'CatalogError', 'PricingError', 'UnknownCatalogEntry',
    'MissingVariableDefault', 'InvalidQuantity', 'CalculationInvariantViolation',
    'CollectionResult', 'CustomerContext', 'ExtractedServiceRequest',
    'PricingResult', 'ResolvedVariables', 'SalesResponse',
]
