"""
Exception hierarchy for the quote agent.

Extraction-stage problems (nothing matched, quantity unreadable) are not
exceptions; they are reported on CollectionResult. Everything here is either
a configuration problem or a calculation problem.
"""
from typing import Optional


class QuoteAgentError(Exception):
    """Base class for all quote agent errors."""


class CatalogError(QuoteAgentError):
    """The service catalog document is invalid or inconsistent."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        self.errors = list(errors or [])
        if self.errors:
            message = f"{message}: " + "; ".join(self.errors)
        super().__init__(message)


class PricingError(QuoteAgentError):
    """A service could not be priced; the whole request fails."""

    stage = "pricing"


class UnknownCatalogEntry(PricingError):
    def __init__(self, catalog_row):
        self.catalog_row = catalog_row
        super().__init__("unknown service")


class MissingVariableDefault(PricingError):
    def __init__(self, service_name: str, variable_key: str):
        self.service_name = service_name
        self.variable_key = variable_key
        super().__init__(
            f"{service_name}: variable '{variable_key}' has no value and no default"
        )


class InvalidQuantity(PricingError):
    def __init__(self, service_name: str, quantity):
        self.service_name = service_name
        self.quantity = quantity
        super().__init__(f"{service_name}: invalid quantity {quantity!r}")


class CalculationInvariantViolation(PricingError):
    """Negative, zero or non-finite hours or costs where positive is required."""
