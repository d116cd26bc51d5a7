"""
Sales Personality - Turns a pricing result into a customer-facing message.

Tone comes from customer context and the size of the quote. Every number in
the message is read from the PricingResult; nothing is recomputed here.
"""
import logging
import re
from typing import Optional

from .models import (
    CASUAL,
    PREMIUM,
    PROFESSIONAL,
    CollectionResult,
    CustomerContext,
    PricingResult,
    SalesResponse,
)

logger = logging.getLogger(__name__)

MIN_MESSAGE_LENGTH = 100
MAX_MESSAGE_LENGTH = 2000
MAX_SUGGESTIONS = 3

# (upper bound exclusive, label)
PRICE_RANGES = [
    (500.0, 'budget'),
    (2000.0, 'mid-range'),
    (5000.0, 'premium'),
    (float('inf'), 'luxury'),
]

FORMAL_TITLE_RE = re.compile(
    r'\b(?:manager|owner|director|president|ceo|cfo|coo|vp|executive|administrator|'
    r'property|facilities|superintendent|supervisor)\b',
    re.IGNORECASE,
)
EMERGENCY_RE = re.compile(r'\b(?:emergency|asap|urgent|urgently|immediately|right away|flooding|flooded)\b', re.IGNORECASE)
SEASONAL_RE = re.compile(r'\b(?:spring|summer|fall|autumn|before winter|this season|before the frost)\b', re.IGNORECASE)

GREETINGS = {
    CASUAL: "Hey {name}! Thanks for reaching out. Here's what your project looks like:",
    PROFESSIONAL: "Hello {name}, thank you for contacting us. Please find your estimate below:",
    PREMIUM: "Hi {name}, thank you for trusting us with your project. We've prepared a priority estimate:",
}

SHORT_GREETING = "Hi {name}, here is your estimate:"

CLOSINGS = {
    CASUAL: "Want us to get you on the schedule? Just reply here and we'll lock in a date.",
    PROFESSIONAL: "Please let us know if you would like to proceed, and we will confirm a start date with you.",
    PREMIUM: "Our team can prioritize your project. Reply to reserve the next available crew and we'll handle the rest.",
}

FOLLOW_UP_LINES = {
    'routine': "We can get you on the calendar within the next couple of weeks.",
    'seasonal': "Seasonal slots fill quickly, so booking soon keeps your preferred start date open.",
    'emergency': "We understand this is urgent and can dispatch a crew at the earliest opening.",
}

# Suggestions keyed by catalog category
CATEGORY_SUGGESTIONS = {
    'materials': "Add edging to keep beds crisp and material in place",
    'edging': "Refresh the beds with mulch or rock while we're on site",
    'irrigation': "Upgrade to a smart controller to cut water use",
    'hardscaping': "Add low-voltage lighting around the new hardscape",
    'planting': "Add a watering plan so new plantings establish well",
    'drainage': "Pair drainage work with a buried downspout extension",
}


def format_money(amount: float) -> str:
    return f"${amount:,.2f}"


def format_quantity(quantity: float) -> str:
    return f"{quantity:,.2f}".rstrip('0').rstrip('.')


class SalesPersonalityService:
    """Formats pricing results, clarification requests and apologies."""

    def classify_price_range(self, total: float) -> str:
        for upper, label in PRICE_RANGES:
            if total < upper:
                return label
        return PRICE_RANGES[-1][1]

    def detect_urgency(self, context: Optional[CustomerContext], text: str = "") -> str:
        """routine / seasonal / emergency from context first, then the message."""
        if context and context.urgency_level in ('routine', 'seasonal', 'emergency'):
            return context.urgency_level
        if EMERGENCY_RE.search(text or ""):
            return 'emergency'
        if SEASONAL_RE.search(text or ""):
            return 'seasonal'
        return 'routine'

    def select_tone(self, context: Optional[CustomerContext], price_range: Optional[str] = None,
                    urgency: str = 'routine') -> str:
        """
        Pick the tone.

        Precedence: emergency, then premium/luxury price range, then
        return customer or formal job title, otherwise casual.
        """
        context = context or CustomerContext()
        if urgency == 'emergency' or context.urgency_level == 'emergency':
            return PREMIUM
        if price_range in ('premium', 'luxury'):
            return PREMIUM
        if context.is_return_customer:
            return PROFESSIONAL
        if context.job_title and FORMAL_TITLE_RE.search(context.job_title):
            return PROFESSIONAL
        return CASUAL

    def format_sales_response(
        self,
        pricing: PricingResult,
        context: Optional[CustomerContext] = None,
        intent: str = "quote",
        text: str = "",
    ) -> SalesResponse:
        """
        Customer message for a successful pricing result.

        Falls back to the professional template if the toned message cannot
        be built.
        """
        if not pricing.success:
            return self.format_apology(context)

        price_range = self.classify_price_range(pricing.totals.total_cost)
        urgency = self.detect_urgency(context, text)
        tone = self.select_tone(context, price_range, urgency)
        suggestions = self.follow_up_suggestions(pricing, urgency)

        try:
            message = self._build_quote_message(pricing, context, tone, intent, urgency)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            logger.warning("Tone formatting failed (%s), using professional template: %s", tone, e)
            tone = PROFESSIONAL
            message = self._build_plain_quote(pricing)

        return SalesResponse(
            message=message,
            tone=tone,
            kind="quote",
            price_range=price_range,
            urgency=urgency,
            follow_up_suggestions=suggestions,
        )

    def follow_up_suggestions(self, pricing: PricingResult, urgency: str = 'routine') -> list[str]:
        suggestions = []
        if urgency == 'emergency':
            suggestions.append("Schedule the earliest available site visit")
        categories = []
        for svc in pricing.services:
            category = self._category_of(svc.service_name)
            if category and category not in categories:
                categories.append(category)
        for category in categories:
            suggestion = CATEGORY_SUGGESTIONS.get(category)
            if suggestion and suggestion not in suggestions:
                suggestions.append(suggestion)
        if len(suggestions) < MAX_SUGGESTIONS:
            suggestions.append("Book a free on-site walkthrough to confirm measurements")
        return suggestions[:MAX_SUGGESTIONS]

    def format_clarification(self, collection: CollectionResult,
                             context: Optional[CustomerContext] = None) -> SalesResponse:
        """Ask the collector's clarifying questions in the customer's tone."""
        tone = self.select_tone(context)
        name = self._name(context)
        lines = []
        if collection.no_services_detected:
            lines.append(f"Thanks for the message, {name}! I couldn't tell which service you're interested in yet.")
        else:
            found = ", ".join(s.service_name for s in collection.services)
            lines.append(f"Thanks, {name}! I can help with {found}. To put together an accurate estimate I need a bit more detail:")
        for question in collection.clarifying_questions:
            lines.append(f"• {question}")
        lines.append("Once I have that, I'll send your price right away.")
        return SalesResponse(
            message=self._fit_length("\n".join(lines)),
            tone=tone,
            kind="clarification",
            urgency=self.detect_urgency(context, collection.original_text),
        )

    def format_apology(self, context: Optional[CustomerContext] = None) -> SalesResponse:
        """Generic retry-inviting message; never exposes the internal error."""
        name = self._name(context)
        message = (
            f"Sorry {name}, we ran into a problem putting your estimate together. "
            "Please try again in a moment, or reply with your project details and a member "
            "of our team will follow up with a quote."
        )
        return SalesResponse(message=message, tone=PROFESSIONAL, kind="apology")

    # ------------------------------------------------------------------
    # Message building
    # ------------------------------------------------------------------

    def _name(self, context: Optional[CustomerContext]) -> str:
        if context and context.first_name:
            return context.first_name.strip()
        return "there"

    def _category_of(self, service_name: str) -> Optional[str]:
        name = service_name.lower()
        if 'irrigation' in name:
            return 'irrigation'
        if 'edg' in name:
            return 'edging'
        if 'patio' in name or 'wall' in name:
            return 'hardscaping'
        if 'mulch' in name or 'rock' in name or 'soil' in name:
            return 'materials'
        if 'tree' in name or 'sod' in name:
            return 'planting'
        if 'downspout' in name or 'creek' in name:
            return 'drainage'
        return None

    def _service_lines(self, pricing: PricingResult) -> list[str]:
        return [
            f"• {svc.service_name}: {format_quantity(svc.quantity)} {svc.unit_label} - {format_money(svc.tier2.total)}"
            for svc in pricing.services
        ]

    def _build_quote_message(self, pricing: PricingResult, context, tone: str, intent: str, urgency: str) -> str:
        name = self._name(context)
        head = [GREETINGS[tone].format(name=name)]
        days = pricing.totals.total_days
        tail = [
            f"Total: {format_money(pricing.totals.total_cost)}",
            f"Estimated time on site: about {days} day{'s' if days != 1 else ''} "
            f"({format_quantity(pricing.totals.total_labor_hours)} labor hours).",
        ]
        extras = []
        if intent == "follow_up" or urgency == 'emergency':
            extras.append(FOLLOW_UP_LINES[urgency])
        extras.append(CLOSINGS[tone])
        short_head = [SHORT_GREETING.format(name=name)]
        return self._assemble(head, self._service_lines(pricing), tail, extras, short_head)

    def _build_plain_quote(self, pricing: PricingResult) -> str:
        head = ["Hello, here is your estimate:"]
        tail = [f"Total: {format_money(pricing.totals.total_cost)}"]
        return self._assemble(head, self._service_lines(pricing), tail, [CLOSINGS[PROFESSIONAL]])

    def _assemble(self, head: list[str], lines: list[str], tail: list[str],
                  extras: Optional[list[str]] = None, short_head: Optional[list[str]] = None) -> str:
        """
        Join the parts, trimming to MAX_MESSAGE_LENGTH.

        A message that is too long first loses the extras (closing,
        follow-up line) and swaps in the short greeting. Only if it is still
        too long are service lines folded into "...and N more services".
        The total and time lines in `tail` are always kept.
        """
        extras = extras or []
        message = "\n".join(head + lines + tail + extras)
        if len(message) > MAX_MESSAGE_LENGTH:
            head = short_head or head
            message = "\n".join(head + lines + tail)
        shown = len(lines)
        while len(message) > MAX_MESSAGE_LENGTH and shown > 1:
            shown -= 1
            kept = lines[:shown] + [f"...and {len(lines) - shown} more services"]
            message = "\n".join(head + kept + tail)
        return self._fit_length(message)

    def _fit_length(self, message: str) -> str:
        if len(message) < MIN_MESSAGE_LENGTH:
            message += "\nReply here with any questions and we can adjust the estimate for you."
        if len(message) > MAX_MESSAGE_LENGTH:
            message = message[:MAX_MESSAGE_LENGTH - 3].rstrip() + "..."
        return message
