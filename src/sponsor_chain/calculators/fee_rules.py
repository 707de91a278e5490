"""Fee rule engine: (purpose, cadre) -> approval amount.

Rules are evaluated in order, first match wins:

1. Joining Fee   -> reduced tier for the entry cadre, standard tier otherwise
2. Promotion Fee -> standard tier, whatever the promotion level
3. anything else -> standard tier (or ValidationError when strict)

The engine is pure: no I/O, no clock, same inputs give the same amount.
Callers never supply the amount; it is recomputed on every write.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from sponsor_chain.calculators.cadre import CadreCatalog
from sponsor_chain.errors import ValidationError

CENTS = Decimal("0.01")


class FeePurpose(str, Enum):
    """Known fee purposes. OTHER covers free-form billing-category text."""

    JOINING_FEE = "Joining Fee"
    PROMOTION_FEE = "Promotion Fee"
    OTHER = "Other"

    @classmethod
    def parse(cls, purpose: str | None) -> FeePurpose:
        """Map a purpose string onto the closed enum."""
        text = (purpose or "").strip()
        if text == cls.JOINING_FEE.value:
            return cls.JOINING_FEE
        if text == cls.PROMOTION_FEE.value:
            return cls.PROMOTION_FEE
        return cls.OTHER


DEFAULT_PURPOSES: tuple[str, ...] = (
    FeePurpose.JOINING_FEE.value,
    FeePurpose.PROMOTION_FEE.value,
)


@dataclass(frozen=True)
class FeeSchedule:
    """Amounts for the two fee tiers."""

    reduced: Decimal = Decimal("250")
    standard: Decimal = Decimal("500")

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.reduced < 0 or self.standard < 0:
            raise ValueError("Fee tiers must be non-negative")
        if self.reduced > self.standard:
            raise ValueError("reduced fee must not exceed standard fee")


@dataclass(frozen=True)
class FeeQuote:
    """Computed fee with the rule that produced it."""

    purpose: FeePurpose
    amount: Decimal
    rule: str


class FeeRuleEngine:
    """Computes approval amounts from purpose and cadre level."""

    def __init__(self, catalog: CadreCatalog, schedule: FeeSchedule | None = None):
        self.catalog = catalog
        self.schedule = schedule or FeeSchedule()

    def quote(
        self,
        purpose: str | None,
        joining_level: str | None = None,
        promotion_level: str | None = None,
        strict: bool = False,
    ) -> FeeQuote:
        """Evaluate the fee rules and report which one matched."""
        kind = FeePurpose.parse(purpose)

        if kind is FeePurpose.JOINING_FEE:
            if self.catalog.is_entry(joining_level):
                return FeeQuote(kind, self._money(self.schedule.reduced), "joining_entry")
            return FeeQuote(kind, self._money(self.schedule.standard), "joining_standard")

        if kind is FeePurpose.PROMOTION_FEE:
            return FeeQuote(kind, self._money(self.schedule.standard), "promotion")

        if strict:
            raise ValidationError(
                f"Unknown fee purpose '{purpose}'",
                field="purpose",
                purpose=purpose,
            )
        return FeeQuote(kind, self._money(self.schedule.standard), "fallback")

    def compute_amount(
        self,
        purpose: str | None,
        joining_level: str | None = None,
        promotion_level: str | None = None,
        strict: bool = False,
    ) -> Decimal:
        """Return the amount for a fee approval."""
        return self.quote(purpose, joining_level, promotion_level, strict=strict).amount

    @staticmethod
    def _money(value: Decimal) -> Decimal:
        return value.quantize(CENTS)
