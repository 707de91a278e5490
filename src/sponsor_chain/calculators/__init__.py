"""Cadre catalog and fee calculation."""

from sponsor_chain.calculators.cadre import DEFAULT_CADRES, CadreCatalog, CadreLevel
from sponsor_chain.calculators.fee_rules import (
    DEFAULT_PURPOSES,
    FeePurpose,
    FeeQuote,
    FeeRuleEngine,
    FeeSchedule,
)

__all__ = [
    "CadreCatalog",
    "CadreLevel",
    "DEFAULT_CADRES",
    "DEFAULT_PURPOSES",
    "FeePurpose",
    "FeeQuote",
    "FeeRuleEngine",
    "FeeSchedule",
]
