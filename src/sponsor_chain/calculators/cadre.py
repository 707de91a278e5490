"""Cadre catalog: the ordered ladder of agent levels."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass


@dataclass(frozen=True)
class CadreLevel:
    """A single rung of the agent ladder."""

    code: str
    label: str
    rank: int


DEFAULT_CADRES: tuple[CadreLevel, ...] = (
    CadreLevel("APM", "Associate Project Manager", 1),
    CadreLevel("PM", "Project Manager", 2),
    CadreLevel("SPM", "Senior Project Manager", 3),
    CadreLevel("DO", "Development Officer", 4),
    CadreLevel("SDO", "Senior Development Officer", 5),
    CadreLevel("MD", "Marketing Director", 6),
    CadreLevel("SMD", "Senior Marketing Director", 7),
    CadreLevel("RMD", "Regional Marketing Director", 8),
    CadreLevel("CMD", "Chief Marketing Director", 9),
)


class CadreCatalog:
    """Immutable, rank-ordered set of cadre levels.

    Built once at start-up and passed by reference into the fee engine and
    validators. Codes must be unique and ranks strictly increasing.
    """

    def __init__(self, levels: Iterable[CadreLevel], entry_code: str | None = None):
        ordered = tuple(sorted(levels, key=lambda lvl: lvl.rank))
        if not ordered:
            raise ValueError("Cadre catalog must contain at least one level")

        codes = [lvl.code for lvl in ordered]
        if len(set(codes)) != len(codes):
            raise ValueError(f"Duplicate cadre codes in catalog: {codes}")

        ranks = [lvl.rank for lvl in ordered]
        if len(set(ranks)) != len(ranks):
            raise ValueError(f"Cadre ranks must be strictly increasing: {ranks}")

        self._levels = ordered
        self._by_code = {lvl.code: lvl for lvl in ordered}

        if entry_code is None:
            entry_code = ordered[0].code
        if entry_code not in self._by_code:
            raise ValueError(f"Entry cadre '{entry_code}' is not in the catalog")
        self._entry_code = entry_code

    @classmethod
    def default(cls, entry_code: str | None = None) -> CadreCatalog:
        """Catalog with the standard APM..CMD ladder."""
        return cls(DEFAULT_CADRES, entry_code=entry_code)

    @property
    def entry_code(self) -> str:
        """Code of the first rung (reduced joining fee)."""
        return self._entry_code

    @property
    def levels(self) -> tuple[CadreLevel, ...]:
        return self._levels

    def get(self, code: str) -> CadreLevel | None:
        return self._by_code.get(code)

    def is_valid(self, code: str | None) -> bool:
        return code is not None and code in self._by_code

    def is_entry(self, code: str | None) -> bool:
        return code == self._entry_code

    def codes(self) -> list[str]:
        return [lvl.code for lvl in self._levels]

    def __contains__(self, code: object) -> bool:
        return code in self._by_code

    def __iter__(self) -> Iterator[CadreLevel]:
        return iter(self._levels)

    def __len__(self) -> int:
        return len(self._levels)
