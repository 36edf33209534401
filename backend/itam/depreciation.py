"""Asset value depreciation.

Two methods are supported:

- ``straight``: the asset loses ``100 / years`` percent of its purchase price
  every year until it reaches zero.
- ``declining``: each year ``i`` removes ``declining_percents[i]`` percent of
  the value left at the start of that year. Years past the end of the list
  remove nothing.

Both stop depreciating after ``years`` and never go below zero.
"""

from dataclasses import dataclass, field
from typing import Sequence

DEFAULT_METHOD = "straight"
DEFAULT_YEARS = 4
DEFAULT_DECLINING_PERCENTS = [50.0, 25.0, 12.5, 12.5]
METHODS = ("straight", "declining")


def calculate_depreciated_value(
    purchase_price: float,
    purchase_year: int,
    current_year: int,
    method: str,
    years: int,
    declining_percents: Sequence[float] = (),
) -> float:
    if years < 1:
        raise ValueError("depreciation years must be at least 1")
    if current_year < purchase_year:
        return 0.0

    age = min(current_year - purchase_year, years)
    price = float(purchase_price)

    if method == "declining":
        value = price
        for i in range(age):
            pct = declining_percents[i] if i < len(declining_percents) else 0
            value *= 1 - pct / 100
        return max(value, 0.0)

    annual_pct = 100 / years
    return max(price * (1 - age * annual_pct / 100), 0.0)


@dataclass
class DepreciationSettings:
    method: str = DEFAULT_METHOD
    years: int = DEFAULT_YEARS
    declining_percents: list[float] = field(default_factory=lambda: list(DEFAULT_DECLINING_PERCENTS))

    @classmethod
    def from_json(cls, data: dict | None) -> "DepreciationSettings":
        """Build from the settings row JSON, falling back to defaults per key."""
        if not data:
            return cls()
        method = data.get("method")
        if method not in METHODS:
            method = DEFAULT_METHOD
        years = data.get("years")
        if not isinstance(years, int) or years < 1:
            years = DEFAULT_YEARS
        percents = data.get("decliningPercents")
        if not isinstance(percents, list):
            percents = list(DEFAULT_DECLINING_PERCENTS)
        return cls(method=method, years=years, declining_percents=[float(p) for p in percents])

    def to_json(self) -> dict:
        return {"method": self.method, "years": self.years, "decliningPercents": self.declining_percents}

    def value(self, purchase_price: float, purchase_year: int, current_year: int) -> float:
        return calculate_depreciated_value(
            purchase_price, purchase_year, current_year, self.method, self.years, self.declining_percents
        )
