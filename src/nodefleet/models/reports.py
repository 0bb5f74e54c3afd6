"""Daily routing/balance report models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date

MSAT_PER_SAT = 1000

# Additive counters, in column order
COUNTER_FIELDS = (
    "forward_fee_revenue_sat",
    "forward_fee_revenue_msat",
    "rebalance_fee_cost_sat",
    "rebalance_fee_cost_msat",
    "net_routing_profit_sat",
    "net_routing_profit_msat",
    "forward_count",
    "rebalance_count",
    "routed_volume_sat",
    "routed_volume_msat",
)

BALANCE_FIELDS = (
    "onchain_balance_sat",
    "lightning_balance_sat",
    "total_balance_sat",
)

# (sat field, msat field) pairs filled in when the msat value is missing
_MSAT_PAIRS = (
    ("forward_fee_revenue_sat", "forward_fee_revenue_msat"),
    ("rebalance_fee_cost_sat", "rebalance_fee_cost_msat"),
    ("net_routing_profit_sat", "net_routing_profit_msat"),
    ("routed_volume_sat", "routed_volume_msat"),
)


@dataclass
class Metrics:
    forward_fee_revenue_sat: int = 0
    forward_fee_revenue_msat: int = 0
    rebalance_fee_cost_sat: int = 0
    rebalance_fee_cost_msat: int = 0
    net_routing_profit_sat: int = 0
    net_routing_profit_msat: int = 0
    forward_count: int = 0
    rebalance_count: int = 0
    routed_volume_sat: int = 0
    routed_volume_msat: int = 0

    # Point-in-time balances, None when not sampled
    onchain_balance_sat: int | None = None
    lightning_balance_sat: int | None = None
    total_balance_sat: int | None = None

    def fill_msat_from_sat(self) -> "Metrics":
        for sat_name, msat_name in _MSAT_PAIRS:
            sat = getattr(self, sat_name)
            if getattr(self, msat_name) == 0 and sat != 0:
                setattr(self, msat_name, sat * MSAT_PER_SAT)
        return self

    def averaged(self, days: int) -> "Metrics":
        """Per-day averages of the counters (integer division)."""
        if days <= 0:
            return Metrics()
        return Metrics(**{name: getattr(self, name) // days for name in COUNTER_FIELDS})

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DailyRow:
    report_date: date
    metrics: Metrics = field(default_factory=Metrics)

    def to_dict(self) -> dict:
        return {"report_date": self.report_date.isoformat(), **self.metrics.to_dict()}


@dataclass
class Summary:
    days: int = 0
    totals: Metrics = field(default_factory=Metrics)
    averages: Metrics = field(default_factory=Metrics)

    def to_dict(self) -> dict:
        return {
            "days": self.days,
            "totals": self.totals.to_dict(),
            "averages": self.averages.to_dict(),
        }
