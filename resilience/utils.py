import math
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional


def js_round(x: float, ndigits: int = 0):
    """Half-up rounding (toward +inf), as shown on the dashboard cards."""
    if ndigits == 0:
        return int(math.floor(x + 0.5))
    scale = 10 ** ndigits
    return math.floor(x * scale + 0.5) / scale


@dataclass(frozen=True)
class FinancialAssumptions:
    capex: float = 500_000.0
    opex: float = 25_000.0
    discount_rate_pct: float = 8.0
    asset_lifespan_years: int = 30
    insurance_premium_annual: Optional[float] = None

    def as_payload(self) -> Dict[str, Any]:
        payload = {
            'capex_budget': self.capex,
            'opex_annual': self.opex,
            'discount_rate_pct': self.discount_rate_pct,
            'asset_lifespan_years': self.asset_lifespan_years,
        }
        if self.insurance_premium_annual is not None:
            payload['insurance_premium_annual'] = self.insurance_premium_annual
        return payload


@dataclass(frozen=True)
class CashFlowPoint:
    year: int
    cumulative: float  # year 0 is -capex as given, later years whole currency units


@dataclass(frozen=True)
class CashFlowResults:
    points: List[CashFlowPoint]
    npv: int
    roi_pct: int
    payback_years: Optional[float]
    annual_net_benefit: float


@dataclass(frozen=True)
class SeaWallProject:
    capex: float = 500_000.0
    opex: float = 10_000.0
    height_increase: float = 1.0  # metres
    type: str = field(default='sea_wall', init=False)


@dataclass(frozen=True)
class DrainageProject:
    capex: float = 500_000.0
    opex: float = 10_000.0
    capacity_upgrade: float = 30.0  # cm
    type: str = field(default='drainage', init=False)


def project_from_dict(d: Dict[str, Any]):
    kind = d.get('type')
    if kind == 'sea_wall':
        return SeaWallProject(capex=float(d.get('capex', 500_000)), opex=float(d.get('opex', 10_000)),
                              height_increase=float(d.get('heightIncrease', d.get('height_increase', 1.0))))
    if kind == 'drainage':
        return DrainageProject(capex=float(d.get('capex', 500_000)), opex=float(d.get('opex', 10_000)),
                               capacity_upgrade=float(d.get('capacityUpgrade', d.get('capacity_upgrade', 30.0))))
    raise ValueError(f'unknown project type: {kind!r}')


@dataclass(frozen=True)
class RiskFactor:
    name: str
    percentage: float  # 0-100, not normalised across factors
    color: str


@dataclass(frozen=True)
class MonteCarloSummary:
    mean: float
    std: float
    p5: float

    @classmethod
    def from_metrics(cls, mc: Optional[Dict[str, Any]]):
        npv = ((mc or {}).get('metrics') or {}).get('npv_usd') or {}
        mean = npv.get('mean')
        std = npv.get('std')
        p5 = npv.get('p5')
        return cls(mean=0.0 if mean is None else float(mean),
                   std=1.0 if std is None else float(std),
                   p5=0.0 if p5 is None else float(p5))


@dataclass(frozen=True)
class InvestmentAnalysis:
    bcr: float
    npv_avoided_damage: int
    annual_benefit: float
    verdict: str

    @property
    def bankable(self) -> bool:
        return self.verdict == 'Bankable'


@dataclass(frozen=True)
class GreenBondDeal:
    principal: float
    coupon: float
    tenor: int
    rating: str
    greenium_savings: int


@dataclass(frozen=True)
class Recommendation:
    id: str
    title: str
    description: str
    impact: str
    priority: str  # high | medium | low
    icon: str


@dataclass(frozen=True)
class GeocoderResult:
    id: str
    place_name: str
    lat: float
    lng: float
