import math
from typing import List, Dict, Optional
import numpy as np
import numpy_financial as npf
from .utils import (CashFlowPoint, CashFlowResults, InvestmentAnalysis, GreenBondDeal,
                    MonteCarloSummary, js_round)

PROJECTION_YEARS = 10
BASELINE_YIELD_TONNES = 1.0
DISRUPTION_DAYS_AVOIDED = 5
BANKABLE_THRESHOLD = 1.0

BASE_COUPON_PCT = 5.0
FAST_PAYBACK_YEARS = 5
FAST_PAYBACK_DISCOUNT_PCT = 0.5
GREENIUM_RATE = 0.0015


def cash_flow_projection(capex: float, opex: float, yield_benefit: float, crop_price: float,
                         discount_rate: float = 15.0) -> CashFlowResults:
    """Ten-year cumulative cash flow for a yield-improving intervention.

    `yield_benefit` is a percent uplift on a 1 t baseline and `discount_rate`
    is in percent. Payback is interpolated inside the first year whose
    cumulative cash flow is non-negative; it is None when the project never
    pays back (including any non-positive annual net benefit).
    """
    additional_yield = BASELINE_YIELD_TONNES * (yield_benefit / 100)
    annual_net_benefit = additional_yield * crop_price - opex
    r = discount_rate / 100

    cumulative = -capex
    points = [CashFlowPoint(year=0, cumulative=cumulative)]
    payback = None
    for y in range(1, PROJECTION_YEARS + 1):
        cumulative += annual_net_benefit
        points.append(CashFlowPoint(year=y, cumulative=js_round(cumulative)))
        if payback is None and annual_net_benefit > 0 and cumulative >= 0:
            # interpolate from the displayed (rounded) balance of the prior year
            prev_cum = points[y - 1].cumulative
            payback = y - 1 + abs(prev_cum) / annual_net_benefit

    npv = float(npf.npv(r, [-capex] + [annual_net_benefit] * PROJECTION_YEARS))
    roi_pct = (cumulative / capex) * 100 if capex > 0 else 0

    return CashFlowResults(
        points=points,
        npv=js_round(npv),
        roi_pct=js_round(roi_pct),
        payback_years=js_round(payback, 1) if payback is not None else None,
        annual_net_benefit=annual_net_benefit,
    )


def benefit_cost_ratio(avoided_loss: float, project, asset_lifespan: int, discount_rate: float,
                       daily_revenue: float = 0.0,
                       include_business_interruption: bool = False) -> Optional[InvestmentAnalysis]:
    if project is None:
        return None
    r = discount_rate / 100
    n = int(asset_lifespan)

    annual_benefit = avoided_loss
    if include_business_interruption:
        annual_benefit += daily_revenue * DISRUPTION_DAYS_AVOIDED

    pv_benefits = sum(annual_benefit / ((1 + r) ** t) for t in range(1, n + 1))
    pv_costs = project.capex
    for t in range(1, n + 1):
        pv_costs += project.opex / ((1 + r) ** t)

    ratio = pv_benefits / pv_costs if pv_costs > 0 else 0
    bcr = js_round(ratio, 2)
    return InvestmentAnalysis(
        bcr=bcr,
        npv_avoided_damage=js_round(pv_benefits),
        annual_benefit=annual_benefit,
        verdict='Bankable' if bcr >= BANKABLE_THRESHOLD else 'Unviable',
    )


def default_probability(mean: float, std: float) -> float:
    """P(NPV < 0) in percent, via the logistic approximation of the normal CDF."""
    if std == 0:
        return 100.0 if mean < 0 else 0.0
    z = -mean / std
    try:
        prob = 1 / (1 + math.exp(-1.7 * z))
    except OverflowError:
        prob = 0.0
    return max(0.0, min(100.0, prob * 100))


def value_at_risk_95(summary: MonteCarloSummary) -> float:
    return summary.p5


def default_risk_band(prob: float) -> str:
    if prob < 5:
        return 'Low Risk'
    if prob < 20:
        return 'Moderate'
    return 'High Risk'


def structure_green_bond(capex: float, analysis_years: int = 10, roi_pct: float = 0,
                         payback_years: Optional[float] = None) -> GreenBondDeal:
    payback = math.inf if payback_years is None else payback_years

    coupon = BASE_COUPON_PCT
    if payback < FAST_PAYBACK_YEARS:
        coupon -= FAST_PAYBACK_DISCOUNT_PCT

    if roi_pct > 200:
        rating = 'AAA (Prime)'
    elif roi_pct > 100:
        rating = 'BBB (Investment Grade)'
    else:
        rating = 'B (Speculative)'

    greenium_savings = js_round(capex * GREENIUM_RATE * analysis_years)
    return GreenBondDeal(principal=capex, coupon=coupon, tenor=analysis_years, rating=rating,
                         greenium_savings=greenium_savings)


def structure_green_bond_from_analysis(financial_data: Optional[Dict]) -> GreenBondDeal:
    fd = financial_data or {}
    assumptions = fd.get('assumptions') or {}
    capex = assumptions.get('capex')
    tenor = assumptions.get('analysis_years')
    roi = fd.get('roi_pct')
    return structure_green_bond(
        capex=0 if capex is None else capex,
        analysis_years=10 if tenor is None else tenor,
        roi_pct=0 if roi is None else roi,
        payback_years=fd.get('payback_years'),
    )


def rating_tier(rating: str) -> str:
    r = rating.upper()
    if r.startswith('A'):
        return 'prime'
    if r.startswith('B'):
        return 'watch'
    return 'distressed'


def monte_carlo_npv(capex: float, opex: float, yield_benefit: float, crop_price: float,
                    discount_rate: float = 15.0, n: int = 2000, price_sigma=0.15, capex_sigma=0.15,
                    opex_sigma=0.10, rate_sigma=2.0, seed: int = 42):
    """Simulated NPV distribution; `rate_sigma` is in percentage points."""
    rng = np.random.default_rng(seed)
    results = []
    for _ in range(n):
        price_mc = crop_price * rng.lognormal(mean=0, sigma=price_sigma)
        capex_mc = capex * rng.lognormal(mean=0, sigma=capex_sigma)
        opex_mc = opex * rng.lognormal(mean=0, sigma=opex_sigma)
        rate_mc = max(0.0, rng.normal(discount_rate, rate_sigma))
        res = cash_flow_projection(capex_mc, opex_mc, yield_benefit, price_mc, rate_mc)
        results.append(res.npv)
    return np.array(results, dtype=float)


def summarize_npvs(npvs) -> MonteCarloSummary:
    npvs = np.asarray(npvs, dtype=float)
    return MonteCarloSummary(mean=float(np.mean(npvs)), std=float(np.std(npvs)),
                             p5=float(np.percentile(npvs, 5)))


def conditional_value_at_risk(npvs, level: float = 0.95) -> Optional[float]:
    """Expected loss (positive = loss) in the worst (1 - level) tail of NPV outcomes."""
    losses = -np.asarray(npvs, dtype=float)
    if losses.size == 0:
        return None
    threshold = np.percentile(losses, level * 100)
    tail = losses[losses >= threshold]
    return float(tail.mean())


def loss_distribution(npvs, bins: int = 30) -> List[Dict]:
    losses = -np.asarray(npvs, dtype=float)
    if losses.size == 0:
        return []
    freq, edges = np.histogram(losses, bins=bins)
    mids = (edges[:-1] + edges[1:]) / 2
    return [{'loss_amount': float(m), 'frequency': int(f)} for m, f in zip(mids, freq)]
