import math
from typing import List, Dict, Optional
from .utils import RiskFactor, js_round

MONTHS = ['Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun', 'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec']
SURGE_YEARS = ['2025', '2030', '2035', '2040', '2045', '2050']
TROPIC_LATITUDE = 23.5
SOIL_STRESS_THRESHOLD = 30

MAX_POTENTIAL_LOSS = {'agriculture': 1000, 'coastal': 1_000_000, 'flood': 500_000}
DEFAULT_MAX_POTENTIAL_LOSS = 100_000


def seeded_random(seed: int):
    """Deterministic LCG so the synthetic series are stable per location."""
    state = [seed]

    def _next():
        state[0] = (state[0] * 9301 + 49297) % 233280
        return state[0] / 233280
    return _next


def _by_share(factors: List[RiskFactor]) -> List[RiskFactor]:
    return sorted(factors, key=lambda f: f.percentage, reverse=True)


def generate_rainfall_data(latitude: float, temperature_increase: float):
    random = seeded_random(abs(math.floor(latitude * 1000)))
    tropical = abs(latitude) < TROPIC_LATITUDE
    base_rainfall = 180 if tropical else 80
    seasonal_variation = 0.4 if tropical else 0.6

    rows = []
    for index, month in enumerate(MONTHS):
        seasonal = math.sin((index / 12) * math.pi * 2 - math.pi / 2) * seasonal_variation + 1
        historical = js_round(base_rainfall * seasonal * (0.8 + random() * 0.4))
        multiplier = 1 + temperature_increase * 0.12 + (random() * 0.1 - 0.05)
        rows.append({'month': month, 'historical': historical, 'projected': js_round(historical * multiplier)})
    return rows


def generate_soil_moisture_data(latitude: float, temperature_increase: float):
    random = seeded_random(abs(math.floor(latitude * 1000)) + 500)
    base_moisture = 55 if abs(latitude) < TROPIC_LATITUDE else 45

    rows = []
    for index, month in enumerate(MONTHS):
        seasonal = math.cos((index / 12) * math.pi * 2) * 0.3
        moisture = base_moisture + seasonal * 20 - temperature_increase * 4 + (random() * 10 - 5)
        moisture = max(15, min(80, moisture))
        rows.append({'month': month, 'moisture': js_round(moisture), 'stress_threshold': SOIL_STRESS_THRESHOLD})
    return rows


def generate_agriculture_risk_factors(temperature_increase: float, soil_moisture: List[Dict]) -> List[RiskFactor]:
    avg_moisture = sum(d['moisture'] for d in soil_moisture) / 12
    drought_months = len([d for d in soil_moisture if d['moisture'] < d['stress_threshold']])

    heat_stress = min(40, js_round(temperature_increase * 12 + 5))
    drought_risk = min(45, js_round(drought_months * 4 + (50 - avg_moisture) * 0.5))
    pest_pressure = min(25, js_round(temperature_increase * 5 + 10))
    soil_degradation = max(5, 100 - heat_stress - drought_risk - pest_pressure)

    return _by_share([
        RiskFactor('Drought Risk', drought_risk, '#f59e0b'),
        RiskFactor('Heat Stress', heat_stress, '#ef4444'),
        RiskFactor('Pest Pressure', pest_pressure, '#8b5cf6'),
        RiskFactor('Soil Degradation', soil_degradation, '#6b7280'),
    ])


def generate_storm_surge_data(mangrove_width: float):
    reduction = min(0.6, mangrove_width / 500)
    rows = []
    for index, year in enumerate(SURGE_YEARS):
        baseline = 1.2 + index * 0.08 + index * index * 0.01
        rows.append({
            'year': year,
            'baseline': js_round(baseline, 2),
            'with_mangroves': js_round(baseline * (1 - reduction), 2),
        })
    return rows


def generate_coastal_risk_factors(slope: Optional[float], storm_wave: Optional[float],
                                  mangrove_width: float) -> List[RiskFactor]:
    slope_risk = min(40, js_round((10 - slope) * 4)) if slope is not None else 25
    wave_risk = min(35, js_round(storm_wave * 8)) if storm_wave is not None else 30
    erosion_risk = max(15, js_round(40 - mangrove_width / 10))
    remaining = max(10, 100 - slope_risk - wave_risk - erosion_risk)

    return _by_share([
        RiskFactor('Erosion', erosion_risk, '#f59e0b'),
        RiskFactor('Storm Surge', slope_risk, '#3b82f6'),
        RiskFactor('Wave Impact', wave_risk, '#06b6d4'),
        RiskFactor('Sea Level Rise', remaining, '#6b7280'),
    ])


def generate_flood_capacity_data(green_roofs: bool, permeable_pavement: bool):
    base = 100
    roof_bonus = 25 if green_roofs else 0
    pavement_bonus = 20 if permeable_pavement else 0
    return [
        {'category': 'Surface Runoff', 'capacity': base + roof_bonus + pavement_bonus, 'demand': 140},
        {'category': 'Drainage System', 'capacity': base + js_round(pavement_bonus * 0.5), 'demand': 120},
        {'category': 'Soil Absorption', 'capacity': base + js_round(pavement_bonus * 1.5), 'demand': 110},
        {'category': 'Retention Basins', 'capacity': base + js_round(roof_bonus * 0.8), 'demand': 95},
    ]


def generate_flood_risk_factors(green_roofs: bool, permeable_pavement: bool) -> List[RiskFactor]:
    runoff_reduction = (10 if green_roofs else 0) + (8 if permeable_pavement else 0)
    drainage_reduction = 5 if permeable_pavement else 0

    return _by_share([
        RiskFactor('Surface Runoff', max(20, 45 - runoff_reduction), '#3b82f6'),
        RiskFactor('Drainage Capacity', max(20, 30 - drainage_reduction), '#06b6d4'),
        RiskFactor('Soil Saturation', 25, '#6b7280'),
    ])


def generate_yield_comparison_data(yield_baseline: float, yield_resilient: float, temperature_increase: float):
    projected_baseline = yield_baseline * (1 - temperature_increase * 0.08)
    projected_resilient = yield_resilient * (1 - temperature_increase * 0.03)
    return [
        {'scenario': 'Current Baseline', 'yield': js_round(yield_baseline, 2), 'color': '#6b7280'},
        {'scenario': 'Projected Baseline', 'yield': js_round(projected_baseline, 2), 'color': '#ef4444'},
        {'scenario': 'With Resilient Seeds', 'yield': js_round(projected_resilient, 2), 'color': '#10b981'},
    ]


def calculate_resilience_score(mode: str, risk_factors: List[RiskFactor], avoided_loss: float,
                               max_potential_loss: float) -> int:
    """0-100 blend of weighted risk exposure and the share of loss avoided.

    Heat and storm factors weigh 1.2x. With no factors the risk half scores full.
    """
    risk_weight = 0.0
    for factor in risk_factors:
        weight = factor.percentage / 100
        risk_weight += weight * (1.2 if ('Heat' in factor.name or 'Storm' in factor.name) else 1)

    protection_ratio = avoided_loss / max_potential_loss if max_potential_loss > 0 else 0.5
    mean_risk = risk_weight / len(risk_factors) if risk_factors else 0.0
    score = (1 - mean_risk) * 50 + protection_ratio * 50
    if math.isnan(score):
        return 0
    return js_round(min(100, max(0, score)))


def max_potential_loss_for(mode: str) -> float:
    return MAX_POTENTIAL_LOSS.get(mode, DEFAULT_MAX_POTENTIAL_LOSS)
