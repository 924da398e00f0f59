from typing import List, Dict, Optional
from .utils import Recommendation, RiskFactor, js_round

MAX_RECOMMENDATIONS = 5


def _find(risk_factors: List[RiskFactor], name: str) -> Optional[RiskFactor]:
    for f in risk_factors:
        if f.name == name:
            return f
    return None


def _num(x: float) -> str:
    return f'{x:g}'


def agriculture_recommendations(temperature_increase: float, risk_factors: List[RiskFactor],
                                soil_moisture: List[Dict], crop_type: str) -> List[Recommendation]:
    recs = []
    heat = _find(risk_factors, 'Heat Stress')
    drought = _find(risk_factors, 'Drought Risk')
    pest = _find(risk_factors, 'Pest Pressure')
    drought_months = len([d for d in soil_moisture if d['moisture'] < d['stress_threshold']])

    if temperature_increase >= 2.0 or (heat and heat.percentage > 25):
        recs.append(Recommendation(
            'heat-resistant-varieties', 'Switch to Heat-Resistant Varieties',
            f'Your projected temperature increase of +{_num(temperature_increase)}°C puts {crop_type} at '
            'significant heat stress risk. Heat-tolerant varieties can maintain yields under thermal stress.',
            '15-25% yield protection', 'high', 'seed'))

    if drought_months >= 3 or (drought and drought.percentage > 30):
        recs.append(Recommendation(
            'irrigation-scheduling', 'Implement Smart Irrigation',
            f'{drought_months} months show soil moisture below critical thresholds. Precision irrigation with '
            'soil moisture sensors can optimize water use during dry periods.',
            '20-30% water savings', 'high', 'water'))

    if temperature_increase >= 1.5:
        recs.append(Recommendation(
            'cover-crops', 'Plant Cover Crops',
            'Cover crops between main seasons improve soil health, reduce erosion, and increase water '
            'retention capacity during variable rainfall patterns.',
            '10-15% soil health improvement', 'high' if temperature_increase >= 2.5 else 'medium', 'leaf'))

    if pest and pest.percentage > 15:
        recs.append(Recommendation(
            'integrated-pest-management', 'Adopt Integrated Pest Management',
            'Warmer temperatures accelerate pest life cycles. IPM strategies combining biological controls '
            'with targeted interventions reduce crop damage sustainably.',
            '8-12% reduced pest losses', 'high' if pest.percentage > 20 else 'medium', 'shield'))

    if drought and drought.percentage > 20:
        recs.append(Recommendation(
            'mulching', 'Apply Organic Mulching',
            'Mulching reduces soil evaporation by up to 70% and moderates soil temperature, protecting '
            'roots during heat events.',
            '25-35% moisture retention', 'medium', 'leaf'))

    recs.append(Recommendation(
        'crop-rotation', 'Diversify Crop Rotation',
        f'Rotating {crop_type} with nitrogen-fixing legumes improves soil resilience and breaks pest cycles '
        'amplified by climate change.',
        '5-10% long-term yield stability', 'low', 'seed'))

    return recs[:MAX_RECOMMENDATIONS]


def coastal_recommendations(mangrove_width: float, slope: Optional[float], storm_wave: Optional[float],
                            risk_factors: List[RiskFactor], avoided_loss: float = 0.0) -> List[Recommendation]:
    recs = []
    erosion = _find(risk_factors, 'Erosion')
    surge = _find(risk_factors, 'Storm Surge')

    if mangrove_width < 200:
        target = min(300, mangrove_width + 100)
        extra_protection = js_round((target - mangrove_width) * 2000)
        recs.append(Recommendation(
            'expand-mangroves', 'Expand Mangrove Buffer',
            f'Increasing mangrove width from {_num(mangrove_width)}m to {_num(target)}m would significantly '
            'enhance wave attenuation and storm surge protection.',
            f'+${extra_protection / 1000:.0f}K additional protection', 'high', 'tree'))

    if erosion and erosion.percentage > 25:
        recs.append(Recommendation(
            'erosion-control', 'Install Living Shoreline',
            'Combining mangroves with oyster reefs and native vegetation creates a multi-layered defense '
            'against erosion while supporting biodiversity.',
            '40-60% erosion reduction', 'high', 'waves'))

    if storm_wave is not None and storm_wave > 2.5:
        recs.append(Recommendation(
            'breakwater-assessment', 'Consider Hybrid Breakwaters',
            f'Storm waves of {storm_wave:.1f}m pose significant risk. Submerged breakwaters combined with '
            'mangroves provide layered protection against extreme events.',
            '30-50% wave energy reduction', 'high' if storm_wave > 3.5 else 'medium', 'shield'))

    if slope is not None and slope < 3:
        recs.append(Recommendation(
            'setback-planning', 'Review Building Setbacks',
            f'Low slope of {slope:.1f}% increases flood intrusion distance. Consider relocating or elevating '
            'structures within 100m of the coastline.',
            'Significant long-term protection', 'medium', 'building'))

    if surge and surge.percentage > 20:
        recs.append(Recommendation(
            'early-warning', 'Establish Early Warning System',
            'Community-based early warning systems combined with evacuation planning reduce human risk '
            'during extreme storm events.',
            'Critical safety improvement', 'medium', 'shield'))

    recs.append(Recommendation(
        'mangrove-maintenance', 'Monitor Mangrove Health',
        'Regular monitoring of mangrove density and health ensures sustained protection. Address any '
        'degradation promptly to maintain defense capacity.',
        'Sustained protection value', 'low', 'tree'))

    return recs[:MAX_RECOMMENDATIONS]


def flood_recommendations(green_roofs: bool, permeable_pavement: bool, risk_factors: List[RiskFactor],
                          flood_depth_reduction: float) -> List[Recommendation]:
    recs = []
    runoff = _find(risk_factors, 'Surface Runoff')
    drainage = _find(risk_factors, 'Drainage Capacity')

    if not green_roofs:
        recs.append(Recommendation(
            'green-roofs', 'Install Green Roofs',
            'Green roofs absorb rainfall at the source, reducing stormwater runoff by 40-60% and providing '
            'additional insulation benefits.',
            '6-10cm flood depth reduction', 'high', 'leaf'))

    if not permeable_pavement:
        recs.append(Recommendation(
            'permeable-pavement', 'Convert to Permeable Pavement',
            'Replacing impervious surfaces with permeable pavement allows water infiltration, reducing '
            'runoff volume and recharging groundwater.',
            '4-8cm flood depth reduction', 'high', 'drain'))

    if runoff and runoff.percentage > 35:
        recs.append(Recommendation(
            'rain-gardens', 'Create Rain Gardens',
            'Strategically placed rain gardens capture and filter stormwater, reducing peak flows to drainage '
            'systems during heavy rainfall.',
            '15-25% local runoff reduction', 'high' if runoff.percentage > 40 else 'medium', 'leaf'))

    if drainage and drainage.percentage > 25:
        recs.append(Recommendation(
            'bioswales', 'Install Bioswales',
            'Vegetated channels along roads and parking areas slow and filter stormwater while directing it '
            'away from vulnerable structures.',
            '20-30% drainage improvement', 'medium', 'water'))

    if green_roofs and permeable_pavement and flood_depth_reduction < 15:
        recs.append(Recommendation(
            'detention-basins', 'Add Underground Detention',
            'Underground detention basins store excess stormwater during peak events and release it slowly, '
            'preventing downstream flooding.',
            '5-10cm additional reduction', 'medium', 'drain'))

    if flood_depth_reduction > 0:
        recs.append(Recommendation(
            'maintenance-program', 'Establish Maintenance Program',
            'Regular maintenance of green infrastructure ensures continued performance. Schedule seasonal '
            'inspections and debris removal.',
            'Sustained effectiveness', 'low', 'shield'))

    recs.append(Recommendation(
        'flood-insurance', 'Review Flood Insurance Coverage',
        'With implemented interventions, you may qualify for reduced flood insurance premiums. Document all '
        'improvements for insurers.',
        'Potential premium savings', 'low', 'shield'))

    return recs[:MAX_RECOMMENDATIONS]


def generate_recommendations(mode: str, context: Dict) -> List[Recommendation]:
    """Dispatch on dashboard mode; `context` holds the keyword arguments of the mode's rule set."""
    if mode == 'agriculture':
        return agriculture_recommendations(**context)
    if mode == 'coastal':
        return coastal_recommendations(**context)
    if mode == 'flood':
        return flood_recommendations(**context)
    return []
