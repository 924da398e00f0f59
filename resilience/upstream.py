import math
import logging
from typing import Any, Dict, Iterable, List, Optional

import requests

from . import config
from .utils import FinancialAssumptions

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371


def _api_url(path: str) -> str:
    return f"{config.API_BASE_URL.rstrip('/')}{path}"


def fetch_cba_series(assumptions: FinancialAssumptions, lat: Optional[float] = None,
                     lon: Optional[float] = None, session=None) -> List[Dict]:
    """Baseline vs intervention cost by year; empty when the service is unavailable."""
    body = assumptions.as_payload()
    if lat is not None and lon is not None:
        body.update({'lat': lat, 'lon': lon})
    http = session or requests
    try:
        resp = http.post(_api_url('/api/v1/finance/cba-series'), json=body, timeout=config.REQUEST_TIMEOUT)
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning('CBA series request failed: %s', e)
        return []
    series = data.get('time_series')
    if series is None:
        series = (data.get('data') or {}).get('time_series')
    return series or []


def map_portfolio_analysis_result(result: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Fill the camelCase summary keys from whichever spelling the API returned."""
    result = dict(result or {})
    raw = result.get('portfolio_summary') or {}

    def pick(snake, camel):
        if raw.get(snake) is not None:
            return raw[snake]
        if raw.get(camel) is not None:
            return raw[camel]
        return 0

    result['portfolio_summary'] = {
        **raw,
        'totalPortfolioValue': pick('total_portfolio_value', 'totalPortfolioValue'),
        'totalValueAtRisk': pick('total_value_at_risk', 'totalValueAtRisk'),
        'averageResilienceScore': pick('average_resilience_score', 'averageResilienceScore'),
    }
    return result


def analyze_portfolio(assets: List[Dict[str, Any]], session=None) -> Dict[str, Any]:
    """POST assets ({lat, lon, name?, value?}) for portfolio-level value-at-risk. Raises on failure."""
    http = session or requests
    resp = http.post(_api_url('/api/v1/analyze-portfolio'), json={'assets': assets}, timeout=config.REQUEST_TIMEOUT)
    resp.raise_for_status()
    return map_portfolio_analysis_result(resp.json())


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def find_closest_atlas_item(items: Iterable[Dict], lat: float, lon: float, project_type: str) -> Optional[Dict]:
    closest, min_dist = None, math.inf
    for item in items:
        if item.get('project_type') != project_type:
            continue
        loc = item['location']
        dist = haversine_km(lat, lon, loc['lat'], loc['lon'])
        if dist < min_dist:
            closest, min_dist = item, dist
    return closest
