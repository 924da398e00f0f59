"""Validate-and-forward handlers for the remote prediction services.

Each endpoint validates the incoming JSON body, builds the upstream payload,
POSTs it and hands the upstream JSON back untouched. Local validation
failures are 400s, upstream failures keep the upstream status, anything
else is a logged 500. There are no retries.
"""
import json
import math
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import requests

from . import config
from .utils import js_round

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, POST, PUT, DELETE, OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type, Authorization, X-Client-Info, Apikey',
}
JSON_HEADERS = {**CORS_HEADERS, 'Content-Type': 'application/json'}

INTERVENTION_TYPES = ['green_roof', 'permeable_pavement', 'bioswales', 'rain_gardens']
MAX_CROP_LENGTH = 50
FINANCE_ASSUMPTION_FIELDS = ['capex_budget', 'opex_annual', 'discount_rate_pct', 'asset_lifespan_years']


class ValidationError(ValueError):
    pass


@dataclass
class ProxyResponse:
    status: int
    body: Any = None
    headers: Dict[str, str] = field(default_factory=lambda: dict(JSON_HEADERS))

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def _number(value) -> float:
    """Lenient numeric coercion; anything unparseable becomes NaN."""
    if value is None:
        return float('nan')
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        if not value.strip():
            return 0.0
        try:
            return float(value)
        except ValueError:
            return float('nan')
    return float('nan')


def _in_range(x: float, lo: float, hi: float) -> bool:
    return not math.isnan(x) and lo <= x <= hi


def _check_lat_lon(lat: float, lon: float):
    if not _in_range(lat, -90, 90):
        raise ValidationError('lat must be between -90 and 90')
    if not _in_range(lon, -180, 180):
        raise ValidationError('lon must be between -180 and 180')


def _check_crop(crop: str):
    if not crop or len(crop) > MAX_CROP_LENGTH:
        raise ValidationError(f'crop is required and must be <= {MAX_CROP_LENGTH} chars')


def _first(body: Dict, *keys, default=None):
    for k in keys:
        if body.get(k) is not None:
            return body[k]
    return default


def agriculture_payload(body: Dict) -> Dict:
    lat, lon = _number(body.get('lat')), _number(body.get('lon'))
    crop = str(_first(body, 'crop', default=''))
    _check_lat_lon(lat, lon)
    _check_crop(crop)

    payload = {'lat': lat, 'lon': lon, 'crop': crop}
    for key in ('temp_increase', 'rain_change'):
        if body.get(key) is not None:
            payload[key] = _number(body[key])
    if body.get('project_params'):
        payload['project_params'] = body['project_params']
    return payload


def coastal_payload(body: Dict) -> Dict:
    lat, lon = _number(body.get('lat')), _number(body.get('lon'))
    _check_lat_lon(lat, lon)
    return {
        'lat': lat,
        'lon': lon,
        'mangrove_width': _number(_first(body, 'mangrove_width', default=0)),
        'sea_level_rise': _number(_first(body, 'slr_projection', 'sea_level_rise', default=0)),
        'include_storm_surge': bool(_first(body, 'include_storm_surge', default=False)),
    }


def flood_payload(body: Dict) -> Dict:
    rain_intensity = _number(body.get('rain_intensity'))
    imperviousness = _number(body.get('current_imperviousness'))
    intervention = str(_first(body, 'intervention_type', default='green_roof'))

    if not _in_range(rain_intensity, 0, 500):
        raise ValidationError('rain_intensity must be between 0 and 500')
    if not _in_range(imperviousness, 0, 1):
        raise ValidationError('current_imperviousness must be between 0 and 1')
    if intervention not in INTERVENTION_TYPES:
        raise ValidationError(f"intervention_type must be one of: {', '.join(INTERVENTION_TYPES)}")

    payload = {
        'rain_intensity': rain_intensity,
        'current_imperviousness': imperviousness,
        'intervention_type': intervention,
        'slope_pct': _number(_first(body, 'slope_pct', default=2.0)),
    }
    if body.get('lat') is not None or body.get('lon') is not None:
        lat, lon = _number(body.get('lat')), _number(body.get('lon'))
        _check_lat_lon(lat, lon)
        payload['lat'] = lat
        payload['lon'] = lon
    if body.get('rain_intensity_pct') is not None:
        payload['rain_intensity_pct'] = _number(body['rain_intensity_pct'])
    return payload


def finance_payload(body: Dict) -> Dict:
    lat, lon = _number(body.get('lat')), _number(body.get('lon'))
    crop = str(_first(body, 'crop', 'crop_type', default=''))
    _check_lat_lon(lat, lon)
    _check_crop(crop)

    payload = {'lat': lat, 'lon': lon, 'crop_type': crop}
    for key in FINANCE_ASSUMPTION_FIELDS:
        if body.get(key) is not None:
            payload[key] = _number(body[key])
    return payload


def polygon_payload(body: Dict) -> Dict:
    geometry = body.get('geometry')
    if (not isinstance(geometry, dict) or geometry.get('type') != 'Polygon'
            or not isinstance(geometry.get('coordinates'), list)):
        raise ValidationError('geometry must be a GeoJSON Polygon with coordinates')

    payload = {'geometry': geometry, 'mode': str(_first(body, 'mode', default='flood'))}
    if body.get('crop'):
        payload['crop_type'] = str(body['crop'])
    for key in ('rain_intensity', 'rain_intensity_pct', 'current_imperviousness',
                'sea_level_rise', 'mangrove_width'):
        if body.get(key) is not None:
            payload[key] = _number(body[key])
    if body.get('intervention_type') is not None:
        payload['intervention_type'] = str(body['intervention_type'])
    return payload


def predict_health(body: Dict) -> Dict:
    """Heat-stress and vector-borne disease estimate; computed locally, no upstream model."""
    lat, lon = _number(body.get('lat')), _number(body.get('lon'))
    _check_lat_lon(lat, lon)
    temp_increase = _number(_first(body, 'temp_increase', default=0))
    workforce = _number(_first(body, 'workforce_size', default=100))
    wage = _number(_first(body, 'daily_wage', default=15))

    if abs(lat) < 15:
        base_temp = 32
    elif lat < 25:
        base_temp = 30
    else:
        base_temp = 28
    projected = base_temp + temp_increase
    wbgt = projected * 0.7 + 8

    loss_pct = min(50, js_round((wbgt - 25) * 5)) if wbgt > 25 else 0
    economic_loss = js_round(workforce * wage * (loss_pct / 100))

    malaria = 'Low'
    if abs(lat) < 25 and 22 <= projected <= 33:
        malaria = 'High' if 25 <= projected <= 30 else 'Medium'
    dengue = 'Low'
    if abs(lat) < 35 and projected >= 20:
        dengue = 'High' if 25 <= projected <= 35 else 'Medium'

    return {'data': {
        'productivity_loss_pct': loss_pct,
        'economic_loss_daily': economic_loss,
        'wbgt': js_round(wbgt, 1),
        'projected_temp': js_round(projected, 1),
        'malaria_risk': malaria,
        'dengue_risk': dengue,
        'workforce_size': workforce,
        'daily_wage': wage,
    }}


ENDPOINTS: Dict[str, Callable[[], str]] = {
    'simulate-agriculture': lambda: config.AGRICULTURE_API_URL,
    'simulate-coastal': lambda: config.COASTAL_API_URL,
    'simulate-flood': lambda: config.FLOOD_API_URL,
    'simulate-finance': lambda: f'{config.FINANCE_API_BASE_URL}/simulate',
    'simulate-polygon': lambda: f'{config.FINANCE_API_BASE_URL}/simulate/polygon',
}

PAYLOAD_BUILDERS: Dict[str, Callable[[Dict], Dict]] = {
    'simulate-agriculture': agriculture_payload,
    'simulate-coastal': coastal_payload,
    'simulate-flood': flood_payload,
    'simulate-finance': finance_payload,
    'simulate-polygon': polygon_payload,
}


def forward(endpoint: str, url: str, payload: Dict, session=None) -> ProxyResponse:
    http = session or requests
    resp = http.post(url, json=payload, timeout=config.REQUEST_TIMEOUT)
    if not resp.ok:
        logger.error('%s: upstream API error %s %s', endpoint, resp.status_code, resp.text)
        return ProxyResponse(resp.status_code, {
            'error': 'Simulation failed',
            'message': f'API error: {resp.status_code}',
            'details': resp.text,
        })
    data = resp.json()
    logger.info('%s: Success', endpoint)
    return ProxyResponse(200, data)


def _bad_request(error: str, message: str) -> ProxyResponse:
    return ProxyResponse(400, {'error': error, 'message': message})


def handle_request(endpoint: str, method: str = 'POST', raw_body: Any = None, session=None) -> ProxyResponse:
    """Serve one proxy call. `raw_body` may be JSON text/bytes or an already-decoded dict."""
    if method.upper() == 'OPTIONS':
        return ProxyResponse(200, None, dict(CORS_HEADERS))
    if endpoint not in PAYLOAD_BUILDERS and endpoint != 'predict-health':
        return ProxyResponse(404, {'error': 'Not found', 'message': f'unknown endpoint {endpoint}'})

    logger.info('%s: Request received', endpoint)
    try:
        if isinstance(raw_body, (str, bytes, bytearray)):
            try:
                body = json.loads(raw_body)
            except ValueError:
                return _bad_request('Invalid request', 'Invalid JSON body')
        else:
            body = raw_body
        if not isinstance(body, dict):
            return _bad_request('Invalid request', 'Invalid JSON body')

        try:
            if endpoint == 'predict-health':
                return ProxyResponse(200, predict_health(body))
            payload = PAYLOAD_BUILDERS[endpoint](body)
        except ValidationError as e:
            logger.info('%s: validation failed: %s', endpoint, e)
            return _bad_request('Validation failed', str(e))

        logger.info('%s: Validated %s', endpoint, payload)
        return forward(endpoint, ENDPOINTS[endpoint](), payload, session=session)
    except Exception as e:
        logger.exception('%s: Unexpected error', endpoint)
        return ProxyResponse(500, {'error': 'Internal server error', 'message': str(e) or type(e).__name__})


def parse_finance_response(data: Any) -> Dict[str, Optional[Any]]:
    """Split a simulate-finance result into the panels the finance sandbox shows."""
    result = data[0] if isinstance(data, list) and data else data
    if not isinstance(result, dict):
        result = {}
    nested = result.get('data') if isinstance(result.get('data'), dict) else {}
    financial = _first(result, 'financial_analysis')
    if financial is None:
        financial = nested.get('financial_analysis', result)
    return {
        'financial_data': financial,
        'monte_carlo_data': result.get('monte_carlo_analysis'),
        'executive_summary': result.get('executive_summary'),
        'sensitivity_data': result.get('sensitivity_analysis'),
        'adaptation_strategy': result.get('adaptation_strategy'),
        'adaptation_portfolio': result.get('adaptation_portfolio'),
        'satellite_preview': result.get('satellite_preview'),
        'market_intelligence': result.get('market_intelligence'),
        'temporal_analysis': result.get('temporal_analysis'),
    }
