import json
from unittest.mock import MagicMock

import pytest
import requests

from resilience import config
from resilience.proxies import handle_request, parse_finance_response, ProxyResponse


def _session(status=200, payload=None, text=''):
    resp = MagicMock()
    resp.ok = 200 <= status < 300
    resp.status_code = status
    resp.text = text
    resp.json.return_value = payload
    session = MagicMock()
    session.post.return_value = resp
    return session


def test_preflight_returns_cors_headers():
    resp = handle_request('simulate-coastal', 'OPTIONS')
    assert resp.status == 200
    assert resp.body is None
    assert resp.headers['Access-Control-Allow-Origin'] == '*'


def test_invalid_json_is_rejected():
    resp = handle_request('simulate-agriculture', 'POST', '{not json')
    assert resp.status == 400
    assert resp.body == {'error': 'Invalid request', 'message': 'Invalid JSON body'}


def test_non_object_body_is_rejected():
    resp = handle_request('simulate-agriculture', 'POST', '[1, 2]')
    assert resp.status == 400


@pytest.mark.parametrize('body,message', [
    ({'lat': 91, 'lon': 0, 'crop': 'maize'}, 'lat must be between -90 and 90'),
    ({'lat': 'abc', 'lon': 0, 'crop': 'maize'}, 'lat must be between -90 and 90'),
    ({'lat': 0, 'lon': -181, 'crop': 'maize'}, 'lon must be between -180 and 180'),
    ({'lat': 0, 'lon': 0}, 'crop is required and must be <= 50 chars'),
    ({'lat': 0, 'lon': 0, 'crop': 'x' * 51}, 'crop is required and must be <= 50 chars'),
])
def test_agriculture_validation(body, message):
    session = _session()
    resp = handle_request('simulate-agriculture', 'POST', json.dumps(body), session=session)
    assert resp.status == 400
    assert resp.body == {'error': 'Validation failed', 'message': message}
    session.post.assert_not_called()


def test_agriculture_forwards_and_returns_upstream_body():
    upstream = {'data': {'avoided_loss': 120}}
    session = _session(payload=upstream)
    body = {'lat': '13.7', 'lon': 100.5, 'crop': 'rice', 'temp_increase': 1.5, 'project_params': {'x': 1}}
    resp = handle_request('simulate-agriculture', 'POST', body, session=session)

    assert resp.status == 200
    assert resp.body == upstream
    assert resp.headers['Content-Type'] == 'application/json'
    url = session.post.call_args.args[0]
    sent = session.post.call_args.kwargs['json']
    assert url == config.AGRICULTURE_API_URL
    assert sent == {'lat': 13.7, 'lon': 100.5, 'crop': 'rice', 'temp_increase': 1.5, 'project_params': {'x': 1}}


def test_upstream_error_keeps_status_and_body_text():
    session = _session(status=503, text='model warming up')
    resp = handle_request('simulate-coastal', 'POST', {'lat': 1, 'lon': 2}, session=session)
    assert resp.status == 503
    assert resp.body == {'error': 'Simulation failed', 'message': 'API error: 503', 'details': 'model warming up'}


def test_network_failure_is_internal_error():
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError('refused')
    resp = handle_request('simulate-coastal', 'POST', {'lat': 1, 'lon': 2}, session=session)
    assert resp.status == 500
    assert resp.body['error'] == 'Internal server error'
    assert 'refused' in resp.body['message']


def test_coastal_payload_defaults_and_aliases():
    session = _session(payload={})
    handle_request('simulate-coastal', 'POST', {'lat': 1, 'lon': 2, 'slr_projection': 0.5}, session=session)
    assert session.post.call_args.kwargs['json'] == {
        'lat': 1.0, 'lon': 2.0, 'mangrove_width': 0.0, 'sea_level_rise': 0.5, 'include_storm_surge': False,
    }


def test_flood_validation():
    base = {'rain_intensity': 100, 'current_imperviousness': 0.5}
    resp = handle_request('simulate-flood', 'POST', {**base, 'rain_intensity': 600})
    assert resp.body['message'] == 'rain_intensity must be between 0 and 500'
    resp = handle_request('simulate-flood', 'POST', {**base, 'current_imperviousness': 1.5})
    assert resp.body['message'] == 'current_imperviousness must be between 0 and 1'
    resp = handle_request('simulate-flood', 'POST', {**base, 'intervention_type': 'sandbags'})
    assert resp.status == 400
    assert resp.body['message'] == ('intervention_type must be one of: green_roof, permeable_pavement, '
                                    'bioswales, rain_gardens')
    resp = handle_request('simulate-flood', 'POST', {**base, 'lat': 95, 'lon': 0})
    assert resp.body['message'] == 'lat must be between -90 and 90'


def test_flood_payload_defaults():
    session = _session(payload={'ok': True})
    resp = handle_request('simulate-flood', 'POST', {'rain_intensity': 80, 'current_imperviousness': 0.6},
                          session=session)
    assert resp.ok
    assert session.post.call_args.args[0] == config.FLOOD_API_URL
    assert session.post.call_args.kwargs['json'] == {
        'rain_intensity': 80.0, 'current_imperviousness': 0.6, 'intervention_type': 'green_roof', 'slope_pct': 2.0,
    }


def test_finance_forwards_crop_type_and_assumptions():
    session = _session(payload=[{'financial_analysis': {'roi_pct': 10}}])
    body = {'lat': 1, 'lon': 2, 'crop_type': 'wheat', 'capex_budget': 1000, 'discount_rate_pct': '8'}
    resp = handle_request('simulate-finance', 'POST', body, session=session)
    assert resp.status == 200
    assert session.post.call_args.args[0] == f'{config.FINANCE_API_BASE_URL}/simulate'
    assert session.post.call_args.kwargs['json'] == {
        'lat': 1.0, 'lon': 2.0, 'crop_type': 'wheat', 'capex_budget': 1000.0, 'discount_rate_pct': 8.0,
    }


def test_polygon_requires_geojson_polygon():
    resp = handle_request('simulate-polygon', 'POST', {'geometry': {'type': 'Point', 'coordinates': [0, 0]}})
    assert resp.status == 400
    assert resp.body['message'] == 'geometry must be a GeoJSON Polygon with coordinates'

    session = _session(payload={})
    geometry = {'type': 'Polygon', 'coordinates': [[[0, 0], [1, 0], [1, 1], [0, 0]]]}
    handle_request('simulate-polygon', 'POST', {'geometry': geometry, 'crop': 'maize', 'mangrove_width': '50'},
                   session=session)
    assert session.post.call_args.kwargs['json'] == {
        'geometry': geometry, 'mode': 'flood', 'crop_type': 'maize', 'mangrove_width': 50.0,
    }


def test_health_prediction_is_local():
    resp = handle_request('predict-health', 'POST', {'lat': 30, 'lon': 10})
    assert resp.status == 200
    data = resp.body['data']
    assert data['projected_temp'] == 28
    assert data['wbgt'] == 27.6
    assert data['productivity_loss_pct'] == 13
    assert data['economic_loss_daily'] == 195
    assert data['malaria_risk'] == 'Low'
    assert data['dengue_risk'] == 'High'


def test_unknown_endpoint():
    assert handle_request('simulate-volcano', 'POST', {}).status == 404


def test_parse_finance_response_unwraps_list_and_nesting():
    parsed = parse_finance_response([{'financial_analysis': {'roi_pct': 5}, 'monte_carlo_analysis': {'m': 1}}])
    assert parsed['financial_data'] == {'roi_pct': 5}
    assert parsed['monte_carlo_data'] == {'m': 1}

    parsed = parse_finance_response({'data': {'financial_analysis': {'roi_pct': 7}}})
    assert parsed['financial_data'] == {'roi_pct': 7}
    assert parsed['executive_summary'] is None

    flat = {'roi_pct': 9}
    assert parse_finance_response(flat)['financial_data'] == flat


def test_proxy_response_ok():
    assert ProxyResponse(204).ok
    assert not ProxyResponse(400).ok
