from unittest.mock import MagicMock

import pytest
import requests

from resilience import config
from resilience.utils import FinancialAssumptions, project_from_dict, SeaWallProject, DrainageProject
from resilience.upstream import (fetch_cba_series, analyze_portfolio, map_portfolio_analysis_result,
                                 find_closest_atlas_item, haversine_km)


def _session(payload=None, error=None):
    resp = MagicMock()
    resp.json.return_value = payload
    if error is not None:
        resp.raise_for_status.side_effect = error
    session = MagicMock()
    session.post.return_value = resp
    return session


def test_map_portfolio_summary_from_snake_case():
    mapped = map_portfolio_analysis_result({
        'asset_results': [{'lat': 1, 'lon': 2}],
        'portfolio_summary': {'total_portfolio_value': 1000, 'total_value_at_risk': 150,
                              'average_resilience_score': 62},
    })
    summary = mapped['portfolio_summary']
    assert summary['totalPortfolioValue'] == 1000
    assert summary['totalValueAtRisk'] == 150
    assert summary['averageResilienceScore'] == 62
    assert summary['total_portfolio_value'] == 1000
    assert mapped['asset_results'] == [{'lat': 1, 'lon': 2}]


def test_map_portfolio_summary_defaults_to_zero():
    summary = map_portfolio_analysis_result(None)['portfolio_summary']
    assert summary == {'totalPortfolioValue': 0, 'totalValueAtRisk': 0, 'averageResilienceScore': 0}
    summary = map_portfolio_analysis_result({'portfolio_summary': {'totalValueAtRisk': 5}})['portfolio_summary']
    assert summary['totalValueAtRisk'] == 5


def test_analyze_portfolio_posts_assets():
    session = _session({'portfolio_summary': {'total_portfolio_value': 10}})
    result = analyze_portfolio([{'lat': 1, 'lon': 2, 'value': 10}], session=session)
    assert result['portfolio_summary']['totalPortfolioValue'] == 10
    assert session.post.call_args.args[0].endswith('/api/v1/analyze-portfolio')
    assert session.post.call_args.kwargs['json'] == {'assets': [{'lat': 1, 'lon': 2, 'value': 10}]}


def test_analyze_portfolio_raises_on_failure():
    with pytest.raises(requests.HTTPError):
        analyze_portfolio([], session=_session({}, error=requests.HTTPError('500')))


def test_fetch_cba_series():
    series = [{'year': 2025, 'baseline_cost': 10, 'intervention_cost': 4}]
    session = _session({'time_series': series})
    assert fetch_cba_series(FinancialAssumptions(), 1.0, 2.0, session=session) == series
    url = session.post.call_args.args[0]
    body = session.post.call_args.kwargs['json']
    assert url == f"{config.API_BASE_URL.rstrip('/')}/api/v1/finance/cba-series"
    assert body['capex_budget'] == 500_000
    assert body['asset_lifespan_years'] == 30
    assert (body['lat'], body['lon']) == (1.0, 2.0)

    nested = _session({'data': {'time_series': series}})
    assert fetch_cba_series(FinancialAssumptions(), session=nested) == series


def test_fetch_cba_series_is_empty_when_unavailable():
    assert fetch_cba_series(FinancialAssumptions(), session=_session({}, error=requests.HTTPError())) == []
    assert fetch_cba_series(FinancialAssumptions(), session=_session({})) == []


def test_closest_atlas_item_filters_by_project_type():
    items = [
        {'id': 'a', 'project_type': 'mangrove', 'location': {'lat': 10, 'lon': 100}},
        {'id': 'b', 'project_type': 'mangrove', 'location': {'lat': 14, 'lon': 100.6}},
        {'id': 'c', 'project_type': 'sea_wall', 'location': {'lat': 13.7, 'lon': 100.5}},
    ]
    assert find_closest_atlas_item(items, 13.75, 100.5, 'mangrove')['id'] == 'b'
    assert find_closest_atlas_item(items, 13.75, 100.5, 'sea_wall')['id'] == 'c'
    assert find_closest_atlas_item(items, 13.75, 100.5, 'drainage') is None


def test_haversine_london_paris():
    assert haversine_km(51.5074, -0.1278, 48.8566, 2.3522) == pytest.approx(343.5, abs=2)


def test_project_from_dict_variants():
    wall = project_from_dict({'type': 'sea_wall', 'capex': 1000, 'opex': 10, 'heightIncrease': 2})
    assert wall == SeaWallProject(capex=1000, opex=10, height_increase=2)
    assert wall.type == 'sea_wall'
    drain = project_from_dict({'type': 'drainage', 'capex': 1000, 'opex': 10})
    assert drain.type == 'drainage'
    assert drain.capacity_upgrade == 30
    assert isinstance(drain, DrainageProject)
    with pytest.raises(ValueError):
        project_from_dict({'type': 'levee'})


def test_assumptions_payload_includes_optional_premium():
    assert 'insurance_premium_annual' not in FinancialAssumptions().as_payload()
    assert FinancialAssumptions(insurance_premium_annual=1200).as_payload()['insurance_premium_annual'] == 1200
