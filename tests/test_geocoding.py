import threading
import time
from unittest.mock import MagicMock

import pytest
import requests

from resilience.utils import GeocoderResult
from resilience.geocoding import MapboxGeocoder, DebouncedGeocoder, FORWARD_TYPES

FEATURES = {'features': [
    {'id': 'place.1', 'place_name': 'Bangkok, Thailand', 'center': [100.5, 13.75]},
    {'id': 'place.2', 'place_name': 'Bang Na, Thailand', 'center': [100.6, 13.66]},
]}


def _session(payload=None, ok=True):
    resp = MagicMock()
    resp.ok = ok
    resp.json.return_value = payload
    session = MagicMock()
    session.get.return_value = resp
    return session


def test_forward_ignores_short_queries():
    session = _session()
    assert MapboxGeocoder('tok', session=session).forward('Ba') == []
    session.get.assert_not_called()


def test_forward_parses_features():
    session = _session(FEATURES)
    results = MapboxGeocoder('tok', session=session).forward('Bang kok')
    assert results[0] == GeocoderResult(id='place.1', place_name='Bangkok, Thailand', lat=13.75, lng=100.5)
    assert len(results) == 2
    url = session.get.call_args.args[0]
    params = session.get.call_args.kwargs['params']
    assert url.endswith('/Bang%20kok.json')
    assert params == {'access_token': 'tok', 'limit': 5, 'types': FORWARD_TYPES}


def test_forward_raises_on_http_error():
    session = _session(FEATURES)
    session.get.return_value.raise_for_status.side_effect = requests.HTTPError('401')
    with pytest.raises(requests.HTTPError):
        MapboxGeocoder('tok', session=session).forward('Bangkok')


def test_reverse_returns_first_place_name():
    session = _session(FEATURES)
    assert MapboxGeocoder('tok', session=session).reverse(13.75, 100.5) == 'Bangkok, Thailand'
    assert session.get.call_args.args[0].endswith('/100.5,13.75.json')


def test_reverse_returns_none_on_any_failure():
    assert MapboxGeocoder('tok', session=_session(FEATURES, ok=False)).reverse(0, 0) is None
    assert MapboxGeocoder('tok', session=_session({'features': []})).reverse(0, 0) is None
    session = MagicMock()
    session.get.side_effect = requests.Timeout()
    assert MapboxGeocoder('tok', session=session).reverse(0, 0) is None


class FakeGeocoder:
    def __init__(self, block_on=None):
        self.queries = []
        self.block_on = block_on
        self.started = threading.Event()
        self.release = threading.Event()

    def forward(self, query):
        self.queries.append(query)
        if query == self.block_on:
            self.started.set()
            self.release.wait(2)
        return [GeocoderResult(id=query, place_name=query, lat=0.0, lng=0.0)]


def test_debounce_only_searches_last_keystroke():
    geo = FakeGeocoder()
    done = threading.Event()
    delivered = []

    def on_results(results):
        delivered.append([r.place_name for r in results])
        done.set()

    d = DebouncedGeocoder(geo, on_results, delay=0.05)
    for q in ('Lon', 'Lond', 'London'):
        d.search(q)
    assert done.wait(2)
    time.sleep(0.1)
    assert geo.queries == ['London']
    assert delivered == [['London']]
    assert [r.place_name for r in d.suggestions] == ['London']
    assert not d.is_searching


def test_new_search_supersedes_in_flight_request():
    geo = FakeGeocoder(block_on='Paris')
    berlin = threading.Event()
    delivered = []

    def on_results(results):
        delivered.append(results[0].place_name)
        if results[0].place_name == 'Berlin':
            berlin.set()

    d = DebouncedGeocoder(geo, on_results, delay=0.01)
    d.search('Paris')
    assert geo.started.wait(2)
    assert d.is_searching
    d.search('Berlin')
    assert berlin.wait(2)
    geo.release.set()
    time.sleep(0.1)
    assert delivered == ['Berlin']
    assert d.suggestions[0].place_name == 'Berlin'


def test_clear_cancels_pending_search():
    geo = FakeGeocoder()
    d = DebouncedGeocoder(geo, delay=0.2)
    d.search('London')
    d.clear()
    time.sleep(0.4)
    assert geo.queries == []
    assert d.suggestions == []


def test_short_query_clears_suggestions_immediately():
    delivered = []
    d = DebouncedGeocoder(FakeGeocoder(), delivered.append, delay=0.01)
    d.search('Lo')
    assert delivered == [[]]


def test_failed_lookup_yields_no_suggestions():
    geo = MagicMock()
    geo.forward.side_effect = requests.ConnectionError()
    done = threading.Event()
    delivered = []

    def on_results(results):
        delivered.append(results)
        done.set()

    DebouncedGeocoder(geo, on_results, delay=0.01).search('London')
    assert done.wait(2)
    assert delivered == [[]]


def test_geocoder_result_is_a_frozen_value():
    place = GeocoderResult(id='place.1', place_name='Bangkok, Thailand', lat=13.75, lng=100.5)
    assert place == GeocoderResult('place.1', 'Bangkok, Thailand', 13.75, 100.5)
    with pytest.raises(AttributeError):
        place.lat = 0.0
