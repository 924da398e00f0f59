import logging
import threading
from typing import Callable, List, Optional
from urllib.parse import quote

import requests

from . import config
from .utils import GeocoderResult

logger = logging.getLogger(__name__)

GEOCODING_URL = 'https://api.mapbox.com/geocoding/v5/mapbox.places'
FORWARD_TYPES = 'place,locality,address,poi,neighborhood,district,region,country'
REVERSE_TYPES = 'place,locality,region,country'
MIN_QUERY_LENGTH = 3


class MapboxGeocoder:
    def __init__(self, token: Optional[str] = None, session=None, timeout: Optional[float] = None):
        self.token = config.MAPBOX_API_KEY if token is None else token
        self.session = session or requests.Session()
        self.timeout = timeout or config.REQUEST_TIMEOUT

    def forward(self, query: str, limit: int = 5) -> List[GeocoderResult]:
        """Place suggestions for a free-text query. Raises on HTTP failure."""
        if not query or len(query) < MIN_QUERY_LENGTH:
            return []
        resp = self.session.get(
            f'{GEOCODING_URL}/{quote(query, safe="")}.json',
            params={'access_token': self.token, 'limit': limit, 'types': FORWARD_TYPES},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        features = resp.json().get('features') or []
        return [GeocoderResult(id=f['id'], place_name=f['place_name'], lat=f['center'][1], lng=f['center'][0])
                for f in features]

    def reverse(self, lat: float, lng: float) -> Optional[str]:
        """Place name at a coordinate, or None when the lookup fails for any reason."""
        try:
            resp = self.session.get(
                f'{GEOCODING_URL}/{lng},{lat}.json',
                params={'access_token': self.token, 'limit': 1, 'types': REVERSE_TYPES},
                timeout=self.timeout,
            )
            if not resp.ok:
                return None
            features = resp.json().get('features') or []
        except (requests.RequestException, ValueError) as e:
            logger.warning('reverse geocode failed for %s,%s: %s', lat, lng, e)
            return None
        if not features:
            return None
        return features[0].get('place_name')


class DebouncedGeocoder:
    """Type-ahead search with at most one live request.

    Every call to `search` cancels the pending delay and supersedes any request
    already running; a superseded request's results are dropped.
    """

    def __init__(self, geocoder: MapboxGeocoder,
                 on_results: Optional[Callable[[List[GeocoderResult]], None]] = None,
                 delay: float = config.GEOCODE_DEBOUNCE_SECONDS):
        self.geocoder = geocoder
        self.on_results = on_results
        self.delay = delay
        self.suggestions: List[GeocoderResult] = []
        self._lock = threading.Lock()
        self._timer = None
        self._generation = 0
        self._in_flight = None

    @property
    def is_searching(self) -> bool:
        return self._in_flight is not None

    def _supersede(self):
        # caller holds the lock
        self._generation += 1
        self._in_flight = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        return self._generation

    def search(self, query: str):
        with self._lock:
            gen = self._supersede()
            if not query or len(query) < MIN_QUERY_LENGTH:
                self.suggestions = []
                short = True
            else:
                self._timer = threading.Timer(self.delay, self._run, args=(query, gen))
                self._timer.daemon = True
                self._timer.start()
                short = False
        if short and self.on_results:
            self.on_results([])

    def clear(self):
        with self._lock:
            self._supersede()
            self.suggestions = []

    def _run(self, query: str, gen: int):
        with self._lock:
            if gen != self._generation:
                return
            self._timer = None
            self._in_flight = gen

        try:
            results = self.geocoder.forward(query)
        except (requests.RequestException, ValueError, KeyError, IndexError) as e:
            logger.warning('geocoding %r failed: %s', query, e)
            results = []

        with self._lock:
            if gen != self._generation:
                logger.debug('dropping superseded results for %r', query)
                return
            self._in_flight = None
            self.suggestions = results
        if self.on_results:
            self.on_results(results)
