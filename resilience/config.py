import os
import logging
from dotenv import load_dotenv

load_dotenv()

MAPBOX_API_KEY = os.getenv('MAPBOX_API_KEY', '')

AGRICULTURE_API_URL = os.getenv('AGRICULTURE_API_URL', 'https://primary-production-679e.up.railway.app/webhook/simulate')
COASTAL_API_URL = os.getenv('COASTAL_API_URL', 'https://web-production-8ff9e.up.railway.app/predict-coastal')
FLOOD_API_URL = os.getenv('FLOOD_API_URL', 'https://web-production-8ff9e.up.railway.app/predict-flood')
FINANCE_API_BASE_URL = os.getenv('FINANCE_API_BASE_URL', 'https://web-production-a1a6f3.up.railway.app')
# dashboard-side finance API (CBA series, portfolio analysis)
API_BASE_URL = os.getenv('API_BASE_URL', FINANCE_API_BASE_URL)

REQUEST_TIMEOUT = float(os.getenv('REQUEST_TIMEOUT', '30'))
GEOCODE_DEBOUNCE_SECONDS = 0.3
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')


def configure_logging(level: str = None):
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
