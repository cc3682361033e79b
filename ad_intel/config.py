import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Base paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = BASE_DIR / "data"
LOGS_DIR = BASE_DIR / "logs"

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'ad_intel.db'}")

# Providers
APIFY_TOKEN = os.getenv("APIFY_TOKEN")
APIFY_ACTOR_URL = os.getenv(
    "APIFY_ACTOR_URL",
    "https://api.apify.com/v2/acts/curious_coder~facebook-ads-library-scraper/run-sync-get-dataset-items",
)
META_ACCESS_TOKEN = os.getenv("META_ACCESS_TOKEN")
META_GRAPH_BASE_URL = os.getenv("META_GRAPH_BASE_URL", "https://graph.facebook.com")
META_GRAPH_VERSION = os.getenv("META_GRAPH_VERSION", "v21.0")
DEFAULT_SOURCE = os.getenv("DEFAULT_SOURCE", "meta" if META_ACCESS_TOKEN else "apify")
PROVIDER_TIMEOUT = float(os.getenv("PROVIDER_TIMEOUT", 300))

# Fetch limits (per brand, per call)
MAX_CREATIVES_PER_BRAND = int(os.getenv("MAX_CREATIVES_PER_BRAND", 300))
DATE_RANGE_MAX_ITEMS = int(os.getenv("DATE_RANGE_MAX_ITEMS", 5000))
DEFAULT_MAX_ITEMS = int(os.getenv("DEFAULT_MAX_ITEMS", 100))
DEFAULT_LOOKBACK_DAYS = int(os.getenv("DEFAULT_LOOKBACK_DAYS", 30))

# Ingestion
UPSERT_BATCH_SIZE = int(os.getenv("UPSERT_BATCH_SIZE", 200))
BRAND_NAME_MAX_LENGTH = 120

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = Path(os.getenv("LOG_FILE", str(LOGS_DIR / "ad_intel.log")))
