import os
from dotenv import load_dotenv

load_dotenv()

EXTRACTOR_API_URL = os.environ.get("EXTRACTOR_API_URL", "http://localhost:8000").rstrip("/")
POLL_INTERVAL_SEC = float(os.environ.get("POLL_INTERVAL_SEC", "1.0"))
REQUEST_TIMEOUT_SEC = float(os.environ.get("REQUEST_TIMEOUT_SEC", "30.0"))
RECORDS_PER_PAGE = int(os.environ.get("RECORDS_PER_PAGE", "50"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
