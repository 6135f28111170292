# Root conftest.py - MUST be at project root to load .env before test collection.
# Loading first makes AGGREGATOR_* settings visible when backend.config
# defaults are evaluated during collection.
from dotenv import load_dotenv
load_dotenv()

# Fixtures from tests/conftest.py are discovered automatically since tests/
# is a subdirectory. Do NOT use pytest_plugins here.
