"""Root conftest - shared test configuration."""

import os

# Never reach a real inventory server or open a push channel from tests
os.environ.setdefault("INVENTORY_ADDRESS", "inventory.test")
os.environ.setdefault("PUSH_ENABLED", "false")
os.environ.setdefault("PULL_ON_START", "false")
os.environ.setdefault("REQUEST_MAX_RETRIES", "0")
os.environ.setdefault("LOG_FORMAT", "text")
