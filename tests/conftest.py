import os
from pathlib import Path

import pytest

from blink.config import get_settings
from blink.db.migrations.runner import run_migrations
from blink.main import app
from blink.ratelimit import TokenBucketLimiter


@pytest.fixture(autouse=True)
def test_env(tmp_path: Path):
    db = tmp_path / "test.db"
    os.environ["APP_DB"] = str(db)
    os.environ["APP_ENV"] = "dev"
    os.environ.pop("ALLOW_LOCALHOST", None)
    os.environ.pop("ALLOW_PRIVATE_IPS", None)
    get_settings.cache_clear()
    run_migrations()
    # the service app is a module singleton; give each test a fresh bucket map
    app.state.execute_limiter = TokenBucketLimiter(rate=1000.0, burst=2000)
    yield
    get_settings.cache_clear()
