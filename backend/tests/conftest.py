import os
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from bizledger.core.config import get_settings
from bizledger.utils.rate_limit import rate_limiter

TEST_JWT_SECRET = "test-secret-for-bizledger-tests-only"


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    # Tests patch env vars; never leak a cached Settings instance between them.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    rate_limiter.reset()
    yield
    rate_limiter.reset()


def make_token(sub: str, *, secret: str = TEST_JWT_SECRET, expires_in: int = 3600, **claims) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
        **claims,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def auth_env():
    previous = os.environ.get("AUTH_JWT_SECRET")
    os.environ["AUTH_JWT_SECRET"] = TEST_JWT_SECRET
    get_settings.cache_clear()
    yield TEST_JWT_SECRET
    if previous is None:
        os.environ.pop("AUTH_JWT_SECRET", None)
    else:
        os.environ["AUTH_JWT_SECRET"] = previous
    get_settings.cache_clear()
