"""Shared test fixtures.

KDF backends are built with cheap cost parameters so the suite stays fast;
production parameters come from config.settings.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from src.dc_credentials.backends import (
    Argon2idBackend,
    Argon2Params,
    BcryptBackend,
    Pbkdf2Backend,
    ScryptBackend,
)
from src.dc_credentials.retry import RetryPolicy
from src.dc_credentials.service import CredentialService
from src.main import app

CHEAP_ARGON2 = Argon2Params(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture
def fast_policy() -> RetryPolicy:
    return RetryPolicy(attempts=3, base_delay=0.0)


@pytest.fixture
def argon2_service(fast_policy: RetryPolicy) -> CredentialService:
    return CredentialService(Argon2idBackend(params=CHEAP_ARGON2), policy=fast_policy)


@pytest.fixture
def scrypt_service(fast_policy: RetryPolicy) -> CredentialService:
    return CredentialService(ScryptBackend(n=1024), policy=fast_policy)


@pytest.fixture
def pbkdf2_service(fast_policy: RetryPolicy) -> CredentialService:
    return CredentialService(Pbkdf2Backend(iterations=1000), policy=fast_policy)


@pytest.fixture
def bcrypt_service(fast_policy: RetryPolicy) -> CredentialService:
    return CredentialService(BcryptBackend(rounds=4), policy=fast_policy)


@pytest.fixture(
    params=["argon2_service", "scrypt_service", "pbkdf2_service", "bcrypt_service"]
)
def any_service(request: pytest.FixtureRequest) -> CredentialService:
    """Every backend, for properties that must hold regardless of deployment."""
    return request.getfixturevalue(request.param)


@pytest.fixture
async def client() -> AsyncClient:
    """Async HTTP client for testing FastAPI endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
