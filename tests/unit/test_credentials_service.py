"""Unit tests for CredentialService.hash / verify."""

import asyncio
import logging
import re
from typing import Any

import pytest

from config.settings import Settings
from src.dc_common.errors import HashingFailedError, HashingUnavailableError
from src.dc_credentials.backends import (
    Argon2idBackend,
    BackendLoadError,
    Pbkdf2Backend,
    ScryptBackend,
)
from src.dc_credentials.initializer import InitState
from src.dc_credentials.retry import RetryPolicy
from src.dc_credentials.service import CredentialService, create_credential_service

SERVICE_LOGGER = "src.dc_credentials.service"
HEX_RECORD = re.compile(r"^[0-9a-f]{32}:[0-9a-f]{128}$")


class _CountingBackend(Pbkdf2Backend):
    """PBKDF2 that counts loads and can be told to fail them."""

    def __init__(self, load_failures: int = 0) -> None:
        super().__init__(iterations=1000)
        self.load_calls = 0
        self.load_failures = load_failures

    def load(self) -> Any:
        self.load_calls += 1
        if self.load_calls <= self.load_failures:
            raise BackendLoadError("module fetch failed")
        return super().load()


class TestProperties:
    async def test_round_trip(self, any_service: CredentialService) -> None:
        for password in ("Str0ng!Pass", "a", "pässwörd✓", " spaces inside "):
            record = await any_service.hash(password)
            assert await any_service.verify(password, record) is True

    async def test_salt_uniqueness(self, any_service: CredentialService) -> None:
        first = await any_service.hash("Str0ng!Pass")
        second = await any_service.hash("Str0ng!Pass")
        assert first != second
        assert await any_service.verify("Str0ng!Pass", first)
        assert await any_service.verify("Str0ng!Pass", second)

    async def test_negative_verification(self, any_service: CredentialService) -> None:
        record = await any_service.hash("Str0ng!Pass")
        for other in ("wrong", "str0ng!pass", "Str0ng!Pass ", ""):
            assert await any_service.verify(other, record) is False

    async def test_malformed_record_returns_false(self, any_service: CredentialService) -> None:
        assert await any_service.verify("Str0ng!Pass", "not-a-valid-record") is False


class TestConcreteScenario:
    async def test_scrypt_default_parameters(self) -> None:
        service = CredentialService(ScryptBackend())
        record = await service.hash("Str0ng!Pass")
        assert HEX_RECORD.match(record)
        assert await service.verify("Str0ng!Pass", record) is True
        assert await service.verify("wrong", record) is False

    async def test_argon2id_encoded_form(self, argon2_service: CredentialService) -> None:
        record = await argon2_service.hash("Str0ng!Pass")
        assert record.startswith("$argon2id$v=19$")
        assert await argon2_service.verify("Str0ng!Pass", record) is True
        assert await argon2_service.verify("wrong", record) is False


class TestLogging:
    async def test_malformed_logged_distinctly_from_mismatch(
        self, pbkdf2_service: CredentialService, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.DEBUG, logger=SERVICE_LOGGER)
        record = await pbkdf2_service.hash("Str0ng!Pass")

        caplog.clear()
        assert await pbkdf2_service.verify("wrong", record) is False
        mismatch = [r for r in caplog.records if r.name == SERVICE_LOGGER]
        assert [r.levelno for r in mismatch] == [logging.DEBUG]
        assert "mismatch" in mismatch[0].getMessage()

        caplog.clear()
        assert await pbkdf2_service.verify("Str0ng!Pass", "not-a-valid-record") is False
        malformed = [r for r in caplog.records if r.name == SERVICE_LOGGER]
        assert [r.levelno for r in malformed] == [logging.WARNING]
        assert "Malformed" in malformed[0].getMessage()

    @pytest.mark.parametrize(
        "record",
        [
            "$argon2id$",
            "$argon2id$v=19$m=1024,t=1,p=1$garbage",
            "$argon2id$v=19$m=1024,t=1,p=1$c2FsdHNhbHRzYWx0$",
        ],
    )
    async def test_corrupt_argon2_record_logged_as_malformed(
        self,
        argon2_service: CredentialService,
        caplog: pytest.LogCaptureFixture,
        record: str,
    ) -> None:
        caplog.set_level(logging.DEBUG, logger=SERVICE_LOGGER)
        assert await argon2_service.verify("Str0ng!Pass", record) is False
        logged = [(r.levelno, r.getMessage()) for r in caplog.records if r.name == SERVICE_LOGGER]
        assert len(logged) == 1
        assert logged[0][0] == logging.WARNING
        assert "Malformed" in logged[0][1]

    async def test_plaintext_never_logged(
        self, pbkdf2_service: CredentialService, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.DEBUG)
        record = await pbkdf2_service.hash("Secr3t!Value")
        await pbkdf2_service.verify("Other!Value9", record)
        await pbkdf2_service.verify("Secr3t!Value", "garbage")
        assert "Secr3t!Value" not in caplog.text
        assert "Other!Value9" not in caplog.text
        assert record not in caplog.text


class TestInitialization:
    async def test_concurrent_first_calls_initialize_once(self) -> None:
        backend = _CountingBackend()
        service = CredentialService(backend)

        records = await asyncio.gather(*(service.hash(f"pw-{i}") for i in range(10)))

        assert backend.load_calls == 1
        assert service.initializer.successes == 1
        assert len(set(records)) == 10
        checks = await asyncio.gather(
            *(service.verify(f"pw-{i}", rec) for i, rec in enumerate(records))
        )
        assert all(checks)
        assert backend.load_calls == 1

    async def test_recovers_within_retry_budget(self) -> None:
        backend = _CountingBackend(load_failures=2)
        service = CredentialService(backend, policy=RetryPolicy(attempts=3, base_delay=0.0))
        record = await service.hash("Str0ng!Pass")
        assert await service.verify("Str0ng!Pass", record)
        assert backend.load_calls == 3
        assert service.initializer.state is InitState.READY

    async def test_retry_exhaustion_raises_unavailable(self) -> None:
        backend = _CountingBackend(load_failures=100)
        service = CredentialService(backend, policy=RetryPolicy(attempts=3, base_delay=0.0))

        with pytest.raises(HashingUnavailableError):
            await service.hash("Str0ng!Pass")
        assert backend.load_calls == 3

        with pytest.raises(HashingUnavailableError):
            await service.verify("Str0ng!Pass", "00:00")
        assert backend.load_calls == 3

    async def test_unavailable_argon2_sources(self) -> None:
        def importer(name: str) -> Any:
            raise ImportError(name)

        service = CredentialService(
            Argon2idBackend(sources=("argon2",), importer=importer),
            policy=RetryPolicy(attempts=2, base_delay=0.0),
        )
        with pytest.raises(HashingUnavailableError):
            await service.hash("Str0ng!Pass")

    async def test_reset_through_injected_guard(self) -> None:
        backend = _CountingBackend()
        service = CredentialService(backend)
        await service.hash("a")
        service.initializer.reset()
        await service.hash("b")
        assert backend.load_calls == 2


class TestFailures:
    async def test_derivation_error_becomes_hashing_failed(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        class _Broken(Pbkdf2Backend):
            def hash(self, handle: Any, password: str) -> str:
                raise RuntimeError("invalid parameter combination")

        service = CredentialService(_Broken(iterations=1000))
        with pytest.raises(HashingFailedError) as info:
            await service.hash("Str0ng!Pass")
        assert info.value.http_status == 500
        assert "invalid parameter" not in info.value.message
        assert any(r.levelno == logging.ERROR for r in caplog.records)

    async def test_verify_error_becomes_hashing_failed(self) -> None:
        class _Broken(Pbkdf2Backend):
            def verify(self, handle: Any, password: str, record: str) -> bool:
                raise MemoryError("cannot allocate")

        service = CredentialService(_Broken(iterations=1000))
        with pytest.raises(HashingFailedError):
            await service.verify("Str0ng!Pass", "00:00")


class TestFactory:
    async def test_create_from_settings(self) -> None:
        service = create_credential_service(
            Settings(
                CREDENTIALS_BACKEND="scrypt",
                CREDENTIALS_INIT_ATTEMPTS=5,
                CREDENTIALS_INIT_BACKOFF="linear",
            )
        )
        assert service.backend.name == "scrypt"
        record = await service.hash("Str0ng!Pass")
        assert HEX_RECORD.match(record)
