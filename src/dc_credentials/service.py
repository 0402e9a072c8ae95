"""Credential hashing service: ``hash(password)`` and ``verify(password, record)``.

The backend is fixed at construction time. Initialization goes through an
injectable Initializer so tests can reset or replace it. Derivation runs in
worker threads to keep the event loop responsive.

Only HashingUnavailableError and HashingFailedError leave this module;
malformed records turn into ``False`` with a WARNING log line that is
distinct from the DEBUG line for an ordinary mismatch.
"""

import asyncio
import logging
from typing import Any

from config.settings import settings
from src.dc_common.errors import HashingFailedError, MalformedRecordError
from src.dc_credentials.backends import CredentialBackend, build_backend
from src.dc_credentials.initializer import Initializer
from src.dc_credentials.retry import RetryPolicy

logger = logging.getLogger(__name__)


class CredentialService:
    def __init__(
        self,
        backend: CredentialBackend,
        initializer: Initializer[Any] | None = None,
        policy: RetryPolicy | None = None,
    ) -> None:
        self.backend = backend
        self.initializer: Initializer[Any] = initializer or Initializer(
            self._load_backend, policy, name=backend.name
        )

    async def _load_backend(self) -> Any:
        return await asyncio.to_thread(self.backend.load)

    async def hash(self, password: str) -> str:
        """Derive a fresh salted credential record for ``password``."""
        handle = await self.initializer.get()
        try:
            return await asyncio.to_thread(self.backend.hash, handle, password)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Credential hashing failed: backend=%s", self.backend.name)
            raise HashingFailedError() from None

    async def verify(self, password: str, record: str) -> bool:
        """Return True when ``password`` matches the stored ``record``."""
        handle = await self.initializer.get()
        try:
            matched = await asyncio.to_thread(self.backend.verify, handle, password, record)
        except MalformedRecordError as exc:
            logger.warning(
                "Malformed credential record: backend=%s reason=%s",
                self.backend.name,
                exc.reason,
            )
            return False
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Credential verification failed: backend=%s", self.backend.name)
            raise HashingFailedError() from None
        if not matched:
            logger.debug("Credential mismatch: backend=%s", self.backend.name)
        return matched


def create_credential_service(cfg: Any) -> CredentialService:
    """Wire a service from settings."""
    policy = RetryPolicy(
        attempts=cfg.CREDENTIALS_INIT_ATTEMPTS,
        base_delay=cfg.CREDENTIALS_INIT_BASE_DELAY,
        backoff=cfg.CREDENTIALS_INIT_BACKOFF,
    )
    return CredentialService(build_backend(cfg), policy=policy)


_default_service: CredentialService | None = None


def get_credential_service() -> CredentialService:
    """Process-wide service built from config.settings (FastAPI dependency)."""
    global _default_service  # noqa: PLW0603
    if _default_service is None:
        _default_service = create_credential_service(settings)
    return _default_service
