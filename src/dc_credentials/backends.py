"""Key-derivation backends behind one interface.

Each backend resolves its primitive in ``load()`` (run once per process by
the Initializer) and then hashes/verifies with the returned handle. All
methods here are blocking; the service runs them in worker threads.

Record formats:
  argon2id  $argon2id$v=19$m=...,t=...,p=...$<salt>$<tag>   (self-describing)
  bcrypt    $2b$<cost>$<salt+hash>                          (self-describing)
  scrypt    hex(salt):hex(key)                              (fixed params)
  pbkdf2    hex(salt):hex(key)                              (fixed params)
"""

import hashlib
import hmac
import importlib
import logging
import re
import secrets
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from types import ModuleType
from typing import Any, Protocol

from src.dc_common.errors import MalformedRecordError
from src.dc_credentials.records import (
    KEY_LENGTH,
    SALT_LENGTH,
    HexRecord,
    parse_hex_record,
)

logger = logging.getLogger(__name__)

Importer = Callable[[str], ModuleType]

_SELF_TEST_PASSWORD = "self-test"


class BackendLoadError(Exception):
    """The backend primitive could not be loaded from any source."""


class CredentialBackend(Protocol):
    name: str

    def load(self) -> Any: ...

    def hash(self, handle: Any, password: str) -> str: ...

    def verify(self, handle: Any, password: str, record: str) -> bool: ...


# ---------------------------------------------------------------------------
# Argon2id (argon2-cffi)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Argon2Params:
    time_cost: int = 3
    memory_cost: int = 65536  # KiB
    parallelism: int = 1
    hash_len: int = 32
    salt_len: int = 16


@dataclass(frozen=True)
class _Argon2Handle:
    hasher: Any
    exceptions: ModuleType


class Argon2idBackend:
    """Argon2id through a lazily imported binding module.

    ``sources`` are module names tried in priority order; the first one
    that imports and passes a hash/verify self-test wins.
    """

    name = "argon2id"

    def __init__(
        self,
        params: Argon2Params | None = None,
        sources: Sequence[str] = ("argon2",),
        importer: Importer = importlib.import_module,
    ) -> None:
        if not sources:
            raise ValueError("at least one argon2 module source is required")
        self.params = params or Argon2Params()
        self.sources = tuple(sources)
        self._import = importer

    def load(self) -> _Argon2Handle:
        failures: list[str] = []
        for source in self.sources:
            try:
                handle = self._load_from(source)
            except Exception as exc:
                logger.warning("argon2 source %r unavailable: %r", source, exc)
                failures.append(f"{source}: {exc!r}")
                continue
            logger.info("argon2 loaded from source %r", source)
            return handle
        raise BackendLoadError("; ".join(failures))

    def _load_from(self, source: str) -> _Argon2Handle:
        module = self._import(source)
        exceptions = self._import(f"{source}.exceptions")
        hasher = module.PasswordHasher(
            time_cost=self.params.time_cost,
            memory_cost=self.params.memory_cost,
            parallelism=self.params.parallelism,
            hash_len=self.params.hash_len,
            salt_len=self.params.salt_len,
            type=module.Type.ID,
        )
        if not hasher.verify(hasher.hash(_SELF_TEST_PASSWORD), _SELF_TEST_PASSWORD):
            raise BackendLoadError(f"self-test failed for {source!r}")
        return _Argon2Handle(hasher=hasher, exceptions=exceptions)

    def hash(self, handle: _Argon2Handle, password: str) -> str:
        return handle.hasher.hash(password)

    def verify(self, handle: _Argon2Handle, password: str, record: str) -> bool:
        if not isinstance(record, str) or not record.isascii():
            raise MalformedRecordError("record is not an ascii string")
        if not record.startswith("$argon2"):
            raise MalformedRecordError("not an argon2 encoded hash")
        exc = handle.exceptions
        try:
            return handle.hasher.verify(record, password)
        except exc.VerifyMismatchError:
            return False
        except exc.InvalidHashError as e:
            raise MalformedRecordError("unparsable argon2 encoding") from e
        except exc.VerificationError as e:
            # argon2-cffi reports undecodable salt or tag this way
            raise MalformedRecordError("corrupt argon2 encoding") from e


# ---------------------------------------------------------------------------
# Fixed-parameter hex backends (hashlib)
# ---------------------------------------------------------------------------


class _HexRecordBackend(ABC):
    """Shared salt:key handling; subclasses supply the primitive."""

    name = "hex"
    salt_length = SALT_LENGTH
    key_length = KEY_LENGTH

    def load(self) -> Callable[[bytes, bytes], bytes]:
        derive = self._resolve()
        probe = derive(_SELF_TEST_PASSWORD.encode("utf-8"), bytes(self.salt_length))
        if len(probe) != self.key_length:
            raise BackendLoadError(f"{self.name} produced {len(probe)} bytes")
        return derive

    @abstractmethod
    def _resolve(self) -> Callable[[bytes, bytes], bytes]: ...

    def hash(self, handle: Callable[[bytes, bytes], bytes], password: str) -> str:
        salt = secrets.token_bytes(self.salt_length)
        key = handle(password.encode("utf-8"), salt)
        return HexRecord(salt=salt, key=key).encode()

    def verify(
        self, handle: Callable[[bytes, bytes], bytes], password: str, record: str
    ) -> bool:
        parsed = parse_hex_record(record, self.salt_length, self.key_length)
        derived = handle(password.encode("utf-8"), parsed.salt)
        return hmac.compare_digest(derived, parsed.key)


class ScryptBackend(_HexRecordBackend):
    name = "scrypt"

    def __init__(self, n: int = 16384, r: int = 8, p: int = 1) -> None:
        self.n = n
        self.r = r
        self.p = p

    def _resolve(self) -> Callable[[bytes, bytes], bytes]:
        scrypt = getattr(hashlib, "scrypt", None)
        if scrypt is None:
            raise BackendLoadError("hashlib.scrypt requires OpenSSL 1.1+")
        # 128 * r * n bytes of working memory, plus headroom
        maxmem = 256 * self.r * self.n * self.p

        def derive(password: bytes, salt: bytes) -> bytes:
            return scrypt(
                password,
                salt=salt,
                n=self.n,
                r=self.r,
                p=self.p,
                maxmem=maxmem,
                dklen=self.key_length,
            )

        return derive


class Pbkdf2Backend(_HexRecordBackend):
    name = "pbkdf2"

    def __init__(self, iterations: int = 310_000, digest: str = "sha512") -> None:
        self.iterations = iterations
        self.digest = digest

    def _resolve(self) -> Callable[[bytes, bytes], bytes]:
        if self.digest not in hashlib.algorithms_available:
            raise BackendLoadError(f"digest {self.digest!r} not available")

        def derive(password: bytes, salt: bytes) -> bytes:
            return hashlib.pbkdf2_hmac(
                self.digest, password, salt, self.iterations, dklen=self.key_length
            )

        return derive


# ---------------------------------------------------------------------------
# bcrypt
# ---------------------------------------------------------------------------

_BCRYPT_RECORD = re.compile(r"^\$2[abxy]\$\d{2}\$[./A-Za-z0-9]{53}$")
_BCRYPT_MAX_BYTES = 72


class BcryptBackend:
    name = "bcrypt"

    def __init__(self, rounds: int = 12, importer: Importer = importlib.import_module) -> None:
        self.rounds = rounds
        self._import = importer

    def load(self) -> ModuleType:
        module = self._import("bcrypt")
        probe = _SELF_TEST_PASSWORD.encode("utf-8")
        if not module.checkpw(probe, module.hashpw(probe, module.gensalt(rounds=4))):
            raise BackendLoadError("bcrypt self-test failed")
        return module

    @staticmethod
    def _secret(password: str) -> bytes:
        # bcrypt only reads the first 72 bytes; newer releases reject longer input
        return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]

    def hash(self, handle: ModuleType, password: str) -> str:
        hashed: bytes = handle.hashpw(self._secret(password), handle.gensalt(rounds=self.rounds))
        return hashed.decode("utf-8")

    def verify(self, handle: ModuleType, password: str, record: str) -> bool:
        if not isinstance(record, str) or not _BCRYPT_RECORD.match(record):
            raise MalformedRecordError("not a bcrypt hash")
        try:
            return bool(handle.checkpw(self._secret(password), record.encode("utf-8")))
        except ValueError as e:
            raise MalformedRecordError("unparsable bcrypt hash") from e


def build_backend(cfg: Any) -> CredentialBackend:
    """Pick the backend named by ``cfg.CREDENTIALS_BACKEND``."""
    name = cfg.CREDENTIALS_BACKEND
    if name == "argon2id":
        return Argon2idBackend(
            params=Argon2Params(
                time_cost=cfg.ARGON2_TIME_COST,
                memory_cost=cfg.ARGON2_MEMORY_COST,
                parallelism=cfg.ARGON2_PARALLELISM,
                hash_len=cfg.ARGON2_HASH_LEN,
                salt_len=cfg.ARGON2_SALT_LEN,
            ),
            sources=cfg.CREDENTIALS_ARGON2_SOURCES,
        )
    if name == "scrypt":
        return ScryptBackend()
    if name == "pbkdf2":
        return Pbkdf2Backend()
    if name == "bcrypt":
        return BcryptBackend(rounds=cfg.BCRYPT_ROUNDS)
    raise ValueError(f"Unknown credentials backend: {name!r}")
