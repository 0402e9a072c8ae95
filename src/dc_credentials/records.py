"""Fixed-parameter credential record: ``hex(salt):hex(derived_key)``.

Used by the scrypt and pbkdf2 backends, whose cost parameters are
process-wide constants known to the verifier.
"""

import re
from dataclasses import dataclass

from src.dc_common.errors import MalformedRecordError

SALT_LENGTH = 16  # bytes
KEY_LENGTH = 64  # bytes

_HEX_RECORD = re.compile(r"^([0-9a-f]+):([0-9a-f]+)$")


@dataclass(frozen=True)
class HexRecord:
    salt: bytes
    key: bytes

    def encode(self) -> str:
        return f"{self.salt.hex()}:{self.key.hex()}"


def parse_hex_record(
    record: str,
    salt_length: int = SALT_LENGTH,
    key_length: int = KEY_LENGTH,
) -> HexRecord:
    """Split a stored record into salt and key, checking both lengths.

    Raises MalformedRecordError for anything that is not exactly
    ``<salt_length*2 hex>:<key_length*2 hex>`` in lowercase.
    """
    if not isinstance(record, str):
        raise MalformedRecordError("record is not a string")
    match = _HEX_RECORD.match(record)
    if match is None:
        raise MalformedRecordError("expected '<hex salt>:<hex key>'")
    salt_hex, key_hex = match.groups()
    if len(salt_hex) != salt_length * 2:
        raise MalformedRecordError(f"salt must be {salt_length} bytes")
    if len(key_hex) != key_length * 2:
        raise MalformedRecordError(f"key must be {key_length} bytes")
    return HexRecord(salt=bytes.fromhex(salt_hex), key=bytes.fromhex(key_hex))
