"""Sortable prefixed identifiers (``<kind>-<ulid>``) for orchestration entities."""

from __future__ import annotations

import secrets
import time
from collections.abc import Callable
from enum import StrEnum
from typing import Final

CROCKFORD_ALPHABET: Final[str] = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ULID_LENGTH: Final[int] = 26
MAX_TIMESTAMP_MS: Final[int] = (1 << 48) - 1
_RANDOM_BITS: Final[int] = 80
_RANDOM_BYTES: Final[int] = _RANDOM_BITS // 8

Entropy = Callable[[int], bytes]


class IdKind(StrEnum):
    RUN = "run"
    WORKER = "wrk"
    MESSAGE = "msg"
    CORRELATION = "cor"
    SESSION = "ses"


def generate_ulid(*, timestamp_ms: int | None = None, entropy: Entropy | None = None) -> str:
    """Encode 48 bits of milliseconds plus 80 random bits as 26 Crockford characters."""
    millis = time.time_ns() // 1_000_000 if timestamp_ms is None else timestamp_ms
    if isinstance(millis, bool) or not isinstance(millis, int):
        raise ValueError(f"timestamp_ms must be an int, got {type(millis).__name__}")
    if not 0 <= millis <= MAX_TIMESTAMP_MS:
        raise ValueError(f"timestamp_ms must be within 0..{MAX_TIMESTAMP_MS}, got {millis}")

    noise = bytes((entropy or secrets.token_bytes)(_RANDOM_BYTES))
    if len(noise) != _RANDOM_BYTES:
        raise ValueError(f"entropy source must return exactly {_RANDOM_BYTES} bytes")

    value = (millis << _RANDOM_BITS) | int.from_bytes(noise, "big")
    shifts = range(5 * (ULID_LENGTH - 1), -1, -5)
    return "".join(CROCKFORD_ALPHABET[(value >> shift) & 0x1F] for shift in shifts)


def decode_ulid(text: str) -> int:
    """Return the 128-bit value of ``text``; case-insensitive, ``ValueError`` when malformed."""
    if not isinstance(text, str):
        raise ValueError(f"ulid must be a string, got {type(text).__name__}")
    if len(text) != ULID_LENGTH:
        raise ValueError(f"ulid length must be {ULID_LENGTH}, got {len(text)}")
    value = 0
    for position, char in enumerate(text.upper()):
        digit = CROCKFORD_ALPHABET.find(char)
        if digit < 0:
            raise ValueError(f"invalid ULID character {char!r} at index {position}")
        value = (value << 5) | digit
    if value >> 128:
        raise ValueError("ulid does not fit in 128 bits")
    return value


def ulid_timestamp_ms(text: str) -> int:
    return decode_ulid(text) >> _RANDOM_BITS


def new_id(
    kind: IdKind,
    *,
    timestamp_ms: int | None = None,
    entropy: Entropy | None = None,
) -> str:
    return f"{kind.value}-{generate_ulid(timestamp_ms=timestamp_ms, entropy=entropy)}"


def check_id(value: str, kind: IdKind) -> None:
    """Raise ``ValueError`` unless ``value`` is a well-formed id of ``kind``."""
    lead = f"{kind.value}-"
    if not isinstance(value, str) or not value.startswith(lead):
        raise ValueError(f"expected an id starting with {lead!r}, got {value!r}")
    try:
        decode_ulid(value[len(lead) :])
    except ValueError as exc:
        raise ValueError(f"invalid {kind.name.lower()} id {value!r}: {exc}") from exc


def short_id(value: str) -> str:
    """Last 8 characters, enough to tell live workers apart in log lines."""
    if not isinstance(value, str) or len(value) < 8:
        raise ValueError(f"id must be a string of at least 8 characters, got {value!r}")
    return value[-8:]


def generate_run_id() -> str:
    return new_id(IdKind.RUN)


def generate_worker_id() -> str:
    return new_id(IdKind.WORKER)


def generate_message_id() -> str:
    return new_id(IdKind.MESSAGE)


def generate_correlation_id() -> str:
    return new_id(IdKind.CORRELATION)


def generate_session_id() -> str:
    return new_id(IdKind.SESSION)


__all__ = [
    "CROCKFORD_ALPHABET",
    "Entropy",
    "IdKind",
    "MAX_TIMESTAMP_MS",
    "ULID_LENGTH",
    "check_id",
    "decode_ulid",
    "generate_correlation_id",
    "generate_message_id",
    "generate_run_id",
    "generate_session_id",
    "generate_ulid",
    "generate_worker_id",
    "new_id",
    "short_id",
    "ulid_timestamp_ms",
]
