from __future__ import annotations

import pytest

from pantheon_orchestrator.domain import ids
from pantheon_orchestrator.domain.ids import IdKind


def _constant(fill: int):
    return lambda size: bytes([fill]) * size


def test_ulids_are_unique_and_sort_by_time() -> None:
    generated = {ids.generate_ulid() for _ in range(1_000)}
    earlier = ids.generate_ulid(timestamp_ms=1_000, entropy=_constant(0xFF))
    later = ids.generate_ulid(timestamp_ms=1_001, entropy=_constant(0x00))

    assert len(generated) == 1_000
    assert earlier < later


def test_ulid_round_trips_timestamp_and_is_case_insensitive() -> None:
    value = ids.generate_ulid(timestamp_ms=ids.MAX_TIMESTAMP_MS, entropy=_constant(0))

    assert len(value) == ids.ULID_LENGTH
    assert set(value) <= set(ids.CROCKFORD_ALPHABET)
    assert ids.ulid_timestamp_ms(value) == ids.MAX_TIMESTAMP_MS
    assert ids.decode_ulid(value.lower()) == ids.decode_ulid(value)


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("0" * 25, "ulid length must be 26"),
        ("U" + "0" * 25, "invalid ULID character 'U' at index 0"),
        ("8" + "0" * 25, "does not fit in 128 bits"),
    ],
)
def test_decode_ulid_rejects_malformed_text(text: str, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        ids.decode_ulid(text)


def test_generate_ulid_validates_inputs() -> None:
    with pytest.raises(ValueError, match="exactly 10 bytes"):
        ids.generate_ulid(entropy=lambda size: b"\x00" * (size - 1))
    with pytest.raises(ValueError, match="within 0.."):
        ids.generate_ulid(timestamp_ms=-1)
    with pytest.raises(ValueError, match="must be an int"):
        ids.generate_ulid(timestamp_ms=True)


def test_entity_ids_carry_their_kind_prefix() -> None:
    assert ids.generate_run_id().startswith("run-")
    assert ids.generate_worker_id().startswith("wrk-")
    assert ids.generate_message_id().startswith("msg-")
    assert ids.generate_correlation_id().startswith("cor-")
    assert ids.generate_session_id().startswith("ses-")

    worker_id = ids.new_id(IdKind.WORKER, timestamp_ms=1, entropy=_constant(0xFF))
    ids.check_id(worker_id, IdKind.WORKER)
    assert ids.short_id(worker_id) == worker_id[-8:]


def test_check_id_rejects_wrong_kind_and_bad_body() -> None:
    with pytest.raises(ValueError, match="expected an id starting with 'wrk-'"):
        ids.check_id(ids.generate_run_id(), IdKind.WORKER)
    with pytest.raises(ValueError, match="invalid session id"):
        ids.check_id("ses-handoff", IdKind.SESSION)
    with pytest.raises(ValueError, match="at least 8 characters"):
        ids.short_id("wrk-1")
