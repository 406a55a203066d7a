"""Unit tests for the file delegation repository."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
import json
from pathlib import Path

import pytest

from core.errors import PatrolEncodeError, PolicyFileFormatError
from core.types import Delegation, DelegationScope, FileMode, StorageLocation
from store.codecs import get_codec
from store.delegation_repository import FileDelegationRepository
from store.rows import delegation_to_mapping


def _repository(
    tmp_path: Path,
    now: datetime,
    driver: str = "json",
    file_mode: FileMode = "single",
    retention_days: int = 90,
) -> FileDelegationRepository:
    return FileDelegationRepository(
        StorageLocation(tmp_path, "delegations", file_mode),
        get_codec(driver),
        retention_days=retention_days,
        clock=lambda: now,
    )


def _delegation(
    now: datetime,
    delegation_id: str = "d1",
    delegate_id: str = "bob",
    **overrides,
) -> Delegation:
    delegation = Delegation(
        id=delegation_id,
        delegator_id="alice",
        delegate_id=delegate_id,
        scope=DelegationScope(resources=("doc", "report"), actions=("read",)),
        created_at=now - timedelta(days=1),
        metadata={"reason": "vacation"},
    )
    return replace(delegation, **overrides)


@pytest.mark.parametrize(
    ("driver", "file_mode"),
    [
        ("json", "single"),
        ("yaml", "multiple"),
        ("toml", "single"),
        ("csv", "single"),
        ("ini", "multiple"),
    ],
)
def test_create_and_find_by_id(tmp_path, fixed_now, driver: str, file_mode: FileMode) -> None:
    """Created delegations should be readable through every codec."""
    expires_at = fixed_now + timedelta(days=3)
    delegation = _delegation(fixed_now, expires_at=expires_at, is_transitive=True)
    _repository(tmp_path, fixed_now, driver, file_mode).create(delegation)

    loaded = _repository(tmp_path, fixed_now, driver, file_mode).find_by_id("d1")

    assert loaded == delegation


def test_find_by_id_returns_none_for_unknown(tmp_path, fixed_now) -> None:
    """Unknown ids should return None."""
    assert _repository(tmp_path, fixed_now).find_by_id("missing") is None


def test_find_active_excludes_expired_and_revoked(tmp_path, fixed_now) -> None:
    """Only active, unexpired delegations for the delegate are returned."""
    repository = _repository(tmp_path, fixed_now)
    repository.create(_delegation(fixed_now, "open"))
    repository.create(_delegation(fixed_now, "future", expires_at=fixed_now + timedelta(seconds=1)))
    repository.create(_delegation(fixed_now, "boundary", expires_at=fixed_now))
    repository.create(_delegation(fixed_now, "past", expires_at=fixed_now - timedelta(days=1)))
    repository.create(_delegation(fixed_now, "revoked", status="revoked", revoked_at=fixed_now))
    repository.create(_delegation(fixed_now, "other", delegate_id="carol"))

    active = repository.find_active_for_delegate("bob")

    assert [delegation.id for delegation in active] == ["open", "future"]


def test_revoke_marks_delegation(tmp_path, fixed_now) -> None:
    """Revocation should set the state and timestamp."""
    repository = _repository(tmp_path, fixed_now, "yaml", "multiple")
    repository.create(_delegation(fixed_now))

    repository.revoke("d1")

    revoked = _repository(tmp_path, fixed_now, "yaml", "multiple").find_by_id("d1")
    assert revoked is not None
    assert (revoked.status, revoked.revoked_at) == ("revoked", fixed_now)
    assert repository.find_active_for_delegate("bob") == []


def test_revoke_unknown_id_is_noop(tmp_path, fixed_now) -> None:
    """Revoking an unknown id should change nothing."""
    repository = _repository(tmp_path, fixed_now)
    repository.create(_delegation(fixed_now))
    before = (tmp_path / "delegations" / "delegations.json").read_bytes()

    repository.revoke("missing")

    assert (tmp_path / "delegations" / "delegations.json").read_bytes() == before


def test_cleanup_removes_only_records_past_retention(tmp_path, fixed_now) -> None:
    """Cleanup should delete old revoked/expired records and be idempotent."""
    repository = _repository(tmp_path, fixed_now)
    long_ago = fixed_now - timedelta(days=91)
    repository.create(_delegation(fixed_now, "old-revoked", status="revoked", revoked_at=long_ago))
    repository.create(_delegation(fixed_now, "old-expired", status="expired", expires_at=long_ago))
    repository.create(
        _delegation(fixed_now, "edge", status="revoked", revoked_at=fixed_now - timedelta(days=90))
    )
    repository.create(_delegation(fixed_now, "no-revoked-at", status="revoked"))
    repository.create(_delegation(fixed_now, "no-expires-at", status="expired"))
    repository.create(_delegation(fixed_now, "active-but-past", expires_at=long_ago))

    assert repository.cleanup() == 2
    assert repository.cleanup() == 0
    assert [delegation.id for delegation in repository.all()] == [
        "edge",
        "no-revoked-at",
        "no-expires-at",
        "active-but-past",
    ]


def test_cleanup_honors_custom_retention(tmp_path, fixed_now) -> None:
    """Zero retention should remove anything revoked before now."""
    repository = _repository(tmp_path, fixed_now, retention_days=0)
    repository.create(
        _delegation(fixed_now, "a", status="revoked", revoked_at=fixed_now - timedelta(seconds=1))
    )
    repository.create(_delegation(fixed_now, "b", status="revoked", revoked_at=fixed_now))

    assert repository.cleanup() == 1
    assert [delegation.id for delegation in repository.all()] == ["b"]


def test_cleanup_multiple_mode_deletes_files(tmp_path, fixed_now) -> None:
    """Removed delegations should lose their files in multiple mode."""
    repository = _repository(tmp_path, fixed_now, "yaml", "multiple")
    repository.create(
        _delegation(fixed_now, "gone", status="revoked", revoked_at=fixed_now - timedelta(days=200))
    )
    repository.create(_delegation(fixed_now, "kept"))

    removed = repository.cleanup()

    assert removed == 1
    assert sorted(path.name for path in (tmp_path / "delegations").iterdir()) == ["kept.yaml"]
    assert repository.cleanup() == 0


def test_duplicate_ids_are_stored(tmp_path, fixed_now) -> None:
    """Single mode keeps duplicates and lookups return the first one."""
    repository = _repository(tmp_path, fixed_now)
    repository.create(_delegation(fixed_now, delegate_id="bob"))
    repository.create(_delegation(fixed_now, delegate_id="carol"))

    assert len(repository.all()) == 2
    found = repository.find_by_id("d1")
    assert found is not None and found.delegate_id == "bob"


def test_single_file_rewrite_keeps_malformed_rows(tmp_path, fixed_now) -> None:
    """Rows that fail validation should survive later writes."""
    path = tmp_path / "delegations" / "delegations.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps([{"id": "broken"}]), encoding="utf-8")
    repository = _repository(tmp_path, fixed_now)

    repository.create(_delegation(fixed_now))

    rows = json.loads(path.read_text(encoding="utf-8"))
    assert [row["id"] for row in rows] == ["broken", "d1"]
    assert [delegation.id for delegation in repository.all()] == ["d1"]


def test_single_file_rewrite_keeps_malformed_row_position(tmp_path, fixed_now) -> None:
    """A malformed row should stay between its neighbours after cleanup."""
    long_ago = fixed_now - timedelta(days=200)
    old = _delegation(fixed_now, "old", status="revoked", revoked_at=long_ago)
    rows = [
        delegation_to_mapping(old, flat=False),
        delegation_to_mapping(_delegation(fixed_now, "first"), flat=False),
        {"id": "broken"},
        delegation_to_mapping(_delegation(fixed_now, "second"), flat=False),
    ]
    path = tmp_path / "delegations" / "delegations.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps(rows), encoding="utf-8")

    assert _repository(tmp_path, fixed_now).cleanup() == 1

    stored = json.loads(path.read_text(encoding="utf-8"))
    assert [row["id"] for row in stored] == ["first", "broken", "second"]


def test_create_refuses_to_overwrite_undecodable_file(tmp_path, fixed_now) -> None:
    """A lenient single file that fails to decode must not be replaced."""
    writer = _repository(tmp_path, fixed_now, "yaml")
    writer.create(_delegation(fixed_now, "d1"))
    writer.create(_delegation(fixed_now, "d2"))
    path = tmp_path / "delegations" / "delegations.yaml"
    with path.open("a", encoding="utf-8") as handle:
        handle.write("bad: [unclosed\n")
    before = path.read_bytes()
    repository = _repository(tmp_path, fixed_now, "yaml")

    assert repository.all() == []
    with pytest.raises(PolicyFileFormatError):
        repository.create(_delegation(fixed_now, "d3"))
    assert path.read_bytes() == before


def test_toml_drops_nested_none_metadata(tmp_path, fixed_now) -> None:
    """None values inside metadata should be omitted rather than fail."""
    delegation = _delegation(fixed_now, metadata={"note": None, "ticket": {"id": 7, "owner": None}})
    _repository(tmp_path, fixed_now, "toml").create(delegation)

    loaded = _repository(tmp_path, fixed_now, "toml").find_by_id("d1")

    assert loaded is not None
    assert loaded.metadata == {"ticket": {"id": 7}}


def test_unencodable_metadata_raises_store_error(tmp_path, fixed_now) -> None:
    """Metadata a flat codec cannot encode should fail before any write."""
    repository = _repository(tmp_path, fixed_now, "csv")

    with pytest.raises(PatrolEncodeError):
        repository.create(_delegation(fixed_now, metadata={"when": fixed_now}))
    assert not (tmp_path / "delegations" / "delegations.csv").exists()


def test_cleanup_uses_default_retention(tmp_path, fixed_now) -> None:
    """Without a configured retention, records older than 90 days are removed."""
    repository = FileDelegationRepository(
        StorageLocation(tmp_path, "delegations", "single"),
        get_codec("json"),
        clock=lambda: fixed_now,
    )
    for delegation_id, age_days in (("old", 91), ("recent", 89)):
        revoked_at = fixed_now - timedelta(days=age_days)
        repository.create(
            _delegation(fixed_now, delegation_id, status="revoked", revoked_at=revoked_at)
        )

    assert repository.retention_days == 90
    assert repository.cleanup() == 1
    assert [delegation.id for delegation in repository.all()] == ["recent"]


def test_repository_validates_arguments(tmp_path, fixed_now) -> None:
    """Wrong entity types and negative retention should be rejected."""
    with pytest.raises(ValueError):
        FileDelegationRepository(StorageLocation(tmp_path, "policies", "single"), get_codec("json"))
    with pytest.raises(ValueError):
        _repository(tmp_path, fixed_now, retention_days=-1)
