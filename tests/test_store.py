# tests/test_store.py
from __future__ import annotations

import json
import sqlite3
from pathlib import Path

import pytest

from enrichment.exceptions import StoreError
from enrichment.extract.records import ContactRecord
from enrichment.models import OpportunitySelector
from enrichment.store import SqliteOpportunityStore

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def store(tmp_path: Path) -> SqliteOpportunityStore:
    s = SqliteOpportunityStore(tmp_path / "opps.db")
    s.init_schema()
    return s


def _raw_update(store: SqliteOpportunityStore, sql: str, params: tuple) -> None:
    con = sqlite3.connect(store.db_path)
    try:
        con.execute(sql, params)
        con.commit()
    finally:
        con.close()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def test_add_and_get(store):
    oid = store.add_opportunity("https://www.Acme.test/blog")
    opp = store.get_opportunity(oid)
    assert opp is not None
    assert opp.domain == "acme.test"
    assert opp.status == "discovered"
    assert opp.contact_info is None
    assert opp.validation_data == {}
    assert store.get_opportunity(9999) is None


def test_legacy_contact_info_is_normalized_on_read(store):
    oid = store.add_opportunity("https://acme.test/")
    legacy = {"email": "Owner@Acme.test", "form": "https://acme.test/contact"}
    _raw_update(
        store,
        "UPDATE opportunities SET contact_info = ? WHERE id = ?",
        (json.dumps(legacy), oid),
    )
    opp = store.get_opportunity(oid)
    assert opp.contact_info is not None
    assert opp.contact_info.emails == ("owner@acme.test",)
    assert opp.contact_info.is_satisfied


def test_list_unprocessed_filters(store):
    ids = [store.add_opportunity(f"https://site{i}.test/") for i in range(5)]
    store.update_opportunity(ids[1], {"status": "rejected"})
    store.update_opportunity(ids[2], {"status": "premium", "isPremium": True})
    store.update_opportunity(
        ids[3],
        {"contactInfo": ContactRecord.build(emails=["a@site3.test"], source="website")},
    )

    discovered = store.list_unprocessed(OpportunitySelector())
    assert [o.id for o in discovered] == [ids[0], ids[3], ids[4]]

    first_two = store.list_unprocessed(OpportunitySelector(limit=2))
    assert [o.id for o in first_two] == [ids[0], ids[3]]

    by_id = store.list_unprocessed(OpportunitySelector(ids=(ids[1], ids[2])))
    assert [o.id for o in by_id] == [ids[1], ids[2]]

    premium = store.list_unprocessed(OpportunitySelector(status=None, premium_only=True))
    assert [o.id for o in premium] == [ids[2]]

    missing = store.list_unprocessed(OpportunitySelector(missing_contacts=True, limit=1))
    assert [o.id for o in missing] == [ids[0]]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def test_partial_update_round_trips_fields(store):
    oid = store.add_opportunity("https://acme.test/")
    record = ContactRecord.build(emails=["info@acme.test"], source="website")
    store.update_opportunity(
        oid,
        {
            "status": "validated",
            "isPremium": False,
            "domainAuthority": 31,
            "pageAuthority": 22,
            "spamScore": 2,
            "contactInfo": record,
            "validationData": {"isPassing": True, "metrics": {"domainAuthority": 31}},
            "lastChecked": "2026-01-01T00:00:00Z",
        },
    )
    opp = store.get_opportunity(oid)
    assert opp.status == "validated"
    assert opp.domain_authority == 31.0
    assert opp.spam_score == 2.0
    assert opp.is_premium is False
    assert opp.contact_info.emails == ("info@acme.test",)
    assert opp.validation_data["isPassing"] is True

    # untouched fields survive a later partial update
    store.update_opportunity(oid, {"lastChecked": "2026-02-01T00:00:00Z"})
    again = store.get_opportunity(oid)
    assert again.status == "validated"
    assert again.contact_info.emails == ("info@acme.test",)


def test_update_rejects_unknown_field_and_status(store):
    oid = store.add_opportunity("https://acme.test/")
    with pytest.raises(StoreError):
        store.update_opportunity(oid, {"url": "https://evil.test/"})
    with pytest.raises(StoreError):
        store.update_opportunity(oid, {"status": "maybe"})


def test_update_missing_row_raises(store):
    with pytest.raises(StoreError, match="not found"):
        store.update_opportunity(12345, {"status": "rejected"})


def test_empty_update_is_a_no_op(store):
    oid = store.add_opportunity("https://acme.test/")
    store.update_opportunity(oid, {})
    assert store.get_opportunity(oid).status == "discovered"


def test_locked_database_is_retried(store, monkeypatch):
    oid = store.add_opportunity("https://acme.test/")
    real_connect = store._connect
    attempts = {"n": 0}

    def flaky_connect():
        attempts["n"] += 1
        if attempts["n"] == 1:
            raise sqlite3.OperationalError("database is locked")
        return real_connect()

    monkeypatch.setattr(store, "_connect", flaky_connect)
    store.update_opportunity(oid, {"status": "rejected"})
    assert attempts["n"] == 2
    monkeypatch.undo()
    assert store.get_opportunity(oid).status == "rejected"
