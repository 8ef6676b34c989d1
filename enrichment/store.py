# enrichment/store.py
"""
Opportunity persistence.

The pipeline only needs three calls (get one, list a batch, partial update), so
the store is a small Protocol with a SQLite implementation. Every update is one
UPDATE statement committed on its own, so a crash mid-batch leaves each row
either fully written or untouched.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Mapping
from contextlib import closing
from pathlib import Path
from typing import Any, Protocol

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_random_exponential

from .config import DEFAULT_DB_PATH
from .exceptions import StoreError
from .extract.records import ContactRecord
from .models import STATUS_DISCOVERED, STATUSES, Opportunity, OpportunitySelector
from .resolve.domain import domain_of
from .utils import utc_now_iso

log = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS opportunities (
  id INTEGER PRIMARY KEY,
  url TEXT NOT NULL,
  domain TEXT NOT NULL,
  status TEXT NOT NULL DEFAULT 'discovered',
  domain_authority REAL,
  page_authority REAL,
  spam_score REAL,
  is_premium INTEGER NOT NULL DEFAULT 0,
  validation_data TEXT,
  contact_info TEXT,
  last_checked TEXT,
  created_at TEXT DEFAULT CURRENT_TIMESTAMP,
  updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS ix_opportunities_status ON opportunities(status);
CREATE INDEX IF NOT EXISTS ix_opportunities_domain ON opportunities(domain);
"""

# Field names accepted by update_opportunity -> column
_FIELD_COLUMNS: dict[str, str] = {
    "status": "status",
    "domainAuthority": "domain_authority",
    "pageAuthority": "page_authority",
    "spamScore": "spam_score",
    "isPremium": "is_premium",
    "validationData": "validation_data",
    "contactInfo": "contact_info",
    "lastChecked": "last_checked",
}
_JSON_COLUMNS = {"validation_data", "contact_info"}


class OpportunityStore(Protocol):
    def get_opportunity(self, opportunity_id: int) -> Opportunity | None: ...

    def list_unprocessed(self, selector: OpportunitySelector) -> list[Opportunity]: ...

    def update_opportunity(self, opportunity_id: int, fields: Mapping[str, Any]) -> None: ...


def _encode(column: str, value: Any) -> Any:
    if column in _JSON_COLUMNS:
        if value is None:
            return None
        if isinstance(value, ContactRecord):
            value = value.to_dict()
        return json.dumps(value, sort_keys=True)
    if column == "is_premium":
        return 1 if value else 0
    if column == "status" and value not in STATUSES:
        raise StoreError(f"unknown opportunity status: {value!r}")
    return value


# Concurrent workers share one SQLite file; "database is locked" clears on retry
_WRITE_RETRY = retry(
    reraise=True,
    retry=retry_if_exception_type(sqlite3.OperationalError),
    stop=stop_after_attempt(5),
    wait=wait_random_exponential(multiplier=0.05, max=1.0),
)


def _row_to_opportunity(row: sqlite3.Row) -> Opportunity:
    return Opportunity.from_row(dict(row))


class SqliteOpportunityStore:
    def __init__(self, db_path: str | Path | None = None) -> None:
        self.db_path = str(db_path or DEFAULT_DB_PATH)

    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(self.db_path)
        con.row_factory = sqlite3.Row
        return con

    def init_schema(self) -> None:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as con:
            con.executescript(SCHEMA)
            con.commit()

    # ---- reads -------------------------------------------------------------------

    def get_opportunity(self, opportunity_id: int) -> Opportunity | None:
        with closing(self._connect()) as con:
            row = con.execute(
                "SELECT * FROM opportunities WHERE id = ?",
                (int(opportunity_id),),
            ).fetchone()
        return _row_to_opportunity(row) if row is not None else None

    def list_unprocessed(self, selector: OpportunitySelector) -> list[Opportunity]:
        """
        Rows matching ``selector``, oldest first. ``missing_contacts`` is applied
        after parsing because contact_info may be in any historical shape.
        """
        where: list[str] = []
        params: list[Any] = []
        if selector.ids:
            where.append(f"id IN ({', '.join('?' for _ in selector.ids)})")
            params.extend(int(i) for i in selector.ids)
        elif selector.status:
            where.append("status = ?")
            params.append(selector.status)
        if selector.premium_only:
            where.append("is_premium = 1")

        sql = "SELECT * FROM opportunities"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY id"
        if not selector.missing_contacts and selector.limit > 0:
            sql += " LIMIT ?"
            params.append(int(selector.limit))

        with closing(self._connect()) as con:
            rows = con.execute(sql, params).fetchall()

        out = [_row_to_opportunity(r) for r in rows]
        if selector.missing_contacts:
            out = [o for o in out if o.contact_info is None or not o.contact_info.is_satisfied]
            if selector.limit > 0:
                out = out[: selector.limit]
        return out

    # ---- writes ------------------------------------------------------------------

    def update_opportunity(self, opportunity_id: int, fields: Mapping[str, Any]) -> None:
        """Partial update: only the given fields change, in one statement."""
        sets: list[str] = []
        params: list[Any] = []
        for name, value in fields.items():
            column = _FIELD_COLUMNS.get(name)
            if column is None:
                raise StoreError(f"field {name!r} is not writable")
            sets.append(f"{column} = ?")
            params.append(_encode(column, value))
        if not sets:
            return
        sets.append("updated_at = ?")
        params.append(utc_now_iso())
        params.append(int(opportunity_id))

        sql = f"UPDATE opportunities SET {', '.join(sets)} WHERE id = ?"
        try:
            rowcount = self._execute_write(sql, params)
        except sqlite3.Error as exc:
            raise StoreError(f"update of opportunity {opportunity_id} failed: {exc}") from exc
        if rowcount == 0:
            raise StoreError(f"opportunity {opportunity_id} not found")

    @_WRITE_RETRY
    def _execute_write(self, sql: str, params: list[Any]) -> int:
        with closing(self._connect()) as con:
            cur = con.execute(sql, params)
            con.commit()
            return cur.rowcount

    def add_opportunity(
        self,
        url: str,
        *,
        domain: str | None = None,
        status: str = STATUS_DISCOVERED,
    ) -> int:
        with closing(self._connect()) as con:
            cur = con.execute(
                "INSERT INTO opportunities (url, domain, status) VALUES (?, ?, ?)",
                (url, domain or domain_of(url), status),
            )
            con.commit()
            new_id = int(cur.lastrowid)
        log.debug("store: added opportunity %s (%s)", new_id, url)
        return new_id


__all__ = [
    "OpportunityStore",
    "SqliteOpportunityStore",
    "SCHEMA",
]
