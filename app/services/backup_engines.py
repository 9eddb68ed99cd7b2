"""
Restore engines used by the backup service.

Both engines take the resolved table order and the parsed dump and
return ``{table: inserted_rows}``.  Known tables are put in foreign-key
order whatever order the dump lists them in, emptied children first and
refilled parents first, so rows referencing other tables always find
their parents.

``SqlRestoreEngine`` works through the application's SQLAlchemy session
in a single transaction.  ``RemoteRestoreEngine`` calls the table store
over HTTP with no cross-table transaction; tables the store does not
have are skipped.
"""

import logging
from datetime import date, datetime

from app.extensions import db
from app.services import backup_transforms
from app.services.table_store_client import TableStoreClient, TableStoreError

logger = logging.getLogger(__name__)

_MISSING_TABLE_CODES = ("42P01", "PGRST116", "PGRST205")


def is_missing_table_error(error) -> bool:
    """True when ``error`` says the target table does not exist."""
    if error is None:
        return False
    message = str(getattr(error, "message", None) or error).lower()
    if (
        "does not exist" in message
        or "undefined table" in message
        or "schema cache" in message
        or ("relation" in message and "not found" in message)
    ):
        return True
    code = (getattr(error, "code", None) or "").upper()
    details = (getattr(error, "details", None) or "").lower()
    return code in _MISSING_TABLE_CODES or "does not exist" in details


def _order_users(rows: list[dict]) -> list[dict]:
    """Put users before the accounts they created; drop dangling creators."""
    ids = {row["id"] for row in rows}
    for row in rows:
        if row.get("created_by") not in ids:
            row["created_by"] = None
    ordered: list[dict] = []
    placed: set = set()
    pending = list(rows)
    while pending:
        remaining = []
        for row in pending:
            if row["created_by"] is None or row["created_by"] in placed:
                ordered.append(row)
                placed.add(row["id"])
            else:
                remaining.append(row)
        if len(remaining) == len(pending):
            # Creator cycle.
            for row in remaining:
                row["created_by"] = None
        pending = remaining
    return ordered


def _dependency_order(order: list[str]) -> list[str]:
    """The tables of ``order`` that exist here, parents before children."""
    rank = {table.name: index for index, table in enumerate(db.metadata.sorted_tables)}
    return sorted((name for name in order if name in rank), key=rank.__getitem__)


def _prepare(table: str, rows) -> list[dict]:
    records = backup_transforms.transform_rows(table, rows)
    if table == "users":
        records = _order_users(records)
    return records


class SqlRestoreEngine:
    """Restore through the application database in one transaction."""

    name = "sql"

    def restore(self, order: list[str], dump: dict) -> dict[str, int]:
        """
        Replace the contents of every known table with the dump's rows.

        Raises:
            Exception: Any database or transform error; the transaction
                       is rolled back first.
        """
        tables = db.metadata.tables
        known = _dependency_order(order)
        for name in order:
            if name not in tables:
                logger.warning("Backup restore: no table %s, skipping", name)

        results: dict[str, int] = {name: 0 for name in order}
        try:
            prepared = {name: _prepare(name, dump.get(name)) for name in known}

            for name in reversed(known):
                db.session.execute(tables[name].delete())
            for name in known:
                records = prepared[name]
                if records:
                    db.session.execute(tables[name].insert(), records)
                results[name] = len(records)
                logger.debug("Backup restore [sql]: %s <- %d rows", name, len(records))
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        return results


class RemoteRestoreEngine:
    """Restore through the table store's REST API, batch by batch."""

    name = "remote"

    def __init__(self, client: TableStoreClient | None = None,
                 batch_size: int = 200) -> None:
        self.client = client if client is not None else TableStoreClient()
        self.batch_size = max(1, int(batch_size))

    def restore(self, order: list[str], dump: dict) -> dict[str, int]:
        """
        Delete then insert table by table.

        Raises:
            TableStoreError: Any failure other than a missing table.
        """
        known = _dependency_order(order)
        prepared = {name: _prepare(name, dump.get(name)) for name in known}
        results: dict[str, int] = {name: 0 for name in order}
        missing: set[str] = set()

        for name in reversed(known):
            try:
                self.client.delete_all(name)
            except TableStoreError as exc:
                if not is_missing_table_error(exc):
                    raise
                logger.warning("Backup restore [remote]: table %s missing, skipping", name)
                missing.add(name)

        for name in known:
            if name in missing:
                continue
            records = [_jsonable_row(row) for row in prepared[name]]
            inserted = 0
            try:
                for start in range(0, len(records), self.batch_size):
                    inserted += self.client.insert(
                        name, records[start:start + self.batch_size]
                    )
            except TableStoreError as exc:
                if not is_missing_table_error(exc):
                    raise
                logger.warning("Backup restore [remote]: table %s missing, skipping", name)
                inserted = 0
            results[name] = inserted
            logger.debug("Backup restore [remote]: %s <- %d rows", name, inserted)

        return results


def _jsonable_row(row: dict) -> dict:
    return {
        key: value.isoformat() if isinstance(value, (datetime, date)) else value
        for key, value in row.items()
    }
