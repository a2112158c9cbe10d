# sql_store.py

import logging

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import joinedload

from models import db, Engineer, Roster, Setting
from store import RosterStore, StoreConfigurationError

# Dialects with INSERT ... ON CONFLICT, used for race-free engineer and roster upserts.
UPSERT_INSERTS = {
    'sqlite': sqlite.insert,
    'postgresql': postgresql.insert,
}


def engine_options(uri, timeout):
    """SQLAlchemy engine options bounding connection acquisition to ``timeout`` seconds."""
    if uri.startswith('sqlite'):
        return {"connect_args": {"timeout": timeout}}
    return {"pool_pre_ping": True, "pool_timeout": timeout, "connect_args": {"connect_timeout": timeout}}


class SqlRosterStore(RosterStore):
    """Relational backend. Engineer names are normalised into the ``engineers`` table.

    Must be used inside a Flask application context. Concurrent syncs touching
    the same engineer or (date, engineer) pair serialise on the database's
    conflict handling; the last commit wins.
    """
    backend = 'sql'

    def __init__(self, uri=None, **kwargs):
        super().__init__(**kwargs)
        self.uri = uri
        self._insert = None

    def _connect(self):
        if not self.uri:
            logging.error("DATABASE_URL is not set in environment variables")
            raise StoreConfigurationError("Database configuration error")
        dialect = db.engine.dialect.name
        if dialect not in UPSERT_INSERTS:
            raise StoreConfigurationError(f"Unsupported database '{dialect}'. Use SQLite or PostgreSQL.")
        self._insert = UPSERT_INSERTS[dialect]
        db.create_all()

    # --- Settings ---
    def get_setting(self, key):
        row = Setting.query.filter_by(key=key).first()
        return row.value if row else None

    def set_setting(self, key, value):
        row = Setting.query.filter_by(key=key).first()
        if row is None:
            db.session.add(Setting(key=key, value=value))
        else:
            row.value = value
        db.session.commit()

    # --- Roster ---
    def list_roster(self, date=None):
        query = Roster.query.options(joinedload(Roster.engineer))
        if date:
            query = query.filter(Roster.date == date)
        return [r.to_dict() for r in query.all()]

    def _resolve_engineer(self, name):
        db.session.execute(
            self._insert(Engineer).values(name=name).on_conflict_do_nothing(index_elements=['name']))
        return db.session.execute(db.select(Engineer.id).filter_by(name=name)).scalar_one()

    def _upsert(self, entry):
        engineer_id = self._resolve_engineer(entry.engineer_name)
        stmt = self._insert(Roster).values(date=entry.date, engineer_id=engineer_id, shift_type=entry.shift_type)
        db.session.execute(stmt.on_conflict_do_update(
            index_elements=['date', 'engineer_id'], set_={'shift_type': stmt.excluded.shift_type}))

    def sync_roster(self, entries):
        try:
            for entry in self._parse_entries(entries):
                self._upsert(entry)
            db.session.commit()
        except Exception:
            db.session.rollback()
            logging.error("Roster sync rolled back.")
            raise
