# mongo_store.py

import logging

from pymongo import ASCENDING, MongoClient, UpdateOne
from pymongo.errors import PyMongoError

from store import RosterStore, StoreConfigurationError


class MongoRosterStore(RosterStore):
    """Document-store backend. Engineer names are stored verbatim on each roster document.

    Sync runs as one ordered ``bulk_write`` inside a multi-document transaction
    whenever the server supports transactions (replica set or sharded cluster).
    ``use_transactions=None`` asks the server at connect time; True/False force it.
    On a standalone server the affected keys are snapshotted before writing and
    restored if any write fails; keys that cannot be restored are logged at
    CRITICAL.
    """
    backend = 'mongo'

    def __init__(self, uri, db_name='roster', use_transactions=None, client_factory=MongoClient, **kwargs):
        super().__init__(**kwargs)
        self.uri = uri
        self.db_name = db_name
        self.use_transactions = use_transactions
        self.transactional = bool(use_transactions)
        self.client_factory = client_factory
        self.client = None
        self.roster = None
        self.settings = None

    def _connect(self):
        if not self.uri:
            logging.error("MONGODB_URI is not set in environment variables")
            raise StoreConfigurationError("Database configuration error")
        if self.client is not None:
            # left over from an attempt whose seeding failed
            self.client.close()
            self.client = self.roster = self.settings = None
        timeout_ms = int(self.timeout * 1000)
        logging.info("Attempting to connect to MongoDB...")
        client = self.client_factory(self.uri, serverSelectionTimeoutMS=timeout_ms, connectTimeoutMS=timeout_ms)
        try:
            database = client[self.db_name]
            database.roster.create_index([('date', ASCENDING), ('engineer_name', ASCENDING)], unique=True)
            database.settings.create_index('key', unique=True)
            transactional = self._supports_transactions(client)
        except Exception:
            logging.error("MongoDB connection error", exc_info=True)
            client.close()
            raise
        self.client, self.roster, self.settings = client, database.roster, database.settings
        self.transactional = transactional
        logging.info(f"Successfully connected to MongoDB (transactions {'on' if transactional else 'off'})")

    def _supports_transactions(self, client):
        if self.use_transactions is not None:
            return bool(self.use_transactions)
        hello = client.admin.command('hello')
        return bool(hello.get('setName')) or hello.get('msg') == 'isdbgrid'

    # --- Settings ---
    def get_setting(self, key):
        doc = self.settings.find_one({"key": key})
        return doc['value'] if doc else None

    def set_setting(self, key, value):
        self.settings.update_one({"key": key}, {"$set": {"value": value}}, upsert=True)

    # --- Roster ---
    def list_roster(self, date=None):
        query = {"date": date} if date else {}
        projection = {"_id": 0, "date": 1, "engineer_name": 1, "shift_type": 1}
        return list(self.roster.find(query, projection))

    @staticmethod
    def _upsert_op(entry):
        return UpdateOne(
            {"date": entry.date, "engineer_name": entry.engineer_name},
            {"$set": {"shift_type": entry.shift_type}},
            upsert=True)

    def _upsert(self, entry):
        self.roster.update_one(
            {"date": entry.date, "engineer_name": entry.engineer_name},
            {"$set": {"shift_type": entry.shift_type}},
            upsert=True)

    def sync_roster(self, entries):
        parsed = self._parse_entries(entries)
        if not parsed:
            return
        if self.transactional:
            ops = [self._upsert_op(entry) for entry in parsed]
            with self.client.start_session() as session:
                session.with_transaction(lambda s: self.roster.bulk_write(ops, ordered=True, session=s))
            return
        # No transactions on a standalone server, and an ordered bulk_write is no
        # more atomic there, so write per entry and undo from the snapshot.
        snapshot = self._snapshot(parsed)
        try:
            for entry in parsed:
                self._upsert(entry)
        except Exception:
            logging.error(f"Roster sync failed; restoring {len(snapshot)} key(s).")
            self._restore(snapshot)
            raise

    def _snapshot(self, entries):
        """Map each distinct (date, engineer_name) in ``entries`` to its stored shift_type or None."""
        snapshot = {entry.key: None for entry in entries}
        clauses = [{"date": d, "engineer_name": n} for d, n in snapshot]
        for doc in self.roster.find({"$or": clauses}, {"_id": 0}):
            snapshot[(doc['date'], doc['engineer_name'])] = doc['shift_type']
        return snapshot

    def _restore(self, snapshot):
        """Put every snapshotted key back. Returns the keys that could not be restored."""
        failed = []
        for (date, name), shift_type in snapshot.items():
            key = {"date": date, "engineer_name": name}
            try:
                if shift_type is None:
                    self.roster.delete_one(key)
                else:
                    self.roster.update_one(key, {"$set": {"shift_type": shift_type}})
            except PyMongoError as e:
                failed.append(((date, name), shift_type, e))
        for (date, name), shift_type, error in failed:
            expected = 'absent' if shift_type is None else repr(shift_type)
            logging.critical(f"Roster left inconsistent: date={date!r} engineer_name={name!r} "
                             f"should be {expected} but could not be restored ({error})")
        return [key for key, _, _ in failed]
