# store.py
"""Storage contract shared by the relational and document-store backends.

Both backends keep the same three concepts: a key/value settings table, an
optional engineer directory, and the (date, engineer, shift) roster. The
routes only ever talk to a ``RosterStore``; which implementation is behind it
is a configuration choice.
"""

import json
import logging
import threading
from collections import namedtuple

# --- Constants ---
ADMIN_PASSWORD = 'admin_password'
SHIFT_TIMES = 'shift_times'
DEFAULT_ADMIN_PASSWORD = '2010'
DEFAULT_SHIFT_TIMES = {
    "Morning": {"start": "08:00", "end": "16:00"},
    "Evening": {"start": "16:00", "end": "00:00"},
    "Night": {"start": "00:00", "end": "08:00"},
}
SESSION_TOKEN = 'mock-token-123'
ROSTER_FIELDS = ('date', 'engineer_name', 'shift_type')

# --- Errors ---
class StoreError(Exception):
    """Base class for storage layer failures."""

class StoreConfigurationError(StoreError):
    """The selected backend has no usable connection string."""

class InvalidRosterEntry(StoreError, ValueError):
    pass

# --- Value Types ---
class RosterEntry(namedtuple('RosterEntry', ROSTER_FIELDS)):
    __slots__ = ()

    @classmethod
    def from_payload(cls, item):
        if not isinstance(item, dict):
            raise InvalidRosterEntry(f"Roster entry must be an object, got {type(item).__name__}")
        missing = [field for field in ROSTER_FIELDS if item.get(field) is None]
        if missing:
            raise InvalidRosterEntry(f"Roster entry is missing {', '.join(missing)}")
        return cls(item['date'], item['engineer_name'], item['shift_type'])

    @property
    def key(self):
        return (self.date, self.engineer_name)

    def to_dict(self):
        return dict(self._asdict())


class ShiftTimes(object):
    """The stored ``shift_times`` setting with an explicit absent/default/custom state.

    ``raw`` is the opaque string held by the settings store (or None when the
    row does not exist). Unparsable text is classified as ``custom`` so that
    seeding leaves it alone and the parse error surfaces on read.
    """
    ABSENT = 'absent'
    DEFAULT = 'default'
    CUSTOM = 'custom'

    def __init__(self, raw):
        self.raw = raw

    @classmethod
    def from_windows(cls, windows):
        return cls(json.dumps(windows))

    @property
    def state(self):
        if self.raw is None or self.raw == '' or self.raw == '{}':
            return self.ABSENT
        try:
            parsed = json.loads(self.raw)
        except ValueError:
            return self.CUSTOM
        if parsed == {}:
            return self.ABSENT
        return self.DEFAULT if parsed == DEFAULT_SHIFT_TIMES else self.CUSTOM

    def windows(self):
        if self.raw is None or self.raw == '':
            return {}
        return json.loads(self.raw)


# --- Store Interface ---
class RosterStore(object):
    """Lazily-connected storage handle.

    Subclasses implement ``_connect``, ``get_setting``, ``set_setting``,
    ``list_roster`` and ``sync_roster``. ``ensure_ready`` is safe to call on
    every request: the first caller connects and seeds, concurrent callers
    wait on the same lock, later callers return immediately.
    """
    backend = None

    def __init__(self, admin_password_default=DEFAULT_ADMIN_PASSWORD, reset_admin_password=True, timeout=5):
        self.admin_password_default = admin_password_default
        self.reset_admin_password = reset_admin_password
        self.timeout = timeout
        self._ready = False
        self._lock = threading.Lock()

    @property
    def ready(self):
        return self._ready

    def ensure_ready(self):
        if self._ready:
            return
        with self._lock:
            if self._ready:
                return
            logging.info(f"Initialising {self.backend} roster store...")
            self._connect()
            self.seed_defaults()
            self._ready = True
            logging.info(f"{self.backend} roster store ready.")

    def _connect(self):
        raise NotImplementedError

    # --- Settings ---
    def get_setting(self, key):
        raise NotImplementedError

    def set_setting(self, key, value):
        raise NotImplementedError

    def seed_setting(self, key, value):
        """Write ``value`` only when no row exists for ``key``. Returns True if written."""
        if self.get_setting(key) is not None:
            return False
        self.set_setting(key, value)
        return True

    def seed_defaults(self):
        password = self.get_setting(ADMIN_PASSWORD)
        if password is None:
            self.set_setting(ADMIN_PASSWORD, self.admin_password_default)
            logging.info("Seeded default admin password.")
        elif self.reset_admin_password and password != self.admin_password_default:
            self.set_setting(ADMIN_PASSWORD, self.admin_password_default)
            logging.warning("admin_password differed from the bootstrap default and was reset on startup.")
        if ShiftTimes(self.get_setting(SHIFT_TIMES)).state == ShiftTimes.ABSENT:
            self.set_setting(SHIFT_TIMES, ShiftTimes.from_windows(DEFAULT_SHIFT_TIMES).raw)
            logging.info("Seeded default shift times.")

    def read_shift_times(self):
        return ShiftTimes(self.get_setting(SHIFT_TIMES)).windows()

    def authenticate(self, password):
        # Plain equality against the stored value; the token is shared and never verified.
        stored = self.get_setting(ADMIN_PASSWORD)
        if stored is not None and isinstance(password, str) and password == stored:
            return {"granted": True, "token": SESSION_TOKEN}
        return {"granted": False}

    # --- Roster ---
    def list_roster(self, date=None):
        raise NotImplementedError

    def sync_roster(self, entries):
        """Upsert every entry keyed by (date, engineer) as one all-or-nothing batch.

        ``entries`` is the raw decoded JSON list; it is fully parsed before any
        write so a malformed item aborts the batch without touching storage.
        Later entries for the same key win. Rows not mentioned are left alone.
        """
        raise NotImplementedError

    def _parse_entries(self, entries):
        return [RosterEntry.from_payload(item) for item in entries]
