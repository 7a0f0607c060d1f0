"""
Key-Value Storage
Device-local persisted documents backed by the key_value_store table
"""

import json
import logging
from kiosk.models import db, KeyValueEntry

logger = logging.getLogger(__name__)


class KeyValueStorage:
    """
    Minimal async-storage style interface over the local database.

    Every write commits immediately so callers observe synchronous
    commit semantics. Must be used inside an application context.
    """

    def get_item(self, key):
        entry = KeyValueEntry.query.filter_by(key=key).first()
        return entry.value if entry else None

    def set_item(self, key, value):
        entry = KeyValueEntry.query.filter_by(key=key).first()
        if not entry:
            entry = KeyValueEntry(key=key)
            db.session.add(entry)
        entry.value = value
        db.session.commit()

    def remove_item(self, key):
        KeyValueEntry.query.filter_by(key=key).delete()
        db.session.commit()

    def get_json(self, key):
        """
        Read and decode a JSON document

        Returns:
            The decoded value, or None when missing or not valid JSON
        """
        raw = self.get_item(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding corrupt JSON stored under {key}")
            return None

    def set_json(self, key, value):
        self.set_item(key, json.dumps(value))
