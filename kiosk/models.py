"""
Database Models
Local device storage for the kiosk: key-value state, sync history and error log
"""

from datetime import datetime
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


class KeyValueEntry(db.Model):
    """Device-local key-value storage (one JSON document per namespaced key)"""
    __tablename__ = 'key_value_store'

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(128), unique=True, nullable=False, index=True)
    value = db.Column(db.Text)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<KeyValueEntry {self.key}>'


class SyncLog(db.Model):
    """One row per daily-close sync pass"""
    __tablename__ = 'sync_logs'

    id = db.Column(db.Integer, primary_key=True)
    device_id = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(32), default='PENDING')  # SUCCESS, FAILED, SKIPPED
    synced_count = db.Column(db.Integer, default=0)
    failed_count = db.Column(db.Integer, default=0)
    synced_at = db.Column(db.String(10))  # watermark reported by the pass (YYYY-MM-DD)
    failed_dates = db.Column(db.Text)  # comma-separated dates
    error_message = db.Column(db.Text)

    started_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    finished_at = db.Column(db.DateTime)

    def to_dict(self):
        return {
            'id': self.id,
            'deviceId': self.device_id,
            'status': self.status,
            'syncedCount': self.synced_count,
            'failedCount': self.failed_count,
            'syncedAt': self.synced_at,
            'failedDates': self.failed_dates.split(',') if self.failed_dates else [],
            'errorMessage': self.error_message,
            'startedAt': self.started_at.isoformat() if self.started_at else None,
            'finishedAt': self.finished_at.isoformat() if self.finished_at else None,
        }

    def __repr__(self):
        return f'<SyncLog {self.status} - {self.synced_at}>'


class ErrorLog(db.Model):
    """Errors funneled through the reporting sink"""
    __tablename__ = 'error_logs'

    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    scope = db.Column(db.String(128), index=True)
    error_type = db.Column(db.String(128))
    error_message = db.Column(db.Text)
    traceback = db.Column(db.Text)
    context = db.Column(db.Text)  # sanitized JSON of tags + extra
    request_url = db.Column(db.String(512))
    request_method = db.Column(db.String(16))
    is_resolved = db.Column(db.Boolean, default=False)

    def to_dict(self):
        return {
            'id': self.id,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'scope': self.scope,
            'errorType': self.error_type,
            'errorMessage': self.error_message,
            'context': self.context,
            'requestUrl': self.request_url,
            'requestMethod': self.request_method,
            'isResolved': self.is_resolved,
        }

    def __repr__(self):
        return f'<ErrorLog {self.scope} - {self.error_type}>'
