"""
Error Logger Utility
Single reporting sink: Sentry, the application log and the local error_logs table.
"""

import traceback
import json
import logging
from datetime import datetime

import sentry_sdk
from flask import request, has_app_context, has_request_context

logger = logging.getLogger(__name__)

# Keys to redact from reported context
SENSITIVE_KEYS = {
    'password', 'token', 'csrf_token', 'secret', 'api_key',
    'authorization', 'cookie', 'session', 'pin', 'otp'
}


def _sanitize_data(data):
    """Redact sensitive keys from a (possibly nested) dict."""
    if isinstance(data, list):
        return [_sanitize_data(item) for item in data]
    if not isinstance(data, dict):
        return data
    sanitized = {}
    for key, value in data.items():
        if any(s in str(key).lower() for s in SENSITIVE_KEYS):
            sanitized[key] = '[REDACTED]'
        elif isinstance(value, (dict, list)):
            sanitized[key] = _sanitize_data(value)
        elif value is None or isinstance(value, (bool, int, float)):
            sanitized[key] = value
        else:
            sanitized[key] = str(value)[:500]  # Truncate long values
    return sanitized


def _capture_to_sentry(error, tags, extra):
    with sentry_sdk.new_scope() as scope:
        for key, value in tags.items():
            scope.set_tag(key, value)
        for key, value in extra.items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(error)


def _persist(error, tags, extra):
    from kiosk.models import db, ErrorLog

    tb = ''.join(traceback.format_exception(type(error), error, error.__traceback__)) \
        if error.__traceback__ else None

    error_log = ErrorLog(
        timestamp=datetime.utcnow(),
        scope=tags.get('scope'),
        error_type=type(error).__name__,
        error_message=str(error)[:2000],
        traceback=tb,
        context=json.dumps({'tags': tags, 'extra': extra})[:4000],
        is_resolved=False
    )
    if has_request_context():
        error_log.request_url = request.url[:512] if request.url else None
        error_log.request_method = request.method

    db.session.add(error_log)
    db.session.commit()
    return error_log


def report_error(error, tags=None, extra=None):
    """
    Report an error with scope tags and structured context.

    Safe to call from anywhere: it never raises, so callers can report
    and carry on with the next item.

    Args:
        error: The exception (non-exceptions are wrapped in RuntimeError)
        tags: Short indexed labels, at least {'scope': ...}
        extra: Structured context (dates, variables, upstream errors)

    Returns:
        ErrorLog or None when no app context is available
    """
    if not isinstance(error, BaseException):
        error = RuntimeError(str(error))
    tags = dict(tags or {})
    extra = _sanitize_data(dict(extra or {}))

    logger.error(f"[{tags.get('scope', 'unscoped')}] {type(error).__name__}: {error} {extra}")

    try:
        _capture_to_sentry(error, tags, extra)
    except Exception as e:
        logger.warning(f"Sentry capture failed: {e}")

    if not has_app_context():
        return None

    try:
        return _persist(error, tags, extra)
    except Exception as e:
        # Never let the error logger crash the caller
        logger.warning(f"Could not persist error log: {e}")
        try:
            from kiosk.models import db
            db.session.rollback()
        except Exception as rollback_error:
            logger.debug(f"Rollback after error log failure also failed: {rollback_error}")
        return None
