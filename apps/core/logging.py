"""
Custom logging formatters for structured JSON logging.
"""
import json
import logging
import re
import traceback
from datetime import datetime, timezone


class PIIMasker:
    """
    Utility class to mask sensitive data in logs.
    """

    EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')
    SECRET_PATTERN = re.compile(
        r'(token|secret|password|authorization)["\']?\s*[:=]\s*["\']?([^"\'\s,}]+)',
        re.IGNORECASE
    )

    SENSITIVE_FIELDS = {
        'password', 'password_hash',
        'token', 'access_token', 'bearer_token',
        'secret', 'secret_key', 'jwt_secret_key',
        'authorization',
    }

    @classmethod
    def mask_email(cls, text):
        """Keep the first character of the local part and the domain."""
        if not isinstance(text, str):
            return text

        def mask_email_match(match):
            username, _, domain = match.group(0).partition('@')
            if len(username) > 1:
                username = username[0] + '*' * (len(username) - 1)
            return f"{username}@{domain}"

        return cls.EMAIL_PATTERN.sub(mask_email_match, text)

    @classmethod
    def mask_secrets(cls, text):
        if not isinstance(text, str):
            return text
        return cls.SECRET_PATTERN.sub(r'\1: ********', text)

    @classmethod
    def mask_text(cls, text):
        """Apply all masking patterns to text."""
        if not isinstance(text, str):
            return text
        return cls.mask_secrets(cls.mask_email(text))

    @classmethod
    def mask_dict(cls, data):
        """Recursively mask sensitive data in dictionaries."""
        if not isinstance(data, dict):
            return data

        masked = {}
        for key, value in data.items():
            if str(key).lower() in cls.SENSITIVE_FIELDS and value and not isinstance(value, (dict, list)):
                masked[key] = '********'
            elif isinstance(value, dict):
                masked[key] = cls.mask_dict(value)
            elif isinstance(value, list):
                masked[key] = [
                    cls.mask_dict(item) if isinstance(item, dict) else cls.mask_text(item)
                    for item in value
                ]
            else:
                masked[key] = cls.mask_text(value)
        return masked


# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_ATTRS = frozenset([
    'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
    'levelno', 'lineno', 'module', 'msecs', 'message', 'pathname', 'process',
    'processName', 'relativeCreated', 'thread', 'threadName', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'asctime', 'request_id', 'tenant_id',
])


class JSONFormatter(logging.Formatter):
    """
    Format log records as JSON for structured logging.
    Includes request_id and tenant_id when the request filter attached them.
    """

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': PIIMasker.mask_text(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if getattr(record, 'request_id', None):
            log_data['request_id'] = record.request_id

        if getattr(record, 'tenant_id', None):
            log_data['tenant_id'] = str(record.tenant_id)

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': PIIMasker.mask_text(str(record.exc_info[1])),
                'traceback': [
                    PIIMasker.mask_text(line)
                    for line in traceback.format_exception(*record.exc_info)
                ],
            }

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith('_'):
                continue
            if isinstance(value, dict):
                value = PIIMasker.mask_dict(value)
            elif isinstance(value, str):
                value = PIIMasker.mask_text(value)
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = PIIMasker.mask_text(str(value))
            log_data[key] = value

        return json.dumps(log_data)


class SanitizingFormatter(logging.Formatter):
    """Plain-text formatter that masks the rendered line."""

    def format(self, record):
        return PIIMasker.mask_text(super().format(record))
