"""JSON formatter for VulnTrack log and audit records."""

import json
import logging
from datetime import datetime
from enum import Enum
from typing import Dict, Any


# Attributes every LogRecord carries; anything else arrived through ``extra``
RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord('', 0, '', 0, '', (), None).__dict__
) | {'message', 'asctime'}

# Audit context promoted to the top level so log shippers can index on it
PROMOTED_FIELDS = ('event_type', 'event_category')


def _json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class StructuredFormatter(logging.Formatter):
    """Formats records as one JSON object per line.

    Enum values (statuses, severities, evidence types) are written as their
    string value and datetimes as ISO-8601. Other values that JSON cannot
    represent are written with ``str()``.
    """

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        if self.include_extra:
            extra_fields = self._extract_extra_fields(record)
            for name in PROMOTED_FIELDS:
                if name in extra_fields:
                    log_data[name] = extra_fields.pop(name)
            if extra_fields:
                log_data['extra'] = extra_fields

        return json.dumps(log_data, ensure_ascii=False, separators=(',', ':'))

    def _extract_extra_fields(self, record: logging.LogRecord) -> Dict[str, Any]:
        extra_fields = {}
        for key, value in record.__dict__.items():
            if key in RECORD_ATTRIBUTES or key.startswith('_'):
                continue
            value = _json_value(value)
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = str(value)
            extra_fields[key] = value

        return extra_fields
