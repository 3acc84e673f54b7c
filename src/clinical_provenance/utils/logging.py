# ============================================================================
# src/clinical_provenance/utils/logging.py
# ============================================================================
"""
Logging setup for the clinical provenance engine.

Log lines carry identifiers, counts and timings. Clinical values and
patient identifiers never go to the log.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..config.logging_config import logging_settings

TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[Path] = None,
    format_json: Optional[bool] = None,
) -> None:
    """
    Configure the root logger: console, plus a file when one is given.

    Args:
        level: Logging level name; LOG_LEVEL when omitted
        log_file: Optional file path for logging
        format_json: JSON lines instead of text; LOG_JSON when omitted
    """
    level = level or logging_settings.LOG_LEVEL
    if format_json is None:
        format_json = logging_settings.LOG_JSON

    formatter = JsonFormatter() if format_json else logging.Formatter(TEXT_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    handlers = [logging.StreamHandler()]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=getattr(logging, level.upper()), handlers=handlers, force=True)


class JsonFormatter(logging.Formatter):
    """One JSON object per record; structured context via extra={"context": {...}}."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        context = getattr(record, 'context', None)
        if context is not None:
            log_data['context'] = context

        return json.dumps(log_data, default=str)
