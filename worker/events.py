from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **fields: Any) -> None:
    """Log one structured JSON line, e.g. {"event": "prices_ingested", ...}."""
    payload = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "lvl": logging.getLevelName(level).lower(),
        "event": event,
        **fields,
    }
    logger.log(level, json.dumps(payload, default=str))
