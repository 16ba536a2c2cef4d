import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_logger = logging.getLogger("audit")


def audit(event: str, *, user_id: Optional[str] = None, budget_id: Optional[str] = None, **fields: Any) -> None:
    """Emit a budget lifecycle event as a single JSON line.

    Decimal, date and UUID values are rendered with str().
    """
    payload: Dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "event": event,
    }
    if user_id:
        payload["user_id"] = str(user_id)
    if budget_id:
        payload["budget_id"] = str(budget_id)
    if fields:
        payload.update(fields)
    try:
        _logger.info(json.dumps(payload, ensure_ascii=False, default=str))
    except (TypeError, ValueError):
        # Fallback to plain message if JSON logging fails
        _logger.info(f"AUDIT {event} user_id={user_id} budget_id={budget_id} fields={fields}")
