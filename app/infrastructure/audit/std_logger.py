import json
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from ...application.ports.audit_logger import AuditLogger
from ...utils import hash_phone_number, mask_phone


class StdAuditLogger(AuditLogger):
    """Writes one JSON ``AUDIT:`` line per authentication event.

    Raw phone numbers never reach the log: entries carry a SHA-256 of the
    number for correlation plus a masked form for humans.
    """

    def __init__(self, logger_name: str = "audit") -> None:
        self._logger = logging.getLogger(logger_name)

    def log(self, action: str, phone: str, user_id: Optional[str] = None, success: bool = True, details: Optional[Dict[str, Any]] = None) -> None:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "action": action,
            "phone_hash": hash_phone_number(phone),
            "phone": mask_phone(phone),
            "user_id": user_id,
            "success": success,
            "details": details or {},
        }
        level = logging.INFO if success else logging.WARNING
        self._logger.log(level, f"AUDIT: {json.dumps(entry, default=str)}")
