from typing import Optional, Dict, Any, Protocol


class AuditLogger(Protocol):
    # action is one of: otp_send, otp_verify, reverse_otp_init, login
    def log(self, action: str, phone: str, user_id: Optional[str] = None, success: bool = True, details: Optional[Dict[str, Any]] = None) -> None:
        ...
