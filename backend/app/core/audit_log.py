"""
Security audit logging

Structured, append-only records for every security decision:
- Login success/failure, logout
- Password reset requests and password changes
- Access denied / sensitive data access
- Rate limit trips

Records go to the "security" logger with the structured payload attached as
extra={"audit": {...}} so any handler/formatter can ship it as JSON.
Emission is fire-and-forget: a failing handler is reported on this module's
logger and never reaches the request path.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Any, Dict, Mapping

from app.core.config import settings

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = ("password", "secret", "token", "key", "credential")


class AuditEventKind(str, Enum):
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILURE = "login_failure"
    LOGOUT = "logout"
    PASSWORD_RESET_REQUEST = "password_reset_request"
    PASSWORD_CHANGE = "password_change"
    ACCESS_DENIED = "access_denied"
    SENSITIVE_DATA_ACCESS = "sensitive_data_access"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


@dataclass(frozen=True)
class AuditEvent:
    kind: AuditEventKind
    actor: Optional[str]
    ip: Optional[str]
    user_agent: Optional[str] = None
    extra: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_record(self) -> Dict[str, Any]:
        record = {
            "event": self.kind.value,
            "actor": self.actor,
            "ip": self.ip,
            "user_agent": self.user_agent,
            "timestamp": self.timestamp.isoformat(),
            "environment": settings.ENVIRONMENT,
        }
        # Filter out sensitive fields from extra
        for k, v in self.extra.items():
            if any(s in k.lower() for s in SENSITIVE_KEYS):
                continue
            record.setdefault(k, v)
        return record


class SecurityAuditLogger:
    """Emits security audit events. One method per event kind."""

    def __init__(self, audit_logger: Optional[logging.Logger] = None):
        self.logger = audit_logger or logging.getLogger("security")

    def emit(self, event: AuditEvent, message: str, level: int = logging.INFO) -> None:
        try:
            self.logger.log(level, message, extra={"audit": event.to_record()})
        except Exception as e:
            kind = getattr(getattr(event, "kind", None), "value", "unknown")
            logger.error(f"Failed to write security audit event '{kind}': {e}")

    def log_login(
        self,
        username: str,
        ip: Optional[str],
        user_agent: Optional[str] = None,
        **extra: Any,
    ) -> None:
        self.emit(
            AuditEvent(AuditEventKind.LOGIN_SUCCESS, username, ip, user_agent, extra),
            f"User login successful: {username}",
        )

    def log_login_failure(
        self,
        username: Optional[str],
        ip: Optional[str],
        reason: str,
        user_agent: Optional[str] = None,
        **extra: Any,
    ) -> None:
        """Actor is the raw submitted username, which may not exist."""
        self.emit(
            AuditEvent(
                AuditEventKind.LOGIN_FAILURE, username, ip, user_agent, {"reason": reason, **extra}
            ),
            f"Failed login attempt for {username!r}: {reason}",
            logging.WARNING,
        )

    def log_logout(self, username: str, ip: Optional[str], **extra: Any) -> None:
        self.emit(
            AuditEvent(AuditEventKind.LOGOUT, username, ip, None, extra),
            f"User logout: {username}",
        )

    def log_password_reset_request(
        self,
        email: str,
        ip: Optional[str],
        user_found: bool,
        **extra: Any,
    ) -> None:
        self.emit(
            AuditEvent(
                AuditEventKind.PASSWORD_RESET_REQUEST,
                email,
                ip,
                None,
                {"user_found": user_found, **extra},
            ),
            "Password reset requested",
        )

    def log_password_change(
        self,
        username: str,
        ip: Optional[str],
        method: str,
        **extra: Any,
    ) -> None:
        """method is "reset_token", "self_service" or "admin"."""
        self.emit(
            AuditEvent(AuditEventKind.PASSWORD_CHANGE, username, ip, None, {"method": method, **extra}),
            f"Password changed for {username} via {method}",
        )

    def log_access_denied(
        self,
        username: Optional[str],
        ip: Optional[str],
        resource: str,
        **extra: Any,
    ) -> None:
        self.emit(
            AuditEvent(
                AuditEventKind.ACCESS_DENIED, username, ip, None, {"resource": resource, **extra}
            ),
            f"Access denied to {resource} for {username}",
            logging.WARNING,
        )

    def log_sensitive_data_access(
        self,
        username: str,
        ip: Optional[str],
        resource: str,
        **extra: Any,
    ) -> None:
        self.emit(
            AuditEvent(
                AuditEventKind.SENSITIVE_DATA_ACCESS, username, ip, None, {"resource": resource, **extra}
            ),
            f"Sensitive data accessed: {resource} by {username}",
        )

    def log_rate_limit_exceeded(
        self,
        identifier: str,
        policy: str,
        ip: Optional[str],
        **extra: Any,
    ) -> None:
        self.emit(
            AuditEvent(
                AuditEventKind.RATE_LIMIT_EXCEEDED, identifier, ip, None, {"policy": policy, **extra}
            ),
            f"Rate limit exceeded: policy={policy} identifier={identifier}",
            logging.WARNING,
        )


security_audit = SecurityAuditLogger()
