"""Append-only ``audit_logs`` writer shared by every mutating operation."""

from typing import Any, Optional

from sqlalchemy.orm import Session

from bizledger.core.config import get_settings
from bizledger.models.ledger import AuditLog

REDACTED = "[REDACTED]"
DEFAULT_REDACTED_KEYS = frozenset({"phone", "email", "address", "ssn", "tax_id"})


def redact(value: Any, keys: frozenset[str]) -> Any:
    """Replace values under any key in *keys* (case-insensitive), recursively."""
    if isinstance(value, dict):
        return {
            k: REDACTED if isinstance(k, str) and k.lower() in keys else redact(v, keys)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [redact(item, keys) for item in value]
    return value


def _redaction_keys() -> frozenset[str] | None:
    settings = get_settings()
    if not settings.pii_redaction_enabled:
        return None
    configured = frozenset(item.lower() for item in settings.pii_redaction_fields)
    return configured or DEFAULT_REDACTED_KEYS


def create_audit_log(
    db: Session,
    *,
    entity_type: str,
    entity_id: str,
    action: str,
    old_value: Optional[dict[str, Any]],
    new_value: Optional[dict[str, Any]],
    actor_type: str,
    actor_id: Optional[str],
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> None:
    """Stage an audit entry on *db*; the caller owns the commit."""
    keys = _redaction_keys()
    if keys is not None:
        old_value, new_value, metadata = (redact(v, keys) for v in (old_value, new_value, metadata))

    db.add(
        AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            old_value=old_value,
            new_value=new_value,
            actor_type=actor_type,
            actor_id=actor_id,
            ip_address=ip_address,
            user_agent=user_agent,
            audit_meta=metadata,
        )
    )
