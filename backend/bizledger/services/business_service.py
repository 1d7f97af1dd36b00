import logging
from typing import Any, Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bizledger.models.ledger import Business
from bizledger.schemas.business import BusinessCreate, BusinessOut, BusinessUpdate
from bizledger.services.audit_service import create_audit_log

logger = logging.getLogger(__name__)


def get_business_for_user(db: Session, user_id: str) -> Optional[Business]:
    return db.query(Business).filter(Business.user_id == user_id).first()


def require_business(db: Session, user_id: str) -> Business:
    business = get_business_for_user(db, user_id)
    if not business:
        raise HTTPException(404, "Business not found. Please set up your business first.")
    return business


def business_to_out(business: Business) -> BusinessOut:
    return BusinessOut(
        id=str(business.id),
        name=business.name,
        fiscal_start_date=business.fiscal_start_date,
        currency=business.currency,
        created_at=business.created_at,
        updated_at=business.updated_at,
    )


def _snapshot(business: Business) -> dict[str, Any]:
    return {
        "name": business.name,
        "fiscal_start_date": business.fiscal_start_date.isoformat() if business.fiscal_start_date else None,
        "currency": business.currency,
    }


def create_business(
    db: Session,
    user_id: str,
    payload: BusinessCreate,
    *,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Business:
    """Create the single business owned by *user_id* (409 if one exists)."""
    if get_business_for_user(db, user_id):
        raise HTTPException(409, "Business already exists")

    business = Business(
        user_id=user_id,
        name=payload.name.strip(),
        fiscal_start_date=payload.fiscal_start_date,
        currency=payload.currency,
    )
    db.add(business)
    try:
        db.flush()
        create_audit_log(
            db,
            entity_type="business",
            entity_id=str(business.id),
            action="BUSINESS_CREATED",
            old_value=None,
            new_value=_snapshot(business),
            actor_type="USER",
            actor_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        # Concurrent setup request won the uniq_business_owner race.
        raise HTTPException(409, "Business already exists") from exc

    db.refresh(business)
    logger.info("Business %s created for user %s", business.id, user_id)
    return business


def update_business(
    db: Session,
    business: Business,
    payload: BusinessUpdate,
    *,
    actor_id: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Business:
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        return business

    old = _snapshot(business)
    if "name" in changes:
        changes["name"] = changes["name"].strip()
    for key, value in changes.items():
        setattr(business, key, value)

    create_audit_log(
        db,
        entity_type="business",
        entity_id=str(business.id),
        action="BUSINESS_UPDATED",
        old_value=old,
        new_value=_snapshot(business),
        actor_type="USER",
        actor_id=actor_id,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.commit()
    db.refresh(business)
    return business
