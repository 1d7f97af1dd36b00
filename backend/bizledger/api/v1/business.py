from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from bizledger.core.auth import CurrentUser, get_current_user
from bizledger.core.dependencies import get_db
from bizledger.schemas.business import BusinessCreate, BusinessEnvelope, BusinessOut, BusinessUpdate
from bizledger.services.business_service import (
    business_to_out,
    create_business,
    get_business_for_user,
    require_business,
    update_business,
)
from bizledger.utils.rate_limit import get_client_ip, get_user_agent

router = APIRouter()


@router.get("/business", response_model=BusinessEnvelope)
def get_business(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    business = get_business_for_user(db, current_user.id)
    return BusinessEnvelope(business=business_to_out(business) if business else None)


@router.post("/business", response_model=BusinessOut, status_code=201)
def setup_business(
    payload: BusinessCreate,
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    business = create_business(
        db,
        current_user.id,
        payload,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return business_to_out(business)


@router.patch("/business", response_model=BusinessOut)
def patch_business(
    payload: BusinessUpdate,
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    business = require_business(db, current_user.id)
    business = update_business(
        db,
        business,
        payload,
        actor_id=current_user.id,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return business_to_out(business)
