from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.db import get_db
from app.models import VacationStatus
from app.schemas import (
    VacationBalanceRead,
    VacationRequestCreate,
    VacationRequestRead,
    VacationReviewRequest,
)
from app.security import Actor, require_actor, require_reviewer
from app.services.schedule import department_local_date
from app.services.vacations import (
    cancel_vacation_request,
    get_vacation_balance,
    list_my_requests,
    list_review_queue,
    request_vacation,
    review_vacation_request,
)

router = APIRouter(tags=["vacations"])


@router.get("/api/vacations/balance", response_model=VacationBalanceRead)
def vacation_balance(
    year: int | None = Query(default=None, ge=2000, le=2100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> VacationBalanceRead:
    resolved_year = year or department_local_date(db, actor.department_id).year
    balance = get_vacation_balance(db, user_id=actor.user_id, year=resolved_year)
    return VacationBalanceRead(year=resolved_year, **balance.to_dict())


@router.get("/api/vacations/requests", response_model=list[VacationRequestRead])
def my_vacation_requests(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> list[VacationRequestRead]:
    return [VacationRequestRead.model_validate(item) for item in list_my_requests(db, actor=actor)]


@router.post("/api/vacations/requests", response_model=VacationRequestRead, status_code=201)
def create_vacation_request(
    payload: VacationRequestCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> VacationRequestRead:
    request = request_vacation(
        db,
        actor=actor,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason,
    )
    return VacationRequestRead.model_validate(request)


@router.post("/api/vacations/requests/{request_id}/cancel", response_model=VacationRequestRead)
def cancel_request(
    request_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> VacationRequestRead:
    return VacationRequestRead.model_validate(cancel_vacation_request(db, actor=actor, request_id=request_id))


@router.get("/api/vacations/review-queue", response_model=list[VacationRequestRead])
def review_queue(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_reviewer),
) -> list[VacationRequestRead]:
    return [VacationRequestRead.model_validate(item) for item in list_review_queue(db, actor=actor)]


@router.post("/api/vacations/requests/{request_id}/review", response_model=VacationRequestRead)
def review_request(
    request_id: int,
    payload: VacationReviewRequest,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_reviewer),
) -> VacationRequestRead:
    reviewed = review_vacation_request(
        db,
        actor=actor,
        request_id=request_id,
        decision=VacationStatus(payload.status),
        review_comment=payload.review_comment,
        request_id_header=getattr(request.state, "request_id", None),
    )
    return VacationRequestRead.model_validate(reviewed)
