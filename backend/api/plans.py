import logging
from typing import Any, Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ai.plan_generator import GeneratedPlanContent, GoalInput
from api.errors import to_http_exception
from db.database import get_db
from db.documents import PlanDocument
from services.errors import InvalidInputError, PlanEngineError
from services.notification_service import send_welcome_notification
from services.plan_builder import build_plan
from services.plan_service import (
    active_plan_id,
    add_plan,
    delete_plan,
    get_plan,
    list_plan_summaries,
    load_user,
    switch_active_plan,
    update_plan,
    user_timezone,
)
from utils.validation import validate_contact_for_plan

router = APIRouter(prefix="/plans", tags=["plans"])
logger = logging.getLogger(__name__)


class PlanCreateRequest(BaseModel):
    email: str
    phone_number: Optional[str] = None
    plan: Optional[PlanDocument] = None
    goal: Optional[GoalInput] = None
    content: Optional[GeneratedPlanContent] = None


class PlanUpdateRequest(BaseModel):
    email: str
    action: Literal["switch", "update"]
    updates: dict[str, Any] = Field(default_factory=dict)


@router.get("")
def list_plans(email: str = Query(min_length=1), db: Session = Depends(get_db)):
    try:
        summaries = list_plan_summaries(db, email)
        active_id = active_plan_id(load_user(db, email))
    except PlanEngineError as exc:
        raise to_http_exception(exc)
    return {"plans": [s.model_dump(mode="json") for s in summaries], "active_plan_id": active_id}


@router.post("", status_code=201)
def create_plan(req: PlanCreateRequest, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    errors = validate_contact_for_plan(req.email, req.phone_number)
    if errors:
        raise to_http_exception(InvalidInputError("Contact details are required", errors))
    try:
        document = load_user(db, req.email)
        plan = req.plan
        if plan is None:
            if req.goal is None or req.content is None:
                raise InvalidInputError("Provide a plan, or a goal with generated content")
            plan = build_plan(req.goal, req.content, tz_name=user_timezone(document))
        updated = add_plan(db, req.email, plan)
    except PlanEngineError as exc:
        raise to_http_exception(exc)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    db.commit()
    logger.info(f"Added plan {plan.plan_id} for {updated.email} ({plan.total_tasks or len(plan.daily_tasks)} tasks)")
    background_tasks.add_task(send_welcome_notification, updated.email, updated.phone_number, updated.name)
    return {
        "status": "ok",
        "plan_id": plan.plan_id,
        "active_plan_id": updated.active_plan_id,
        "plan_count": len(updated.plans),
    }


@router.get("/{plan_id}")
def read_plan(plan_id: str, email: str = Query(min_length=1), db: Session = Depends(get_db)):
    try:
        plan = get_plan(db, email, plan_id)
    except PlanEngineError as exc:
        raise to_http_exception(exc)
    return plan.model_dump(mode="json")


@router.put("/{plan_id}")
def modify_plan(plan_id: str, req: PlanUpdateRequest, db: Session = Depends(get_db)):
    try:
        if req.action == "switch":
            document = switch_active_plan(db, req.email, plan_id)
            db.commit()
            return {"status": "ok", "active_plan_id": active_plan_id(document)}
        if not req.updates:
            raise InvalidInputError("No plan updates provided")
        plan = update_plan(db, req.email, plan_id, req.updates)
    except PlanEngineError as exc:
        raise to_http_exception(exc)
    db.commit()
    return {"status": "ok", "plan": plan.model_dump(mode="json", exclude={"daily_tasks"})}


@router.delete("/{plan_id}")
def remove_plan(plan_id: str, email: str = Query(min_length=1), db: Session = Depends(get_db)):
    try:
        document = delete_plan(db, email, plan_id)
    except PlanEngineError as exc:
        raise to_http_exception(exc)
    db.commit()
    return {"status": "ok", "active_plan_id": document.active_plan_id, "plan_count": len(document.plans)}
