import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.errors import to_http_exception
from auth.utils import global_stats, user_response
from db.database import get_db
from db.documents import PlanDocument, ThemePreference
from services.errors import PlanEngineError
from services.notification_service import send_welcome_notification
from services.plan_service import create_user, list_plan_summaries, load_user, update_user_settings

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)


class SignupRequest(BaseModel):
    email: str = Field(min_length=3, max_length=254)
    name: str = Field(min_length=1, max_length=100)
    phone_number: str = Field(min_length=1, max_length=32)
    plan: Optional[PlanDocument] = None


class SettingsUpdateRequest(BaseModel):
    email: str
    reminder_time: Optional[str] = None
    timezone: Optional[str] = None
    email_notifications: Optional[bool] = None
    sms_notifications: Optional[bool] = None
    theme: Optional[ThemePreference] = None


@router.post("", status_code=201)
def signup(req: SignupRequest, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    try:
        document = create_user(db, email=req.email, name=req.name, phone_number=req.phone_number, plan=req.plan)
    except PlanEngineError as exc:
        raise to_http_exception(exc)
    db.commit()
    logger.info(f"Created user {document.email} with {len(document.plans)} plan(s)")
    if document.plans:
        background_tasks.add_task(send_welcome_notification, document.email, document.phone_number, document.name)
    return {
        "status": "ok",
        "user": user_response(document).model_dump(),
        "active_plan_id": document.active_plan_id,
    }


@router.get("")
def get_user(email: str = Query(min_length=1), db: Session = Depends(get_db)):
    try:
        document = load_user(db, email)
        plans = list_plan_summaries(db, email)
    except PlanEngineError as exc:
        raise to_http_exception(exc)
    return {
        "user": user_response(document).model_dump(),
        "plans": [plan.model_dump(mode="json") for plan in plans],
        "global_stats": global_stats(document).model_dump(),
    }


@router.put("/settings")
def update_settings(req: SettingsUpdateRequest, db: Session = Depends(get_db)):
    changes = req.model_dump(exclude={"email"}, exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No settings to update")
    try:
        updated = update_user_settings(db, req.email, changes)
    except PlanEngineError as exc:
        raise to_http_exception(exc)
    db.commit()
    return {"status": "ok", "settings": updated.model_dump()}
