import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ai.plan_generator import GoalInput, generate_plan_content
from api.errors import to_http_exception
from db.database import get_db
from services.errors import PlanEngineError
from services.plan_builder import build_plan, default_total_days, minutes_for_commitment
from services.plan_service import add_plan, load_user, user_timezone

router = APIRouter(tags=["generation"])
logger = logging.getLogger(__name__)


class GeneratePlanRequest(BaseModel):
    goal: GoalInput
    email: Optional[str] = None
    save: bool = False


@router.post("/generate-plan")
async def generate_plan(req: GeneratePlanRequest, db: Session = Depends(get_db)):
    if req.save and not req.email:
        raise HTTPException(status_code=400, detail="email is required to save a generated plan")
    total_days = default_total_days(req.goal)
    try:
        tz_name = user_timezone(load_user(db, req.email)) if req.save else None
        content = await generate_plan_content(req.goal, total_days, minutes_for_commitment(req.goal.time_commitment))
        plan = build_plan(req.goal, content, tz_name=tz_name)
        if req.save:
            add_plan(db, req.email, plan)
    except PlanEngineError as exc:
        raise to_http_exception(exc)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if req.save:
        db.commit()
    logger.info(f"Generated plan {plan.plan_id}: {len(plan.daily_tasks)} tasks over {plan.total_days} days")
    return {"status": "ok", "saved": req.save, "plan": plan.model_dump(mode="json")}
