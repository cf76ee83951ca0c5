from collections import Counter
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from api.errors import to_http_exception
from config import settings
from db.database import get_db
from db.documents import ScheduleKind
from services.calendar_service import (
    calculate_streak,
    current_period_info,
    generate_calendar,
    month_progress,
    week_progress,
)
from services.errors import PlanEngineError
from services.plan_service import get_active_plan, load_user, user_timezone
from utils.datetime_utils import parse_iso_date, today_for_tz

router = APIRouter(prefix="/calendar", tags=["calendar"])


@router.get("")
def read_calendar(
    year: Optional[int] = Query(default=None, ge=1970, le=2100),
    schedule_type: ScheduleKind = "weekdays",
    flex_days_per_month: Optional[int] = Query(default=None, ge=0, le=31),
    days_per_week: Optional[int] = Query(default=None, ge=1, le=7),
    today: Optional[str] = None,
    email: Optional[str] = None,
    db: Session = Depends(get_db),
):
    tz_name = settings.DEFAULT_TIMEZONE
    plan = None
    try:
        if email:
            tz_name = user_timezone(load_user(db, email))
            plan = get_active_plan(db, email)
    except PlanEngineError as exc:
        raise to_http_exception(exc)
    try:
        reference = parse_iso_date(today) if today else today_for_tz(tz_name)
    except ValueError:
        raise HTTPException(status_code=400, detail="today must be YYYY-MM-DD")

    flex = settings.DEFAULT_FLEX_DAYS_PER_MONTH if flex_days_per_month is None else flex_days_per_month
    calendar = generate_calendar(year or reference.year, schedule_type, flex, days_per_week)
    period = current_period_info(calendar, reference)
    payload = {
        "year": year or reference.year,
        "schedule_type": schedule_type,
        "days": [day.to_dict() for day in calendar],
        "period": period,
    }
    if plan is not None:
        dates_by_task = {task.task_id: task.date for task in plan.daily_tasks}
        slots = Counter(dates_by_task[task_id] for task_id in plan.completed_tasks if task_id in dates_by_task)
        checked_in = [day for day, flag in plan.daily_check_ins.items() if flag]
        payload["plan_id"] = plan.plan_id
        payload["streak"] = calculate_streak(checked_in, calendar, reference)
        payload["week_progress"] = week_progress(calendar, slots, period["current_week"]).to_dict()
        payload["month_progress"] = month_progress(calendar, slots, period["current_month"]).to_dict()
    return payload
