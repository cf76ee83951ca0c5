import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from db.database import get_db
from services.notification_service import NOTIFICATION_TYPES, send_batch_reminders, send_direct_notification
from utils.validation import validate_contact_for_plan

router = APIRouter(prefix="/notifications", tags=["notifications"])
logger = logging.getLogger(__name__)


class NotificationRequest(BaseModel):
    type: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    name: Optional[str] = None
    message: Optional[str] = None


@router.post("")
def send_notification(req: NotificationRequest, db: Session = Depends(get_db)):
    if req.type not in NOTIFICATION_TYPES:
        raise HTTPException(status_code=400, detail=f"Unknown notification type: {req.type}")
    if req.type == "batch-reminder":
        result = send_batch_reminders(db)
        return {"success": True, "type": req.type, **result.to_dict()}

    errors = validate_contact_for_plan(req.email, req.phone_number)
    if errors:
        raise HTTPException(status_code=400, detail={"message": "Invalid recipient", "errors": errors})
    results = send_direct_notification(
        req.type,
        email=req.email,
        phone_number=req.phone_number,
        custom_message=req.message,
        name=req.name,
    )
    logger.info(f"Notification {req.type} delivered: {results}")
    return {"success": any(results.values()), "type": req.type, "results": results}
