import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from api.errors import to_http_exception
from auth.models import CheckEmailRequest, CheckEmailResponse, LoginRequest, LoginResponse
from auth.utils import login_response
from db.database import get_db
from services.errors import PlanEngineError
from services.plan_service import user_exists, verify_login
from utils.validation import validate_email

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


@router.post("/login", response_model=LoginResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    try:
        document = verify_login(db, req.email, req.phone_number)
    except PlanEngineError as exc:
        logger.info(f"Login rejected for {req.email}: {exc}")
        raise to_http_exception(exc)
    return login_response(db, document)


@router.post("/check-email", response_model=CheckEmailResponse)
def check_email(req: CheckEmailRequest, db: Session = Depends(get_db)):
    if not validate_email(req.email):
        raise HTTPException(status_code=400, detail="Invalid email format")
    return CheckEmailResponse(exists=user_exists(db, req.email))
