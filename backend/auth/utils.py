from sqlalchemy.orm import Session

from auth.models import GlobalStatsResponse, LoginResponse, UserResponse
from db.documents import UserDocument, UserDocumentV1, UserDocumentV2
from services.document_store import DocumentStore
from services.plan_service import (
    active_plan_id,
    hydrate_plan,
    plan_summary,
    user_plans,
)
from services.progress_service import progress_to_dict
from services.progress_state import ProgressState
from utils.datetime_utils import to_iso


def user_response(document: UserDocument) -> UserResponse:
    return UserResponse(
        email=document.email,
        name=document.name,
        phone_number=document.phone_number,
        schema_version=int(document.schema_version),
        created_at=to_iso(document.created_at),
        settings=document.settings.model_dump() if isinstance(document, UserDocumentV2) else None,
    )


def global_stats(document: UserDocument) -> GlobalStatsResponse:
    if isinstance(document, UserDocumentV1):
        return GlobalStatsResponse(
            total_points=document.total_points,
            current_streak=document.current_streak,
            longest_streak=document.longest_streak,
        )
    return GlobalStatsResponse(
        total_points=document.global_total_points,
        current_streak=document.global_current_streak,
        longest_streak=document.global_longest_streak,
    )


def login_response(db: Session, document: UserDocument) -> LoginResponse:
    """Everything a client needs after sign-in: user, plan list, active plan and its progress."""
    active_id = active_plan_id(document)
    plans = user_plans(document)
    active = next((plan for plan in plans if plan.plan_id == active_id), None)
    active_payload = None
    state_payload = None
    if active is not None:
        hydrated = hydrate_plan(DocumentStore(db), active)
        active_payload = hydrated.model_dump(mode="json")
        state_payload = progress_to_dict(active.plan_id, ProgressState.from_plan(active))
    return LoginResponse(
        user=user_response(document),
        plans=[plan_summary(plan, plan.plan_id == active_id).model_dump(mode="json") for plan in plans],
        active_plan=active_payload,
        user_state=state_payload,
        global_stats=global_stats(document),
    )
