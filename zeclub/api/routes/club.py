"""
zeclub.api.routes.club — Member endpoints (any valid session)
==============================================================
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header
from pydantic import Field

from zeclub.api.deps import get_current_member, get_engine
from zeclub.api.schemas import CamelModel
from zeclub.database.engine import run_db
from zeclub.services import mission_service, redemption_service, user_service
from zeclub.services.redemption_service import ContactDetails

router = APIRouter(prefix="/ze-club", tags=["ze-club"])


class MissionUpload(CamelModel):
    mission_id: int
    file_url: str = Field(min_length=1)


class RedemptionCreate(CamelModel):
    reward_id: int
    contact_name: str = ""
    contact_email: str = ""
    contact_phone: str = ""
    address: str = ""
    additional_notes: str | None = None


@router.post("/missions/upload", status_code=201)
async def upload_mission_proof(
    body: MissionUpload,
    user: dict = Depends(get_current_member),
    engine=Depends(get_engine),
):
    submission = await run_db(
        mission_service.submit_proof,
        engine,
        user_id=user["user_id"],
        mission_id=body.mission_id,
        proof_url=body.file_url,
    )
    return {"message": "Submission created successfully", "submission": submission}


@router.post("/redemption-requests")
async def create_redemption_request(
    body: RedemptionCreate,
    user: dict = Depends(get_current_member),
    engine=Depends(get_engine),
    idempotency_key: Annotated[
        str | None, Header(alias="Idempotency-Key", max_length=100)
    ] = None,
):
    receipt = await run_db(
        redemption_service.create_redemption,
        engine,
        user_id=user["user_id"],
        reward_id=body.reward_id,
        contact=ContactDetails(
            name=body.contact_name,
            email=body.contact_email,
            phone=body.contact_phone,
            address=body.address,
            notes=body.additional_notes,
        ),
        idempotency_key=idempotency_key,
    )
    return {
        "message": "Redemption request submitted successfully",
        "requestId": receipt.request_id,
        "cost": receipt.cost,
        "newBalance": receipt.new_balance,
        "replayed": receipt.replayed,
    }


@router.get("/user/dashboard")
def dashboard(
    user: dict = Depends(get_current_member),
    engine=Depends(get_engine),
):
    return user_service.get_dashboard(engine, user["user_id"])


@router.get("/user-redemptions")
def user_redemptions(
    user: dict = Depends(get_current_member),
    engine=Depends(get_engine),
):
    return redemption_service.list_user_redemptions(engine, user["user_id"])
