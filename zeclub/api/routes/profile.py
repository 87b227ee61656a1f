"""
zeclub.api.routes.profile — Member profile (ZE Tag)
====================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from zeclub.api.deps import get_current_member, get_engine
from zeclub.api.schemas import CamelModel
from zeclub.database.engine import run_db
from zeclub.services import user_service

router = APIRouter(prefix="/user/profile", tags=["profile"])


class ZeTagChange(CamelModel):
    ze_tag: str = ""


@router.get("/check-zetag")
def check_ze_tag(
    ze_tag: str = Query(default="", alias="zeTag"),
    user: dict = Depends(get_current_member),
    engine=Depends(get_engine),
):
    return user_service.check_ze_tag(engine, user["user_id"], ze_tag)


@router.patch("/change-zetag")
async def change_ze_tag(
    body: ZeTagChange,
    user: dict = Depends(get_current_member),
    engine=Depends(get_engine),
):
    return await run_db(user_service.change_ze_tag, engine, user["user_id"], body.ze_tag)
