"""週次希望 API ルート

POST /api/preferences                 → 201 PreferencesResponse
GET  /api/preferences/me?scheduleId=  → 200 PreferencesResponse | 404
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from carpool.entrypoints.api.deps import (
    MemberContext,
    get_member_context,
    get_preference_store,
)
from carpool.entrypoints.api.schemas import PreferencesResponse, SubmitPreferencesRequest
from carpool.services.preference_store import PreferenceStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/preferences", tags=["preferences"])


@router.post(
    "", status_code=status.HTTP_201_CREATED, response_model=PreferencesResponse
)
async def submit_preferences(
    body: SubmitPreferencesRequest,
    ctx: MemberContext = Depends(get_member_context),
    store: PreferenceStore = Depends(get_preference_store),
) -> PreferencesResponse:
    """
    自分のファミリーの週次希望を提出する（再提出は置き換え）。

    3+2+2 ルール違反は 422（category に超過区分）。
    """
    saved = store.submit(
        family_id=ctx.family_id,
        schedule_id=body.schedule_id,
        days=[d.to_domain() for d in body.driving_availability],
        special_requests=body.special_requests,
        emergency_contact=body.emergency_contact_domain(),
    )
    return PreferencesResponse.from_domain(saved)


@router.get("/me", response_model=PreferencesResponse)
async def get_my_preferences(
    schedule_id: str = Query(alias="scheduleId"),
    ctx: MemberContext = Depends(get_member_context),
    store: PreferenceStore = Depends(get_preference_store),
) -> PreferencesResponse:
    """自分のファミリーの提出済み希望を返す"""
    prefs = store.get(ctx.family_id, schedule_id)
    if prefs is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Preferences not submitted",
        )
    return PreferencesResponse.from_domain(prefs)
