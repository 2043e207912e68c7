"""公平性台帳 API ルート

GET /api/groups/{groupId}/fairness → 200 [FairnessResponse]
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from carpool.entrypoints.api.deps import (
    MemberContext,
    ensure_same_group,
    get_ledger,
    get_member_context,
)
from carpool.entrypoints.api.schemas import FairnessResponse
from carpool.services.fairness_ledger import FairnessLedger

router = APIRouter(tags=["fairness"])


@router.get("/groups/{group_id}/fairness", response_model=list[FairnessResponse])
async def list_fairness(
    group_id: str,
    ctx: MemberContext = Depends(get_member_context),
    ledger: FairnessLedger = Depends(get_ledger),
) -> list[FairnessResponse]:
    """グループ全ファミリーの運転回数・メイクアップ残高"""
    ensure_same_group(ctx, group_id)
    return [FairnessResponse.from_domain(r) for r in ledger.list(group_id)]
