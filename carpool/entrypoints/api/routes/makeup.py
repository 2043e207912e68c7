"""メイクアップ API ルート

POST /api/makeup/travel                          → 200 BalanceResponse
GET  /api/makeup/balance                         → 200 BalanceResponse
POST /api/makeup/proposals                       → 201 MakeupProposalResponse
GET  /api/makeup/proposals?status=&mine=         → 200 [MakeupProposalResponse]
POST /api/admin/makeup/proposals/{id}/review     → 200 MakeupProposalResponse
POST /api/admin/makeup/proposals/{id}/complete   → 200 MakeupProposalResponse
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, status

from carpool.domain.models import MakeupStatus
from carpool.entrypoints.api.deps import (
    MemberContext,
    get_ledger,
    get_makeup_manager,
    get_member_context,
    require_admin,
)
from carpool.entrypoints.api.schemas import (
    BalanceResponse,
    MakeupProposalResponse,
    ProposeMakeupRequest,
    ReviewMakeupRequest,
    TravelRequest,
)
from carpool.services.fairness_ledger import FairnessLedger
from carpool.services.makeup_manager import MakeupManager

logger = logging.getLogger(__name__)
router = APIRouter(tags=["makeup"])


def _balance(ctx: MemberContext, manager: MakeupManager, ledger: FairnessLedger) -> BalanceResponse:
    return BalanceResponse(
        family_id=ctx.family_id,
        makeup_owed=ledger.outstanding_balance(ctx.group_id, ctx.family_id),
        available_balance=manager.available_balance(ctx.group_id, ctx.family_id),
    )


@router.post("/makeup/travel", response_model=BalanceResponse)
async def record_travel(
    body: TravelRequest,
    ctx: MemberContext = Depends(get_member_context),
    manager: MakeupManager = Depends(get_makeup_manager),
    ledger: FairnessLedger = Depends(get_ledger),
) -> BalanceResponse:
    """出張で運転できない日を記録する"""
    manager.record_travel(ctx.family_id, ctx.group_id, body.dates, body.reason)
    return _balance(ctx, manager, ledger)


@router.get("/makeup/balance", response_model=BalanceResponse)
async def get_balance(
    ctx: MemberContext = Depends(get_member_context),
    manager: MakeupManager = Depends(get_makeup_manager),
    ledger: FairnessLedger = Depends(get_ledger),
) -> BalanceResponse:
    return _balance(ctx, manager, ledger)


@router.post(
    "/makeup/proposals",
    status_code=status.HTTP_201_CREATED,
    response_model=MakeupProposalResponse,
)
async def propose_makeup(
    body: ProposeMakeupRequest,
    ctx: MemberContext = Depends(get_member_context),
    manager: MakeupManager = Depends(get_makeup_manager),
) -> MakeupProposalResponse:
    """メイクアップを提案する。残高を超える回数は 422"""
    proposal = manager.propose(
        family_id=ctx.family_id,
        group_id=ctx.group_id,
        proposed_date=body.proposed_date,
        proposed_time=body.proposed_time,
        makeup_type=body.makeup_type,
        trips_to_makeup=body.trips_to_makeup,
        notes=body.notes,
    )
    return MakeupProposalResponse.from_domain(proposal)


@router.get("/makeup/proposals", response_model=list[MakeupProposalResponse])
async def list_proposals(
    status_filter: MakeupStatus | None = Query(default=None, alias="status"),
    mine: bool = False,
    ctx: MemberContext = Depends(get_member_context),
    manager: MakeupManager = Depends(get_makeup_manager),
) -> list[MakeupProposalResponse]:
    """
    グループの提案一覧。

    管理者以外は自分のファミリーの提案のみ返す。
    """
    family_id = ctx.family_id if (mine or not ctx.is_admin) else None
    proposals = manager.list_for_group(ctx.group_id, family_id=family_id, status=status_filter)
    return [MakeupProposalResponse.from_domain(p) for p in proposals]


@router.post(
    "/admin/makeup/proposals/{proposal_id}/review",
    response_model=MakeupProposalResponse,
)
async def review_proposal(
    proposal_id: str,
    body: ReviewMakeupRequest,
    ctx: MemberContext = Depends(require_admin),
    manager: MakeupManager = Depends(get_makeup_manager),
) -> MakeupProposalResponse:
    """承認（approved）または却下（rejected）"""
    reviewed = manager.review(
        ctx.group_id, proposal_id, body.decision, ctx.uid, body.review_notes
    )
    return MakeupProposalResponse.from_domain(reviewed)


@router.post(
    "/admin/makeup/proposals/{proposal_id}/complete",
    response_model=MakeupProposalResponse,
)
async def complete_proposal(
    proposal_id: str,
    ctx: MemberContext = Depends(require_admin),
    manager: MakeupManager = Depends(get_makeup_manager),
) -> MakeupProposalResponse:
    """実施済みのメイクアップを完了にして台帳へ反映する"""
    return MakeupProposalResponse.from_domain(manager.complete(ctx.group_id, proposal_id))
