"""
投票路由模块
带类型的投票结果按种类映射为HTTP状态码，响应体始终包含 outcome
"""

from fastapi import APIRouter, Depends

from ...core.database import DatabaseManager, get_db
from ...core.error_handler import ErrorResponse, create_success_response
from ...core.security import get_current_principal
from ...models.user import Principal
from ...models.vote import VoteOutcome, VoteResult
from ...schemas.menu import MyVotesResponse, VoteResponse
from ...services.voting_service import VotingService

router = APIRouter()

OUTCOME_STATUS = {
    VoteOutcome.ALREADY_VOTED: 409,
    VoteOutcome.NOT_VOTED: 409,
    VoteOutcome.VOTING_CLOSED: 409,
    VoteOutcome.NOT_FOUND: 404,
    VoteOutcome.PERMISSION_DENIED: 403,
    VoteOutcome.ABORTED: 503,
}


def vote_response(result: VoteResult, success_message: str):
    """把投票结果转换为HTTP响应"""
    body = VoteResponse(outcome=result.outcome, item_id=result.item_id, votes=result.votes)
    if result.ok:
        return create_success_response(body.model_dump(mode="json"), success_message)
    return ErrorResponse(
        error_code=result.outcome.value.upper(),
        message=result.message,
        details=body.model_dump(mode="json"),
        http_status=OUTCOME_STATUS[result.outcome]
    ).to_json_response()


@router.get("/me")
def get_my_votes(
    principal: Principal = Depends(get_current_principal),
    db: DatabaseManager = Depends(get_db)
):
    """当前用户已投票的菜品"""
    item_ids = VotingService(db).my_votes(principal)
    return create_success_response(MyVotesResponse(item_ids=item_ids).model_dump())


@router.post("/{item_id}")
def cast_vote(
    item_id: int,
    principal: Principal = Depends(get_current_principal),
    db: DatabaseManager = Depends(get_db)
):
    """投票"""
    result = VotingService(db).cast_vote(principal, item_id)
    return vote_response(result, "Vote recorded")


@router.delete("/{item_id}")
def revoke_vote(
    item_id: int,
    principal: Principal = Depends(get_current_principal),
    db: DatabaseManager = Depends(get_db)
):
    """撤票"""
    result = VotingService(db).revoke_vote(principal, item_id)
    return vote_response(result, "Vote removed")
