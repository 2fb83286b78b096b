"""
菜单定稿路由模块
"""

from fastapi import APIRouter, Depends

from ...core.database import DatabaseManager, get_db
from ...core.error_handler import ErrorResponse, create_success_response
from ...core.security import get_current_principal
from ...models.user import Principal
from ...models.vote import FinalizeOutcome, FinalizeResult
from ...schemas.menu import MenuStateResponse
from ...services.finalization_service import FinalizationService

router = APIRouter()

OUTCOME_STATUS = {
    FinalizeOutcome.CONFLICT: 409,
    FinalizeOutcome.PERMISSION_DENIED: 403,
    FinalizeOutcome.ABORTED: 503,
}


def state_response(result: FinalizeResult):
    """把定稿/重置结果转换为HTTP响应"""
    if result.ok:
        body = MenuStateResponse(outcome=result.outcome, state=result.state, winners=result.winners)
        return create_success_response(body.model_dump(mode="json"), result.message)
    details = {"outcome": result.outcome.value}
    if result.state is not None:
        details["state"] = result.state.model_dump(mode="json")
    return ErrorResponse(
        error_code="STATE_CONFLICT" if result.outcome == FinalizeOutcome.CONFLICT else result.outcome.value.upper(),
        message=result.message,
        details=details,
        http_status=OUTCOME_STATUS[result.outcome]
    ).to_json_response()


@router.get("")
def get_menu_state(
    principal: Principal = Depends(get_current_principal),
    db: DatabaseManager = Depends(get_db)
):
    """当前菜单状态；已定稿时附带各餐段胜出菜品"""
    service = FinalizationService(db)
    state = service.get_state()
    winners = service.winners() if state.is_finalized else []
    body = MenuStateResponse(state=state, winners=winners)
    return create_success_response(body.model_dump(mode="json"))


@router.post("/finalize")
def finalize_menu(
    principal: Principal = Depends(get_current_principal),
    db: DatabaseManager = Depends(get_db)
):
    """定稿本周菜单（管理员功能）"""
    return state_response(FinalizationService(db).finalize(principal))


@router.post("/reset")
def reset_menu(
    principal: Principal = Depends(get_current_principal),
    db: DatabaseManager = Depends(get_db)
):
    """重置菜单状态，重新开放投票（管理员功能）"""
    return state_response(FinalizationService(db).reset(principal))
