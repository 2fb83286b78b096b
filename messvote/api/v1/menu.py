"""
菜单路由模块
菜品的查询、提议、编辑、删除，以及每周菜单视图、票数排名和导出
"""

import io
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from ...core.database import DatabaseManager, get_db
from ...core.error_handler import create_success_response
from ...core.security import get_current_principal, require_management
from ...models.menu import DayOfWeek, MenuCategory
from ...models.user import Principal
from ...schemas.menu import MenuItemCreateRequest, MenuItemUpdateRequest, WeeklyMenuResponse
from ...services.export_service import ExportService
from ...services.menu_service import MenuService
from ...services.voting_service import VotingService

router = APIRouter()


@router.get("/items")
def list_items(
    day: Optional[DayOfWeek] = None,
    category: Optional[MenuCategory] = None,
    principal: Principal = Depends(get_current_principal),
    db: DatabaseManager = Depends(get_db)
):
    """按星期/餐别列出菜品"""
    items = MenuService(db).list_items(day=day, category=category)
    return create_success_response([item.model_dump(mode="json") for item in items])


@router.get("/items/{item_id}")
def get_item(
    item_id: int,
    principal: Principal = Depends(get_current_principal),
    db: DatabaseManager = Depends(get_db)
):
    """获取菜品详情"""
    item = MenuService(db).get_item(item_id)
    return create_success_response(item.model_dump(mode="json"))


@router.post("/items")
def propose_item(
    req: MenuItemCreateRequest,
    principal: Principal = Depends(require_management),
    db: DatabaseManager = Depends(get_db)
):
    """提议新菜品（管理员功能）"""
    item = MenuService(db).propose_item(principal, req)
    return create_success_response(item.model_dump(mode="json"), "Menu item has been added")


@router.patch("/items/{item_id}")
def update_item(
    item_id: int,
    req: MenuItemUpdateRequest,
    principal: Principal = Depends(require_management),
    db: DatabaseManager = Depends(get_db)
):
    """编辑菜品（管理员功能）"""
    item = MenuService(db).update_item(principal, item_id, req)
    return create_success_response(item.model_dump(mode="json"), "Menu item updated")


@router.delete("/items/{item_id}")
def delete_item(
    item_id: int,
    principal: Principal = Depends(require_management),
    db: DatabaseManager = Depends(get_db)
):
    """删除菜品（管理员功能），该菜品的投票记录一并删除"""
    removed_votes = MenuService(db).delete_item(principal, item_id)
    return create_success_response(
        {"item_id": item_id, "removed_votes": removed_votes},
        "Menu item deleted"
    )


@router.get("/weekly")
def get_weekly_menu(
    principal: Principal = Depends(get_current_principal),
    db: DatabaseManager = Depends(get_db)
):
    """
    每周菜单
    管理员看到全部菜品及排名；学生在投票期看到全部菜品，定稿后只看到胜出菜品
    """
    view = MenuService(db).weekly_menu(principal)
    return create_success_response(WeeklyMenuResponse(**view).model_dump(mode="json"))


@router.get("/tally")
def get_tally(
    day: DayOfWeek,
    category: MenuCategory,
    principal: Principal = Depends(require_management),
    db: DatabaseManager = Depends(get_db)
):
    """某天某餐段的票数排名（管理员功能）"""
    items = VotingService(db).tally(day, category)
    return create_success_response({
        "day": day.value,
        "category": category.value,
        "items": [item.model_dump(mode="json") for item in items],
    })


@router.get("/export")
def export_tally(
    principal: Principal = Depends(require_management),
    db: DatabaseManager = Depends(get_db)
):
    """导出投票统计为Excel文件"""
    excel_data = ExportService(db).export_tally_excel(principal)
    filename = f"menu_tally_{date.today().isoformat()}.xlsx"
    return StreamingResponse(
        io.BytesIO(excel_data),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )
