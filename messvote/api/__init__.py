"""
API routes and endpoints.
"""

from fastapi import APIRouter
from .v1 import auth, logs, menu, menu_state, users, votes

api_router = APIRouter()

# 包含所有v1路由
api_router.include_router(auth.router, prefix="/auth", tags=["认证"])
api_router.include_router(users.router, prefix="/users", tags=["用户"])
api_router.include_router(menu.router, prefix="/menu", tags=["菜单"])
api_router.include_router(votes.router, prefix="/votes", tags=["投票"])
api_router.include_router(menu_state.router, prefix="/menu-state", tags=["定稿"])
api_router.include_router(logs.router, prefix="/logs", tags=["日志"])
