"""
宿舍食堂菜单投票后端服务 - 主应用入口

主要功能模块：
- 学生/管理员邮箱认证
- 菜品提议和管理
- 每人每菜一票的投票
- 每周菜单定稿与重置（含每周自动定稿）
- 操作日志记录

技术栈：FastAPI + DuckDB + JWT认证
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .api import api_router
from .config.settings import settings
from .core.database import DatabaseManager, db_manager, get_db
from .core.error_handler import (
    application_error_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from .core.exceptions import BaseApplicationError
from .core.log_config import configure_logging
from .services.finalization_service import FinalizationService
from .services.scheduler import AutoFinalizeScheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    configure_logging()
    db_manager.init_database()

    scheduler = None
    if settings.auto_finalize_enabled:
        scheduler = AutoFinalizeScheduler(
            FinalizationService(db_manager),
            interval_seconds=settings.auto_finalize_interval_seconds
        )
        scheduler.start()
    app.state.scheduler = scheduler

    yield

    if scheduler is not None:
        await scheduler.stop()
    db_manager.close()
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """创建FastAPI应用"""
    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="Hostel mess weekly menu voting API",
        debug=settings.debug,
        lifespan=lifespan
    )

    # 添加中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 注册异常处理器
    app.add_exception_handler(BaseApplicationError, application_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # 注册路由
    app.include_router(api_router, prefix=settings.api_prefix)

    # 健康检查
    @app.get("/health")
    def health_check(db: DatabaseManager = Depends(get_db)):
        try:
            db.execute_one("SELECT 1 AS ok")
            return {
                "status": "healthy",
                "version": settings.api_version,
                "database": "connected"
            }
        except BaseApplicationError as e:
            return {
                "status": "unhealthy",
                "version": settings.api_version,
                "database": f"error: {e.message}"
            }

    @app.get("/")
    def root():
        return {
            "name": settings.api_title,
            "version": settings.api_version,
            "description": "Hostel mess weekly menu voting API"
        }

    return app


# 应用实例
app = create_app()
