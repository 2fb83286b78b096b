"""
自动定稿调度器
在应用生命周期内周期性调用 finalize_if_due，是否真正定稿由数据库里的周标记决定
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from ..core.exceptions import BaseApplicationError
from .finalization_service import FinalizationService

logger = logging.getLogger(__name__)


class AutoFinalizeScheduler:
    """后台定时任务"""

    def __init__(
        self,
        service: FinalizationService,
        interval_seconds: float = 300,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.service = service
        self.interval_seconds = interval_seconds
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self):
        """执行一次检查"""
        try:
            now = self.clock() if self.clock else None
            result = self.service.finalize_if_due(now)
        except BaseApplicationError as e:
            logger.error("Auto finalize check failed: %s", e.message)
            return None
        except Exception:
            logger.exception("Auto finalize check crashed, will retry next tick")
            return None
        if result is not None:
            logger.info("Auto finalize check: %s", result.outcome.value)
        return result

    async def _run(self):
        while True:
            await asyncio.to_thread(self.tick)
            await asyncio.sleep(self.interval_seconds)

    def start(self):
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info("Auto finalize scheduler started (every %ss)", self.interval_seconds)

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Auto finalize scheduler stopped")
