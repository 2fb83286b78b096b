"""
导出服务
把本周投票统计导出为 Excel 文件（概况 / 票数排名 / 胜出菜品 三个工作表）
"""

import io
import logging
from datetime import datetime
from typing import List

import pandas as pd

from ..core.database import DatabaseManager, db_manager
from ..core.exceptions import PermissionDeniedError
from ..models.menu import CATEGORY_ORDER, DAY_ORDER, MenuState, SlotWinner
from ..models.user import Principal
from .finalization_service import FinalizationService
from .voting_service import VotingService

logger = logging.getLogger(__name__)


class ExportService:
    """导出服务"""

    def __init__(self, db: DatabaseManager = None):
        self.db = db or db_manager

    def export_tally_excel(self, principal: Principal) -> bytes:
        """导出投票统计为Excel文件"""
        if not principal.is_management:
            raise PermissionDeniedError("Management access required")

        finalization = FinalizationService(self.db)
        voting = VotingService(self.db)
        state = finalization.get_state()
        winners = finalization.winners()

        tally_rows = []
        for day in DAY_ORDER:
            for category in CATEGORY_ORDER:
                for item in voting.tally(day, category):
                    tally_rows.append({
                        "Day": day.capitalize(),
                        "Category": category.capitalize(),
                        "Rank": item.rank,
                        "Item ID": item.item_id,
                        "Title": item.title,
                        "Dietary": item.dietary_info,
                        "Votes": item.votes,
                    })

        excel_buffer = io.BytesIO()
        with pd.ExcelWriter(excel_buffer, engine="openpyxl") as writer:
            self._create_summary_sheet(writer, state, tally_rows, winners)
            self._create_tally_sheet(writer, tally_rows)
            self._create_winners_sheet(writer, winners)

        logger.info("Tally exported by %s (%d items)", principal.email, len(tally_rows))
        return excel_buffer.getvalue()

    def _create_summary_sheet(self, writer, state: MenuState, tally_rows: List[dict],
                              winners: List[SlotWinner]):
        """创建概况工作表"""
        summary_df = pd.DataFrame({
            "Field": [
                "Menu state", "Finalized at", "Menu items", "Total votes",
                "Slots with winners", "Exported at"
            ],
            "Value": [
                "Finalized" if state.is_finalized else "Open",
                state.finalized_at.strftime("%Y-%m-%d %H:%M:%S") if state.finalized_at else "",
                len(tally_rows),
                sum(row["Votes"] for row in tally_rows),
                len(winners),
                datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            ]
        })
        summary_df.to_excel(writer, sheet_name="Summary", index=False)

    def _create_tally_sheet(self, writer, tally_rows: List[dict]):
        """创建票数排名工作表"""
        columns = ["Day", "Category", "Rank", "Item ID", "Title", "Dietary", "Votes"]
        pd.DataFrame(tally_rows, columns=columns).to_excel(writer, sheet_name="Tally", index=False)

    def _create_winners_sheet(self, writer, winners: List[SlotWinner]):
        """创建胜出菜品工作表"""
        rows = [
            {
                "Day": w.day.capitalize(),
                "Category": w.category.capitalize(),
                "Item ID": w.item.item_id,
                "Title": w.item.title,
                "Votes": w.item.votes,
            }
            for w in winners
        ]
        columns = ["Day", "Category", "Item ID", "Title", "Votes"]
        pd.DataFrame(rows, columns=columns).to_excel(writer, sheet_name="Winners", index=False)
