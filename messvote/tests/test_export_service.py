"""
导出服务测试
"""

import io

import pandas as pd
import pytest

from messvote.core.exceptions import PermissionDeniedError
from messvote.services.export_service import ExportService
from messvote.services.finalization_service import FinalizationService


class TestExportService:
    """Excel 导出测试"""

    def test_export_workbook(self, test_db, manager, sample_items, set_votes):
        set_votes(sample_items["dosa"].item_id, 3)
        FinalizationService(test_db).finalize(manager)

        data = ExportService(test_db).export_tally_excel(manager)

        assert data[:2] == b"PK"
        sheets = pd.read_excel(io.BytesIO(data), sheet_name=None, engine="openpyxl")
        assert set(sheets) == {"Summary", "Tally", "Winners"}
        assert len(sheets["Tally"]) == 5
        winners = sheets["Winners"]
        breakfast = winners[(winners["Day"] == "Monday") & (winners["Category"] == "Breakfast")]
        assert breakfast.iloc[0]["Title"] == "Masala Dosa"

    def test_export_empty_menu(self, test_db, manager):
        data = ExportService(test_db).export_tally_excel(manager)
        sheets = pd.read_excel(io.BytesIO(data), sheet_name=None, engine="openpyxl")
        assert sheets["Tally"].empty

    def test_student_cannot_export(self, test_db, student):
        with pytest.raises(PermissionDeniedError):
            ExportService(test_db).export_tally_excel(student)
