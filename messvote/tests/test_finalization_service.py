"""
菜单定稿服务测试
"""

from datetime import datetime, timedelta, timezone

from messvote.models.vote import FinalizeOutcome
from messvote.services.finalization_service import FinalizationService, iso_week_key
from messvote.services.voting_service import VotingService

MONDAY = datetime(2026, 10, 19, 9, 0)
TUESDAY = MONDAY + timedelta(days=1)


def winner_map(winners):
    return {(w.day, w.category): w.item.item_id for w in winners}


class TestFinalize:
    """手动定稿与重置"""

    def test_initial_state_is_open(self, test_db):
        state = FinalizationService(test_db).get_state()
        assert state.is_finalized is False
        assert state.finalized_at is None

    def test_finalize_picks_highest_votes(self, test_db, manager, sample_items, set_votes):
        """同一餐段票数最高的菜品胜出"""
        set_votes(sample_items["biryani"].item_id, 3)
        set_votes(sample_items["meals"].item_id, 5)

        result = FinalizationService(test_db).finalize(manager)

        assert result.outcome == FinalizeOutcome.SUCCESS
        assert result.state.is_finalized is True
        assert result.state.finalized_by == manager.id
        assert winner_map(result.winners)[("monday", "lunch")] == sample_items["meals"].item_id

    def test_one_winner_per_slot(self, test_db, manager, sample_items):
        result = FinalizationService(test_db).finalize(manager)

        assert set(winner_map(result.winners)) == {
            ("monday", "breakfast"), ("monday", "lunch"), ("tuesday", "dinner")
        }

    def test_tie_broken_by_lowest_item_id(self, test_db, manager, sample_items, set_votes):
        """同票时 item_id 小的胜出，结果可重复"""
        set_votes(sample_items["idli"].item_id, 4)
        set_votes(sample_items["dosa"].item_id, 4)
        service = FinalizationService(test_db)

        first = winner_map(service.finalize(manager).winners)
        assert first[("monday", "breakfast")] == sample_items["idli"].item_id
        assert winner_map(service.winners()) == first

    def test_finalize_twice_is_conflict(self, test_db, manager, sample_items):
        service = FinalizationService(test_db)
        service.finalize(manager)

        result = service.finalize(manager)

        assert result.outcome == FinalizeOutcome.CONFLICT
        assert result.state.is_finalized is True
        logs = test_db.execute_one("SELECT COUNT(*) AS total FROM logs WHERE action = 'menu_finalize'")
        assert logs["total"] == 1

    def test_student_cannot_finalize(self, test_db, student, sample_items):
        result = FinalizationService(test_db).finalize(student)

        assert result.outcome == FinalizeOutcome.PERMISSION_DENIED
        assert FinalizationService(test_db).get_state().is_finalized is False

    def test_finalize_reset_finalize_round_trip(self, test_db, manager, student, other_student,
                                                sample_items):
        """定稿 -> 重置 -> 再定稿，胜出菜品按最新票数重新计算"""
        service = FinalizationService(test_db)
        voting = VotingService(test_db)
        voting.cast_vote(student, sample_items["biryani"].item_id)

        first = service.finalize(manager)
        assert winner_map(first.winners)[("monday", "lunch")] == sample_items["biryani"].item_id

        reset = service.reset(manager)
        assert reset.outcome == FinalizeOutcome.SUCCESS
        assert reset.state.is_finalized is False
        assert reset.state.finalized_at is None

        voting.cast_vote(student, sample_items["meals"].item_id)
        voting.cast_vote(other_student, sample_items["meals"].item_id)

        second = service.finalize(manager)
        assert second.state.is_finalized is True
        assert winner_map(second.winners)[("monday", "lunch")] == sample_items["meals"].item_id

    def test_reset_keeps_votes(self, test_db, manager, student, sample_items):
        service = FinalizationService(test_db)
        VotingService(test_db).cast_vote(student, sample_items["idli"].item_id)
        service.finalize(manager)

        service.reset(manager)

        row = test_db.execute_one(
            "SELECT votes FROM menu_items WHERE item_id = ?", [sample_items["idli"].item_id]
        )
        assert row["votes"] == 1
        assert VotingService(test_db).my_votes(student) == [sample_items["idli"].item_id]

    def test_reset_when_open_is_conflict(self, test_db, manager):
        result = FinalizationService(test_db).reset(manager)
        assert result.outcome == FinalizeOutcome.CONFLICT

    def test_student_cannot_reset(self, test_db, manager, student):
        service = FinalizationService(test_db)
        service.finalize(manager)

        assert service.reset(student).outcome == FinalizeOutcome.PERMISSION_DENIED
        assert service.get_state().is_finalized is True

    def test_finalize_with_no_items(self, test_db, manager):
        result = FinalizationService(test_db).finalize(manager)

        assert result.outcome == FinalizeOutcome.SUCCESS
        assert result.winners == []


class TestAutoFinalize:
    """每周自动定稿"""

    def test_iso_week_key(self):
        assert iso_week_key(MONDAY) == "2026-W43"

    def test_not_due_on_other_days(self, test_db, sample_items):
        assert FinalizationService(test_db).finalize_if_due(TUESDAY) is None
        assert FinalizationService(test_db).get_state().is_finalized is False

    def test_finalizes_once_per_week(self, test_db, sample_items):
        service = FinalizationService(test_db)

        result = service.finalize_if_due(MONDAY)
        assert result.outcome == FinalizeOutcome.SUCCESS
        assert result.state.is_finalized is True
        assert result.state.finalized_by is None
        assert result.state.auto_finalized_week == "2026-W43"

        assert service.finalize_if_due(MONDAY + timedelta(hours=2)) is None

    def test_reset_same_week_does_not_refinalize(self, test_db, manager, sample_items):
        """同一周内管理员重置后，自动定稿不会再次触发"""
        service = FinalizationService(test_db)
        service.finalize_if_due(MONDAY)
        service.reset(manager)

        assert service.finalize_if_due(MONDAY + timedelta(hours=1)) is None
        assert service.get_state().is_finalized is False

    def test_next_week_finalizes_again(self, test_db, manager, sample_items):
        service = FinalizationService(test_db)
        service.finalize_if_due(MONDAY)
        service.reset(manager)

        result = service.finalize_if_due(MONDAY + timedelta(days=7))

        assert result.outcome == FinalizeOutcome.SUCCESS
        assert result.state.auto_finalized_week == "2026-W44"

    def test_already_finalized_records_week(self, test_db, manager, sample_items):
        service = FinalizationService(test_db)
        service.finalize(manager)

        result = service.finalize_if_due(MONDAY)

        assert result.outcome == FinalizeOutcome.CONFLICT
        assert service.get_state().auto_finalized_week == "2026-W43"
        assert service.finalize_if_due(MONDAY) is None

    def test_aware_time_converted_to_local_timezone(self, test_db, sample_items):
        """UTC 周日晚上在 Asia/Kolkata 已是周一"""
        sunday_utc = datetime(2026, 10, 18, 20, 0, tzinfo=timezone.utc)

        result = FinalizationService(test_db).finalize_if_due(sunday_utc)

        assert result is not None
        assert result.outcome == FinalizeOutcome.SUCCESS


class TestBackendFailure:
    """数据库写入失败时返回 aborted，状态保持不变"""

    def drop_logs(self, db):
        with db.transaction() as conn:
            conn.execute("DROP TABLE logs")

    def test_finalize_backend_error(self, test_db, manager, sample_items):
        self.drop_logs(test_db)
        service = FinalizationService(test_db)

        result = service.finalize(manager)

        assert result.outcome == FinalizeOutcome.ABORTED
        assert service.get_state().is_finalized is False

    def test_reset_backend_error(self, test_db, manager, sample_items):
        service = FinalizationService(test_db)
        service.finalize(manager)
        self.drop_logs(test_db)

        result = service.reset(manager)

        assert result.outcome == FinalizeOutcome.ABORTED
        assert service.get_state().is_finalized is True

    def test_auto_finalize_backend_error(self, test_db, sample_items):
        self.drop_logs(test_db)
        service = FinalizationService(test_db)

        result = service.finalize_if_due(MONDAY)

        assert result.outcome == FinalizeOutcome.ABORTED
        state = service.get_state()
        assert state.is_finalized is False
        assert state.auto_finalized_week is None
