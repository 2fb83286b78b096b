"""
投票服务测试
覆盖一人一票、撤票、定稿后关闭投票以及并发投票的一致性
"""

import threading

import pytest

from messvote.models.vote import VoteOutcome
from messvote.services.finalization_service import FinalizationService
from messvote.services.voting_service import VotingService


def vote_count(db, item_id):
    return db.execute_one("SELECT votes FROM menu_items WHERE item_id = ?", [item_id])["votes"]


def vote_records(db, item_id):
    return db.execute_one(
        "SELECT COUNT(*) AS total FROM user_votes WHERE item_id = ?", [item_id]
    )["total"]


class TestCastVote:
    """投票测试"""

    def test_cast_vote_success(self, test_db, student, sample_items):
        """首次投票成功，票数加一并写入投票记录"""
        item = sample_items["idli"]
        result = VotingService(test_db).cast_vote(student, item.item_id)

        assert result.outcome == VoteOutcome.SUCCESS
        assert result.ok
        assert result.votes == 1
        assert vote_count(test_db, item.item_id) == 1
        assert vote_records(test_db, item.item_id) == 1

    def test_second_vote_is_rejected(self, test_db, student, sample_items):
        """重复投票返回 already_voted，票数不变"""
        item = sample_items["idli"]
        service = VotingService(test_db)
        service.cast_vote(student, item.item_id)

        result = service.cast_vote(student, item.item_id)

        assert result.outcome == VoteOutcome.ALREADY_VOTED
        assert result.votes is None
        assert vote_count(test_db, item.item_id) == 1
        assert vote_records(test_db, item.item_id) == 1

    def test_two_students_vote_same_item(self, test_db, student, other_student, sample_items):
        item = sample_items["biryani"]
        service = VotingService(test_db)

        assert service.cast_vote(student, item.item_id).votes == 1
        assert service.cast_vote(other_student, item.item_id).votes == 2
        assert vote_count(test_db, item.item_id) == vote_records(test_db, item.item_id) == 2

    def test_vote_on_missing_item(self, test_db, student, sample_items):
        """不存在的菜品返回 not_found，不写入任何数据"""
        result = VotingService(test_db).cast_vote(student, 99999)

        assert result.outcome == VoteOutcome.NOT_FOUND
        row = test_db.execute_one("SELECT COUNT(*) AS total FROM user_votes")
        assert row["total"] == 0

    def test_management_cannot_vote(self, test_db, manager, sample_items):
        """管理员投票返回 permission_denied"""
        item = sample_items["idli"]
        result = VotingService(test_db).cast_vote(manager, item.item_id)

        assert result.outcome == VoteOutcome.PERMISSION_DENIED
        assert vote_count(test_db, item.item_id) == 0

    def test_voting_closed_after_finalize(self, test_db, student, manager, sample_items):
        """定稿后投票关闭"""
        FinalizationService(test_db).finalize(manager)

        result = VotingService(test_db).cast_vote(student, sample_items["idli"].item_id)

        assert result.outcome == VoteOutcome.VOTING_CLOSED
        assert vote_count(test_db, sample_items["idli"].item_id) == 0

    def test_vote_is_audited(self, test_db, student, sample_items):
        VotingService(test_db).cast_vote(student, sample_items["dosa"].item_id)

        row = test_db.execute_one(
            "SELECT actor_id, detail_json FROM logs WHERE action = 'vote_cast'"
        )
        assert row["actor_id"] == student.id
        assert str(sample_items["dosa"].item_id) in row["detail_json"]

    def test_concurrent_votes_counted_once(self, test_db, student, sample_items):
        """同一学生并发投票同一菜品，只有一次成功"""
        item = sample_items["parotta"]
        service = VotingService(test_db)
        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            results.append(service.cast_vote(student, item.item_id))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        outcomes = [r.outcome for r in results]
        assert outcomes.count(VoteOutcome.SUCCESS) == 1
        assert outcomes.count(VoteOutcome.ALREADY_VOTED) == 7
        assert vote_count(test_db, item.item_id) == 1
        assert vote_records(test_db, item.item_id) == 1


class TestRevokeVote:
    """撤票测试"""

    def test_revoke_restores_previous_state(self, test_db, student, sample_items):
        """投票后撤票，票数和投票记录恢复原状"""
        item = sample_items["meals"]
        service = VotingService(test_db)
        service.cast_vote(student, item.item_id)

        result = service.revoke_vote(student, item.item_id)

        assert result.outcome == VoteOutcome.SUCCESS
        assert result.votes == 0
        assert vote_count(test_db, item.item_id) == 0
        assert vote_records(test_db, item.item_id) == 0

    def test_revoke_then_vote_again(self, test_db, student, sample_items):
        item = sample_items["meals"]
        service = VotingService(test_db)
        service.cast_vote(student, item.item_id)
        service.revoke_vote(student, item.item_id)

        assert service.cast_vote(student, item.item_id).outcome == VoteOutcome.SUCCESS
        assert vote_count(test_db, item.item_id) == 1

    def test_revoke_without_vote(self, test_db, student, sample_items):
        result = VotingService(test_db).revoke_vote(student, sample_items["idli"].item_id)
        assert result.outcome == VoteOutcome.NOT_VOTED

    def test_revoke_missing_item(self, test_db, student):
        """不存在的菜品上没有投票记录，不写入任何数据"""
        result = VotingService(test_db).revoke_vote(student, 424242)
        assert result.outcome == VoteOutcome.NOT_VOTED
        assert test_db.execute_one("SELECT COUNT(*) AS total FROM logs WHERE action = 'vote_revoke'")["total"] == 0

    def test_revoke_after_finalize(self, test_db, student, manager, sample_items):
        item = sample_items["idli"]
        service = VotingService(test_db)
        service.cast_vote(student, item.item_id)
        FinalizationService(test_db).finalize(manager)

        result = service.revoke_vote(student, item.item_id)

        assert result.outcome == VoteOutcome.VOTING_CLOSED
        assert vote_count(test_db, item.item_id) == 1


class TestTally:
    """统计与我的投票"""

    def test_tally_orders_by_votes(self, test_db, sample_items, set_votes):
        set_votes(sample_items["idli"].item_id, 2)
        set_votes(sample_items["dosa"].item_id, 5)

        tally = VotingService(test_db).tally("monday", "breakfast")

        assert [i.item_id for i in tally] == [sample_items["dosa"].item_id, sample_items["idli"].item_id]
        assert [i.rank for i in tally] == [1, 2]

    def test_tally_tie_broken_by_item_id(self, test_db, sample_items, set_votes):
        set_votes(sample_items["biryani"].item_id, 3)
        set_votes(sample_items["meals"].item_id, 3)

        tally = VotingService(test_db).tally("monday", "lunch")

        assert tally[0].item_id == min(sample_items["biryani"].item_id, sample_items["meals"].item_id)

    def test_tally_empty_slot(self, test_db, sample_items):
        assert VotingService(test_db).tally("sunday", "snack") == []

    def test_my_votes(self, test_db, student, other_student, sample_items):
        service = VotingService(test_db)
        service.cast_vote(student, sample_items["idli"].item_id)
        service.cast_vote(student, sample_items["parotta"].item_id)
        service.cast_vote(other_student, sample_items["dosa"].item_id)

        assert sorted(service.my_votes(student)) == sorted([
            sample_items["idli"].item_id, sample_items["parotta"].item_id
        ])
        assert service.my_votes(other_student) == [sample_items["dosa"].item_id]


class TestBackendFailure:
    """数据库写入失败时返回 aborted，不抛出底层异常"""

    def test_cast_vote_backend_error(self, test_db, student, sample_items):
        item = sample_items["idli"]
        with test_db.transaction() as conn:
            conn.execute("DROP TABLE logs")

        result = VotingService(test_db).cast_vote(student, item.item_id)

        assert result.outcome == VoteOutcome.ABORTED
        assert vote_count(test_db, item.item_id) == 0
        assert vote_records(test_db, item.item_id) == 0

    def test_revoke_vote_backend_error(self, test_db, student, sample_items):
        item = sample_items["idli"]
        service = VotingService(test_db)
        service.cast_vote(student, item.item_id)
        with test_db.transaction() as conn:
            conn.execute("DROP TABLE logs")

        result = service.revoke_vote(student, item.item_id)

        assert result.outcome == VoteOutcome.ABORTED
        assert vote_count(test_db, item.item_id) == 1
        assert vote_records(test_db, item.item_id) == 1
