"""チェックインのライフサイクルテスト"""

from unittest.mock import MagicMock

import pytest

from conftest import read_document, write_document
from daily_checkin.checkin_manager import build_tasks, carry_over_tasks
from daily_checkin.error_stages import StorageError
from daily_checkin.store import CHECKINS_FILE, Task


USER_ID = "test-user-123"


def seed_checkins(data_dir, records, user_id=USER_ID):
    write_document(data_dir / CHECKINS_FILE, {user_id: records})


class TestTaskDerivation:
    """タスク列の生成・引き継ぎルール"""

    def test_build_tasks_assigns_sequential_ids(self):
        assert build_tasks(["a", "b"]) == [Task(1, "a", False), Task(2, "b", False)]

    def test_carry_over_keeps_completion_only_for_same_content_and_position(self):
        # Given
        existing = [Task(1, "run", True), Task(2, "read", True), Task(3, "code", False)]

        # When: 2番目を変更、3番目と4番目を追加入れ替え
        updated = carry_over_tasks(existing, ["run", "write", "code", "sleep"])

        # Then
        assert updated == [
            Task(1, "run", True),
            Task(2, "write", False),
            Task(3, "code", False),
            Task(4, "sleep", False),
        ]

    def test_carry_over_moved_task_loses_completion(self):
        existing = [Task(1, "run", True), Task(2, "read", False)]
        assert carry_over_tasks(existing, ["read", "run"]) == [Task(1, "read", False), Task(2, "run", False)]


class TestCreateOrReplace:
    """作成・置き換えのテスト"""

    @pytest.mark.asyncio
    async def test_round_trip(self, service):
        """作成したものが論理日で取得でき、全タスク未完了であること"""
        # When
        created = await service.checkins.create_or_replace(USER_ID, ["Task 1", "Task 2", "Task 3"])
        day = await service.days.get_logical_day(USER_ID)
        fetched = await service.checkins.get_by_date(USER_ID, day)

        # Then
        assert created.date == "2024-01-13"
        assert fetched == created
        assert len(fetched.tasks) == 3
        assert all(task.completed is False for task in fetched.tasks)

    @pytest.mark.asyncio
    async def test_new_record_is_inserted_at_front(self, service, data_dir):
        seed_checkins(data_dir, [{"date": "2024-01-11", "tasks": []}])

        await service.checkins.create_or_replace(USER_ID, ["x"])

        dates = [c["date"] for c in read_document(data_dir / CHECKINS_FILE)[USER_ID]]
        assert dates == ["2024-01-13", "2024-01-11"]

    @pytest.mark.asyncio
    async def test_existing_day_is_replaced_in_place(self, service, data_dir):
        """同じ日の再作成は同じ位置で置き換わり、完了状態はリセットされること"""
        # Given: 履歴の2番目に当日分がある
        seed_checkins(data_dir, [
            {"date": "2024-01-12", "tasks": []},
            {"date": "2024-01-13", "tasks": [{"id": 1, "content": "old", "completed": True}]},
        ])

        # When
        await service.checkins.create_or_replace(USER_ID, ["new 1", "new 2"])

        # Then
        history = read_document(data_dir / CHECKINS_FILE)[USER_ID]
        assert [c["date"] for c in history] == ["2024-01-12", "2024-01-13"]
        assert history[1]["tasks"] == [
            {"id": 1, "content": "new 1", "completed": False},
            {"id": 2, "content": "new 2", "completed": False},
        ]

    @pytest.mark.asyncio
    async def test_create_logs_completion(self, data_dir, clock):
        from daily_checkin.app import build_service

        logger = MagicMock()
        service = build_service(data_dir, logger, clock=clock)

        await service.checkins.create_or_replace(USER_ID, ["x"])

        messages = [c.args[0] for c in logger.info.call_args_list]
        assert "checkin created for 2024-01-13" in messages

    @pytest.mark.asyncio
    async def test_storage_failure_propagates_and_is_logged(self, tmp_path, clock):
        from daily_checkin.app import build_service

        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        logger = MagicMock()
        service = build_service(blocker, logger, clock=clock)

        with pytest.raises(StorageError):
            await service.checkins.create_or_replace(USER_ID, ["x"])

        # 操作名・ユーザーID付きで記録される
        contexts = [(c.kwargs.get("event_type"), c.kwargs.get("user_id")) for c in logger.error.call_args_list]
        assert ("logical_day", USER_ID) in contexts


class TestLookup:
    """参照系のテスト"""

    @pytest.mark.asyncio
    async def test_get_by_date_absent_is_none(self, service):
        assert await service.checkins.get_by_date(USER_ID, "2024-01-01") is None

    @pytest.mark.asyncio
    async def test_get_logical_today(self, service, data_dir):
        seed_checkins(data_dir, [{"date": "2024-01-12", "tasks": []}])
        assert await service.checkins.get_logical_today(USER_ID) is None

        await service.checkins.create_or_replace(USER_ID, ["x"])
        today = await service.checkins.get_logical_today(USER_ID)
        assert today.date == "2024-01-13"

    @pytest.mark.asyncio
    async def test_recent_excluding_today(self, service, data_dir):
        seed_checkins(data_dir, [
            {"date": "2024-01-13", "tasks": []},
            {"date": "2024-01-10", "tasks": []},
            {"date": "2024-01-12", "tasks": []},
        ])

        recent = await service.checkins.get_recent_excluding_today(USER_ID)

        # 履歴順で最初の「今日以外」
        assert recent.date == "2024-01-10"

    @pytest.mark.asyncio
    async def test_recent_excluding_today_none(self, service, data_dir):
        assert await service.checkins.get_recent_excluding_today(USER_ID) is None
        seed_checkins(data_dir, [{"date": "2024-01-13", "tasks": []}])
        assert await service.checkins.get_recent_excluding_today(USER_ID) is None

    @pytest.mark.asyncio
    async def test_chronological_index_sorts_by_date(self, service, data_dir):
        seed_checkins(data_dir, [
            {"date": "2024-01-13", "tasks": []},
            {"date": "2024-01-10", "tasks": []},
            {"date": "2024-01-12", "tasks": []},
        ])

        assert await service.checkins.get_chronological_index(USER_ID, "2024-01-10") == 1
        assert await service.checkins.get_chronological_index(USER_ID, "2024-01-12") == 2
        assert await service.checkins.get_chronological_index(USER_ID, "2024-01-13") == 3
        assert await service.checkins.get_chronological_index(USER_ID, "2024-01-11") == 0
        assert await service.checkins.get_chronological_index("nobody", "2024-01-13") == 0

    @pytest.mark.asyncio
    async def test_all_count_and_previous_day(self, service, data_dir):
        seed_checkins(data_dir, [
            {"date": "2024-01-13", "tasks": []},
            {"date": "2024-01-12", "tasks": []},
        ])

        assert [c.date for c in await service.checkins.get_all(USER_ID)] == ["2024-01-13", "2024-01-12"]
        assert await service.checkins.get_count(USER_ID) == 2
        assert (await service.checkins.get_previous_day(USER_ID)).date == "2024-01-12"
        assert await service.checkins.get_all("nobody") == []
        assert await service.checkins.get_count("nobody") == 0


class TestToggleAndUpdate:
    """完了トグル・編集のテスト"""

    @pytest.mark.asyncio
    async def test_toggle_is_its_own_inverse(self, service):
        await service.checkins.create_or_replace(USER_ID, ["Task 1", "Task 2"])

        first = await service.checkins.toggle_task(USER_ID, 2)
        second = await service.checkins.toggle_task(USER_ID, 2)

        assert first.completed is True
        assert second.completed is False
        today = await service.checkins.get_logical_today(USER_ID)
        assert [t.completed for t in today.tasks] == [False, False]

    @pytest.mark.asyncio
    async def test_toggle_without_today_or_task_is_none(self, service, data_dir):
        assert await service.checkins.toggle_task(USER_ID, 1) is None

        await service.checkins.create_or_replace(USER_ID, ["Task 1"])
        assert await service.checkins.toggle_task(USER_ID, 5) is None

    @pytest.mark.asyncio
    async def test_update_carries_completion(self, service):
        await service.checkins.create_or_replace(USER_ID, ["run", "read"])
        await service.checkins.toggle_task(USER_ID, 1)
        await service.checkins.toggle_task(USER_ID, 2)

        updated = await service.checkins.update(USER_ID, ["run", "write", "sleep"])

        assert updated.date == "2024-01-13"
        assert [(t.id, t.content, t.completed) for t in updated.tasks] == [
            (1, "run", True),
            (2, "write", False),
            (3, "sleep", False),
        ]
        assert (await service.checkins.get_logical_today(USER_ID)).tasks == updated.tasks

    @pytest.mark.asyncio
    async def test_update_never_creates(self, service, data_dir):
        assert await service.checkins.update(USER_ID, ["x"]) is None
        assert read_document(data_dir / CHECKINS_FILE) == {}


class TestResetHourChangeScenario:
    """リセット時刻変更前後のチェックインシナリオ"""

    @pytest.mark.asyncio
    async def test_checkin_survives_until_new_boundary(self, service, clock):
        # 1. 1/13 14:00 JST にチェックイン
        initial = await service.checkins.create_or_replace(USER_ID, ["Task 1", "Task 2"])
        assert initial.date == "2024-01-13"
        assert len(initial.tasks) == 2

        # 2. 14:05 にリセット時刻を15時へ変更
        clock.set("2024-01-13T05:05:00Z")
        change = await service.reset_hours.request_hour_change(USER_ID, 15)
        assert change.new_hour == 15

        # 3. 14:10 に Task 1 完了
        clock.set("2024-01-13T05:10:00Z")
        assert (await service.checkins.toggle_task(USER_ID, 1)).completed is True

        # 4. 翌日 06:00 に Task 2 完了（まだ 1/13 のチェックイン）
        clock.set("2024-01-13T21:00:00Z")
        assert (await service.checkins.toggle_task(USER_ID, 2)).completed is True

        # 5. 翌日 07:00 でも 1/13 が有効
        clock.set("2024-01-13T22:00:00Z")
        today = await service.checkins.get_logical_today(USER_ID)
        assert today is not None
        assert today.date == "2024-01-13"

        # 6. 翌日 15:00（新しい境界）で新規チェックイン
        clock.set("2024-01-14T06:00:00Z")
        new_checkin = await service.checkins.create_or_replace(USER_ID, ["New Task"])
        assert new_checkin.date == "2024-01-14"

        # 最終状態
        history = await service.checkins.get_all(USER_ID)
        assert len(history) == 2
        jan13 = next(c for c in history if c.date == "2024-01-13")
        jan14 = next(c for c in history if c.date == "2024-01-14")
        assert [t.completed for t in jan13.tasks] == [True, True]
        assert jan14.tasks == [Task(1, "New Task", False)]

    @pytest.mark.asyncio
    async def test_new_user_after_change_uses_new_day(self, service, clock):
        """履歴のないユーザーは有効時刻後に新しい日付で作成されること"""
        await service.reset_hours.request_hour_change(USER_ID, 16)

        clock.set("2024-01-14T08:00:00Z")  # 1/14 17:00 JST
        created = await service.checkins.create_or_replace(USER_ID, ["New Task"])

        assert created.date == "2024-01-14"
