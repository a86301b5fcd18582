# Checkin Manager - チェックインのライフサイクル管理
# 作成・取得・タスク完了トグル・編集はすべて論理日をキーに行う

from typing import List, Optional

from daily_checkin.clock import CivilDate, add_days
from daily_checkin.day_resolver import DayResolver
from daily_checkin.error_stages import log_operation_errors
from daily_checkin.logger import CheckinLogger
from daily_checkin.store import CheckinRecord, CheckinStore, Task, UserId


def build_tasks(task_contents: List[str]) -> List[Task]:
    """入力順に1始まりのidを振った未完了タスクを作る"""
    return [
        Task(id=index + 1, content=content, completed=False)
        for index, content in enumerate(task_contents)
    ]


def carry_over_tasks(existing: List[Task], task_contents: List[str]) -> List[Task]:
    """編集後のタスク列を作る

    同じ位置で内容が変わっていなければ完了状態を引き継ぎ、それ以外は未完了に戻す。
    """
    updated = []
    for index, content in enumerate(task_contents):
        old_task = existing[index] if index < len(existing) else None
        completed = old_task.completed if old_task is not None and old_task.content == content else False
        updated.append(Task(id=index + 1, content=content, completed=completed))
    return updated


class CheckinManager:
    """チェックインの作成・参照・更新

    履歴は新規作成順（先頭が最新）。同じ日付の再作成は同じ位置で置き換える。
    """

    def __init__(
        self,
        checkin_store: CheckinStore,
        day_resolver: DayResolver,
        logger: CheckinLogger
    ) -> None:
        self._checkin_store = checkin_store
        self._day_resolver = day_resolver
        self._logger = logger

    async def initialize(self) -> None:
        """データディレクトリとチェックイン文書の準備"""
        await self._checkin_store.initialize()
        self._logger.info("checkin store initialized", event_type="initialize")

    @log_operation_errors("create", "checkin")
    async def create_or_replace(self, user_id: UserId, task_contents: List[str]) -> CheckinRecord:
        """論理日のチェックインを作成（既存なら同じ位置で置き換え）"""
        self._logger.info("checkin create requested", event_type="create", user_id=user_id)
        today = await self._day_resolver.get_logical_day(user_id)

        checkins = await self._checkin_store.load()
        history = checkins.setdefault(user_id, [])

        new_checkin = CheckinRecord(date=today, tasks=build_tasks(task_contents))
        today_index = next((i for i, c in enumerate(history) if c.date == today), None)
        if today_index is not None:
            history[today_index] = new_checkin
        else:
            history.insert(0, new_checkin)

        await self._checkin_store.save(checkins)
        self._logger.info(f"checkin created for {today}", event_type="create", user_id=user_id)
        return new_checkin

    @log_operation_errors("get_by_date", "checkin")
    async def get_by_date(self, user_id: UserId, date: CivilDate) -> Optional[CheckinRecord]:
        """日付完全一致での取得（なければ None）"""
        checkins = await self._checkin_store.load()
        return next((c for c in checkins.get(user_id, []) if c.date == date), None)

    @log_operation_errors("get_today", "checkin")
    async def get_logical_today(self, user_id: UserId) -> Optional[CheckinRecord]:
        """論理日のチェックイン"""
        today = await self._day_resolver.get_logical_day(user_id)
        checkin = await self.get_by_date(user_id, today)
        if checkin is None:
            self._logger.debug(f"no checkin for {today}", event_type="get_today", user_id=user_id)
        return checkin

    @log_operation_errors("toggle", "checkin")
    async def toggle_task(self, user_id: UserId, task_id: int) -> Optional[Task]:
        """論理日のタスク完了状態を反転する"""
        today = await self._day_resolver.get_logical_day(user_id)
        checkins = await self._checkin_store.load()

        today_checkin = next((c for c in checkins.get(user_id, []) if c.date == today), None)
        if today_checkin is None:
            self._logger.warn(f"toggle: no checkin for {today}", event_type="toggle", user_id=user_id)
            return None

        task = next((t for t in today_checkin.tasks if t.id == task_id), None)
        if task is None:
            self._logger.warn(f"toggle: task {task_id} not found", event_type="toggle", user_id=user_id)
            return None

        task.completed = not task.completed
        await self._checkin_store.save(checkins)
        self._logger.info(
            f"task {task_id} {'completed' if task.completed else 'reopened'}",
            event_type="toggle",
            user_id=user_id
        )
        return task

    @log_operation_errors("update", "checkin")
    async def update(self, user_id: UserId, task_contents: List[str]) -> Optional[CheckinRecord]:
        """論理日のタスク列を編集する（新規作成はしない）"""
        today = await self._day_resolver.get_logical_day(user_id)
        checkins = await self._checkin_store.load()

        today_checkin = next((c for c in checkins.get(user_id, []) if c.date == today), None)
        if today_checkin is None:
            self._logger.warn(f"update: no checkin for {today}", event_type="update", user_id=user_id)
            return None

        today_checkin.tasks = carry_over_tasks(today_checkin.tasks, task_contents)
        await self._checkin_store.save(checkins)
        self._logger.info(f"checkin updated for {today}", event_type="update", user_id=user_id)
        return today_checkin

    @log_operation_errors("recent", "checkin")
    async def get_recent_excluding_today(self, user_id: UserId) -> Optional[CheckinRecord]:
        """論理日以外で履歴順の最初のチェックイン"""
        today = await self._day_resolver.get_logical_day(user_id)
        checkins = await self._checkin_store.load()
        return next((c for c in checkins.get(user_id, []) if c.date != today), None)

    @log_operation_errors("previous_day", "checkin")
    async def get_previous_day(self, user_id: UserId) -> Optional[CheckinRecord]:
        """論理日の前日のチェックイン"""
        today = await self._day_resolver.get_logical_day(user_id)
        return await self.get_by_date(user_id, add_days(today, -1))

    @log_operation_errors("chronological_index", "checkin")
    async def get_chronological_index(self, user_id: UserId, date: CivilDate) -> int:
        """日付昇順での通し番号（1が最古）、見つからなければ0"""
        checkins = await self._checkin_store.load()
        dates = sorted(c.date for c in checkins.get(user_id, []))
        if date not in dates:
            return 0
        return dates.index(date) + 1

    @log_operation_errors("list", "checkin")
    async def get_all(self, user_id: UserId) -> List[CheckinRecord]:
        """全履歴（履歴順・先頭が最新作成）"""
        checkins = await self._checkin_store.load()
        return checkins.get(user_id, [])

    @log_operation_errors("count", "checkin")
    async def get_count(self, user_id: UserId) -> int:
        """チェックイン件数"""
        return len(await self.get_all(user_id))
