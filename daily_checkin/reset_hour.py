# Reset Hour Resolver - ユーザー別リセット時刻の解決と変更予約
# 保留中の変更は有効時刻を過ぎた時点で有効設定へ昇格（遅延昇格・定期スイープ共通）

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Literal, Optional, Union

from daily_checkin.clock import Clock, next_boundary_at, utc_now
from daily_checkin.error_stages import log_operation_errors
from daily_checkin.logger import CheckinLogger
from daily_checkin.store import (
    PendingResetChange,
    PendingResetStore,
    ResetHourSetting,
    ResetHourStore,
    UserId,
)

DEFAULT_RESET_HOUR = 0
DEFAULT_COOLDOWN = timedelta(days=3)

BlockReason = Literal["pending", "cooldown"]


@dataclass(frozen=True)
class HourChangeCheck:
    """変更可否の判定結果（レート制限は例外ではなくこの値で返す）"""
    can_update: bool
    next_available: Optional[datetime] = None
    reason: Optional[BlockReason] = None


@dataclass(frozen=True)
class HourChangeResult:
    """変更予約の成功結果"""
    previous_hour: int
    new_hour: int
    effective_date: datetime

    @property
    def can_update(self) -> bool:
        return True


class ResetHourResolver:
    """有効リセット時刻の解決器

    get_effective_hour は読み取りだが、期限到来済みの保留変更を昇格させる書き込みを伴う。
    昇格は何度実行しても同じ結果になる（lastUpdate は保留時の値を引き継ぐ）。
    """

    def __init__(
        self,
        settings_store: ResetHourStore,
        pending_store: PendingResetStore,
        logger: CheckinLogger,
        clock: Clock = utc_now,
        cooldown: timedelta = DEFAULT_COOLDOWN
    ) -> None:
        self._settings_store = settings_store
        self._pending_store = pending_store
        self._logger = logger
        self._clock = clock
        self.cooldown = cooldown

    @staticmethod
    def _promoted(change: PendingResetChange) -> ResetHourSetting:
        return ResetHourSetting(
            hour=change.hour,
            last_update=change.last_update,
            applied_at=change.effective_time
        )

    @log_operation_errors("promote", "resolve")
    async def promote_due_change(self, user_id: UserId) -> Optional[ResetHourSetting]:
        """1ユーザーの期限到来済み保留変更を昇格させる

        Returns:
            昇格後の設定。保留なし・未到来なら None（既に昇格済みでも None）
        """
        pending = await self._pending_store.load()
        change = pending.get(user_id)
        if change is None or self._clock() < change.effective_time:
            return None

        settings = await self._settings_store.load()
        promoted = self._promoted(change)
        settings[user_id] = promoted
        # 設定を先に保存（途中で落ちても保留が残り、再昇格で同じ結果になる）
        await self._settings_store.save(settings)

        # 保存中に別経路が削除済みでも問題ない
        pending = await self._pending_store.load()
        if pending.pop(user_id, None) is not None:
            await self._pending_store.save(pending)

        self._logger.info(f"reset hour promoted to {change.hour}", event_type="promote", user_id=user_id)
        return promoted

    async def promote_all_due(self) -> List[UserId]:
        """期限到来済みの保留変更を一括で昇格させる（定期スイープ用）"""
        now = self._clock()
        pending = await self._pending_store.load()
        due = {user_id: change for user_id, change in pending.items() if now >= change.effective_time}
        if not due:
            return []

        settings = await self._settings_store.load()
        for user_id, change in due.items():
            settings[user_id] = self._promoted(change)
        await self._settings_store.save(settings)

        pending = await self._pending_store.load()
        for user_id in due:
            pending.pop(user_id, None)
        await self._pending_store.save(pending)

        for user_id, change in due.items():
            self._logger.info(f"reset hour promoted to {change.hour}", event_type="sweep", user_id=user_id)
        return sorted(due)

    @log_operation_errors("effective_hour", "resolve")
    async def get_effective_hour(self, user_id: UserId) -> int:
        """現時点で有効なリセット時刻（0-23）"""
        promoted = await self.promote_due_change(user_id)
        if promoted is not None:
            return promoted.hour

        settings = await self._settings_store.load()
        setting = settings.get(user_id)
        return setting.hour if setting is not None else DEFAULT_RESET_HOUR

    async def get_pending_change(self, user_id: UserId) -> Optional[PendingResetChange]:
        """未昇格の保留変更（なければ None）"""
        pending = await self._pending_store.load()
        return pending.get(user_id)

    @log_operation_errors("can_change_hour", "resolve")
    async def can_change_hour(self, user_id: UserId) -> HourChangeCheck:
        """リセット時刻を変更できるか

        - 保留中の変更がある間は不可（1ユーザー1件まで）
        - 前回変更から cooldown 未満は不可
        """
        await self.promote_due_change(user_id)
        now = self._clock()

        change = await self.get_pending_change(user_id)
        if change is not None:
            return HourChangeCheck(
                can_update=False,
                next_available=change.last_update + self.cooldown,
                reason="pending"
            )

        settings = await self._settings_store.load()
        setting = settings.get(user_id)
        if setting is not None and now - setting.last_update < self.cooldown:
            return HourChangeCheck(
                can_update=False,
                next_available=setting.last_update + self.cooldown,
                reason="cooldown"
            )

        return HourChangeCheck(can_update=True)

    @log_operation_errors("request_hour", "resolve")
    async def request_hour_change(
        self, user_id: UserId, new_hour: int
    ) -> Union[HourChangeResult, HourChangeCheck]:
        """リセット時刻の変更を予約する

        有効時刻は常に翌暦日の new_hour:00（UTC+9）。当日中に new_hour が来る場合でも翌日。

        Returns:
            成功時は HourChangeResult、レート制限時は can_update=False の HourChangeCheck

        Raises:
            ValueError: new_hour が 0-23 の範囲外の場合
        """
        if isinstance(new_hour, bool) or not isinstance(new_hour, int) or not 0 <= new_hour <= 23:
            raise ValueError(f"Reset hour must be an integer between 0 and 23, got: {new_hour!r}")

        check = await self.can_change_hour(user_id)
        if not check.can_update:
            self._logger.info(
                f"hour change rejected ({check.reason})", event_type="request_hour", user_id=user_id
            )
            return check

        previous_hour = await self.get_effective_hour(user_id)
        now = self._clock()
        effective_time = next_boundary_at(now, new_hour)

        pending = await self._pending_store.load()
        pending[user_id] = PendingResetChange(
            hour=new_hour,
            last_update=now,
            effective_time=effective_time
        )
        await self._pending_store.save(pending)

        self._logger.info(
            f"hour change scheduled {previous_hour} -> {new_hour} at {effective_time.isoformat()}",
            event_type="request_hour",
            user_id=user_id
        )
        return HourChangeResult(
            previous_hour=previous_hour,
            new_hour=new_hour,
            effective_date=effective_time
        )
