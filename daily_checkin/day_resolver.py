# Day Resolver - ユーザーの「論理上の今日」を決定
# 進行中のチェックインは、まだ有効になっていない時刻変更で途中打ち切りにしない

from daily_checkin.clock import CivilDate, Clock, add_days, civil_date_of, civil_hour_of, utc_now
from daily_checkin.error_stages import log_operation_errors
from daily_checkin.logger import CheckinLogger
from daily_checkin.reset_hour import ResetHourResolver
from daily_checkin.store import CheckinStore, PendingResetStore, UserId


class DayResolver:
    """論理日の解決器"""

    def __init__(
        self,
        checkin_store: CheckinStore,
        pending_store: PendingResetStore,
        reset_hour_resolver: ResetHourResolver,
        logger: CheckinLogger,
        clock: Clock = utc_now
    ) -> None:
        self._checkin_store = checkin_store
        self._pending_store = pending_store
        self._reset_hour_resolver = reset_hour_resolver
        self._logger = logger
        self._clock = clock

    @log_operation_errors("logical_day", "resolve")
    async def get_logical_day(self, user_id: UserId) -> CivilDate:
        """ユーザーの現在の論理日（YYYY-MM-DD, UTC+9）

        判定順序:
            1. 保留中の変更があり、履歴の先頭があり、まだ有効時刻前なら先頭の日付をそのまま返す
            2. それ以外は有効リセット時刻で判定（現在時 < リセット時なら前日）
        """
        now = self._clock()

        history = (await self._checkin_store.load()).get(user_id) or []
        pending = (await self._pending_store.load()).get(user_id)

        if pending is not None and history and now < pending.effective_time:
            head_date = history[0].date
            self._logger.debug(
                f"logical day held at {head_date} until pending change applies",
                event_type="logical_day",
                user_id=user_id
            )
            return head_date

        reset_hour = await self._reset_hour_resolver.get_effective_hour(user_id)
        today = civil_date_of(now)
        if civil_hour_of(now) < reset_hour:
            # 今日の境界はまだ来ていない
            return add_days(today, -1)
        return today
