# Streak Engine - 連続チェックイン日数の計算
# 並びは挿入順ではなく日付値で判定する

from typing import Iterable, List

from daily_checkin.clock import CivilDate, add_days, days_between
from daily_checkin.day_resolver import DayResolver
from daily_checkin.error_stages import log_operation_errors
from daily_checkin.logger import CheckinLogger
from daily_checkin.store import CheckinStore, UserId


def current_streak_from_dates(dates: Iterable[CivilDate], today: CivilDate) -> int:
    """today から遡って連続している日数

    最新の日付が today でなければ0。
    """
    descending = sorted(set(dates), reverse=True)
    if not descending or descending[0] != today:
        return 0

    streak = 0
    expected = today
    for date in descending:
        if date != expected:
            break
        streak += 1
        expected = add_days(expected, -1)
    return streak


def max_streak_from_dates(dates: Iterable[CivilDate]) -> int:
    """履歴全体での最長連続日数"""
    ascending: List[CivilDate] = sorted(set(dates))
    max_streak = 0
    running = 0
    previous = None
    for date in ascending:
        if previous is not None and days_between(previous, date) == 1:
            running += 1
        else:
            running = 1
        max_streak = max(max_streak, running)
        previous = date
    return max_streak


class StreakEngine:
    """ユーザー単位の連続記録"""

    def __init__(
        self,
        checkin_store: CheckinStore,
        day_resolver: DayResolver,
        logger: CheckinLogger
    ) -> None:
        self._checkin_store = checkin_store
        self._day_resolver = day_resolver
        self._logger = logger

    @log_operation_errors("current_streak", "streak")
    async def current_streak(self, user_id: UserId) -> int:
        checkins = await self._checkin_store.load()
        history = checkins.get(user_id, [])
        if not history:
            return 0
        today = await self._day_resolver.get_logical_day(user_id)
        return current_streak_from_dates((c.date for c in history), today)

    @log_operation_errors("max_streak", "streak")
    async def max_streak(self, user_id: UserId) -> int:
        checkins = await self._checkin_store.load()
        return max_streak_from_dates(c.date for c in checkins.get(user_id, []))
