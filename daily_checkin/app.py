# Daily Checkin - Main Application
# 構成ルート（CheckinService）と保留変更の定期昇格スケジューラ

import asyncio
import sys
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from daily_checkin.checkin_manager import CheckinManager
from daily_checkin.clock import Clock, utc_now
from daily_checkin.day_resolver import DayResolver
from daily_checkin.error_stages import determine_error_stage
from daily_checkin.logger import CheckinLogger
from daily_checkin.reset_hour import DEFAULT_COOLDOWN, ResetHourResolver
from daily_checkin.settings import Settings
from daily_checkin.store import (
    CheckinStore,
    PendingResetStore,
    ResetHourStore,
    UserId,
    create_checkin_store,
    create_pending_reset_store,
    create_reset_hour_store,
)
from daily_checkin.streak import StreakEngine


@dataclass
class CheckinService:
    """プロセス起動時に1度だけ組み立て、利用側へ参照で渡すサービス一式"""
    checkin_store: CheckinStore
    reset_hour_store: ResetHourStore
    pending_store: PendingResetStore
    reset_hours: ResetHourResolver
    days: DayResolver
    checkins: CheckinManager
    streaks: StreakEngine
    logger: CheckinLogger

    async def initialize(self) -> None:
        """3文書の検証（破損・欠落時は自己修復）"""
        await self.checkins.initialize()
        await self.reset_hour_store.initialize()
        await self.pending_store.initialize()


def build_service(
    data_dir: Path,
    logger: CheckinLogger,
    clock: Clock = utc_now,
    cooldown: timedelta = DEFAULT_COOLDOWN
) -> CheckinService:
    """ストアと各コンポーネントを組み立てる"""
    checkin_store = create_checkin_store(data_dir, logger)
    reset_hour_store = create_reset_hour_store(data_dir, logger)
    pending_store = create_pending_reset_store(data_dir, logger)

    reset_hours = ResetHourResolver(reset_hour_store, pending_store, logger, clock=clock, cooldown=cooldown)
    days = DayResolver(checkin_store, pending_store, reset_hours, logger, clock=clock)

    return CheckinService(
        checkin_store=checkin_store,
        reset_hour_store=reset_hour_store,
        pending_store=pending_store,
        reset_hours=reset_hours,
        days=days,
        checkins=CheckinManager(checkin_store, days, logger),
        streaks=StreakEngine(checkin_store, days, logger),
        logger=logger
    )


def build_service_from_settings(settings: Settings, clock: Clock = utc_now) -> CheckinService:
    """設定からロガーとサービスを組み立てる"""
    logger = CheckinLogger(
        settings.logging.log_file,
        debug_enabled=settings.environment.debug_enabled
    )
    return build_service(
        Path(settings.storage.data_dir),
        logger,
        clock=clock,
        cooldown=timedelta(days=settings.schedule.hour_change_cooldown_days)
    )


class PromotionSweepScheduler:
    """保留変更の定期昇格スケジューラ（既定10分間隔）

    get_effective_hour 内の遅延昇格と重複して走っても結果は変わらない。
    sleep を差し替えればテストで実時間を待たずに回せる。
    """

    def __init__(
        self,
        resolver: ResetHourResolver,
        logger: CheckinLogger,
        interval_sec: float = 600,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ) -> None:
        """スケジューラ初期化"""
        if interval_sec <= 0:
            raise ValueError(f"Invalid sweep interval: {interval_sec}. Must be > 0")
        self.is_running: bool = False
        self._resolver = resolver
        self._logger = logger
        self._interval_sec = interval_sec
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    def get_sweep_interval(self) -> float:
        """スイープ間隔（秒）"""
        return self._interval_sec

    async def run_once(self) -> List[UserId]:
        """スイープ1回分

        Raises:
            StorageError: 永続化に失敗した場合（Fail-Fast）
        """
        try:
            promoted = await self._resolver.promote_all_due()
        except Exception as e:
            self._logger.error(
                "promotion sweep failed",
                e,
                event_type="sweep",
                error_stage=determine_error_stage(e, "sweep")
            )
            raise
        if promoted:
            self._logger.info(f"sweep promoted {len(promoted)} pending change(s)", event_type="sweep")
        else:
            self._logger.debug("sweep found nothing due", event_type="sweep")
        return promoted

    async def start(self) -> None:
        """スケジューラ開始（監視ループ）

        Raises:
            RuntimeError: 既にスケジューラが動作中の場合
        """
        if self.is_running:
            raise RuntimeError("PromotionSweepScheduler is already running")

        self.is_running = True

        try:
            while self.is_running:
                await self.run_once()
                await self._sleep(self._interval_sec)
        finally:
            self.is_running = False

    def launch(self) -> asyncio.Task:
        """監視ループを所有タスクとして起動"""
        if self._task is not None and not self._task.done():
            raise RuntimeError("PromotionSweepScheduler is already running")
        self._task = asyncio.create_task(self.start())
        return self._task

    def stop(self) -> None:
        """スケジューラ停止（所有タスクがあればキャンセル）"""
        self.is_running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None


async def main() -> None:
    """メインアプリケーション起動 - ストア初期化と定期スイープ"""
    from daily_checkin.settings import load_settings

    settings = load_settings()
    service = build_service_from_settings(settings)

    print("🚀 Daily Checkin 起動開始")
    print(f"📊 環境: {settings.environment.env}")
    print(f"📁 データ: {settings.storage.data_dir}")
    print(f"⏰ スイープ間隔: {settings.schedule.sweep_interval_sec}秒")

    scheduler = PromotionSweepScheduler(
        service.reset_hours,
        service.logger,
        interval_sec=settings.schedule.sweep_interval_sec
    )

    try:
        await service.initialize()
        service.logger.info("daily checkin started", event_type="startup")
        await scheduler.launch()
    except asyncio.CancelledError:
        service.logger.info("daily checkin stopped", event_type="shutdown")
        raise
    except Exception as e:
        print(f"❌ システムエラー: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        scheduler.stop()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("🛑 停止しました")
