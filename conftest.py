"""共通フィクスチャ（制御可能なクロック・一時データディレクトリ）"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import orjson
import pytest

from daily_checkin.app import build_service
from daily_checkin.logger import CheckinLogger


def instant(iso: str) -> datetime:
    """'2024-01-13T05:00:00Z' 形式をUTCインスタントに変換"""
    return datetime.fromisoformat(iso.replace("Z", "+00:00")).astimezone(timezone.utc)


def epoch_ms(iso: str) -> int:
    return int(instant(iso).timestamp() * 1000)


def write_document(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(orjson.dumps(data))


def read_document(path: Path) -> Any:
    return orjson.loads(path.read_bytes())


class FakeClock:
    """テスト用の時間移動可能なクロック"""

    def __init__(self, start: str = "2024-01-13T05:00:00Z") -> None:
        self.now = instant(start)

    def __call__(self) -> datetime:
        return self.now

    def set(self, iso: str) -> None:
        self.now = instant(iso)

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    # 2024-01-13 14:00 JST
    return FakeClock("2024-01-13T05:00:00Z")


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def log_file(tmp_path: Path) -> Path:
    return tmp_path / "logs" / "run.jsonl"


@pytest.fixture
def logger(log_file: Path) -> CheckinLogger:
    return CheckinLogger(log_file, debug_enabled=True)


@pytest.fixture
def service(data_dir: Path, logger: CheckinLogger, clock: FakeClock):
    return build_service(data_dir, logger, clock=clock)
