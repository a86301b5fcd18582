# Settings Management - 設定一元管理
# Fail-Fast原則: 設定エラーは即座にプロセス終了

import os
import sys
from dataclasses import dataclass
from dotenv import load_dotenv


def fail_fast(message: str) -> None:
    """設定エラー時の即座終了"""
    print(f"FATAL CONFIG ERROR: {message}", file=sys.stderr)
    sys.exit(1)


def get_required_env(key: str) -> str:
    """必須環境変数の取得（欠落時は即座終了）"""
    value = os.getenv(key)
    if value is None:
        fail_fast(f"Required environment variable '{key}' is not set")
    return value


def get_required_int(key: str) -> int:
    """必須整数環境変数の取得（型変換失敗時は即座終了）"""
    value = get_required_env(key)
    try:
        return int(value)
    except ValueError:
        fail_fast(f"Environment variable '{key}' must be an integer, got: {value}")


def validate_positive(key: str, value: int) -> int:
    """正の整数の検証（1以上）"""
    if value < 1:
        fail_fast(f"Environment variable '{key}' must be >= 1, got: {value}")
    return value


def validate_non_negative(key: str, value: int) -> int:
    """非負整数の検証（0以上）"""
    if value < 0:
        fail_fast(f"Environment variable '{key}' must be >= 0, got: {value}")
    return value


@dataclass(frozen=True)
class EnvironmentConfig:
    """環境設定"""
    env: str

    @property
    def debug_enabled(self) -> bool:
        return self.env == "dev"


@dataclass(frozen=True)
class StorageConfig:
    """永続化設定"""
    data_dir: str


@dataclass(frozen=True)
class ScheduleConfig:
    """スケジュール設定"""
    sweep_interval_sec: int
    hour_change_cooldown_days: int


@dataclass(frozen=True)
class LoggingConfig:
    """ログ設定"""
    log_file: str


@dataclass(frozen=True)
class Settings:
    """全設定の統合"""
    environment: EnvironmentConfig
    storage: StorageConfig
    schedule: ScheduleConfig
    logging: LoggingConfig


def load_settings() -> Settings:
    """設定の読み込みと検証（Fail-Fast）"""
    # .envファイルの読み込み
    load_dotenv()

    # 環境設定
    env = get_required_env("ENV")
    if env not in ["dev", "prod"]:
        fail_fast(f"ENV must be 'dev' or 'prod', got: {env}")

    # 永続化設定
    storage_config = StorageConfig(
        data_dir=get_required_env("DATA_DIR")
    )

    # スケジュール設定（昇格スイープ間隔・変更クールダウン）
    schedule_config = ScheduleConfig(
        sweep_interval_sec=validate_positive(
            "SWEEP_INTERVAL_SEC", get_required_int("SWEEP_INTERVAL_SEC")
        ),
        hour_change_cooldown_days=validate_non_negative(
            "HOUR_CHANGE_COOLDOWN_DAYS", get_required_int("HOUR_CHANGE_COOLDOWN_DAYS")
        ),
    )

    # ログ設定
    logging_config = LoggingConfig(
        log_file=get_required_env("LOG_FILE")
    )

    return Settings(
        environment=EnvironmentConfig(env=env),
        storage=storage_config,
        schedule=schedule_config,
        logging=logging_config
    )
