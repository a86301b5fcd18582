# Clock - 固定オフセット(UTC+9)の暦日計算
# 比較はすべてUTCインスタントで行い、暦日への変換は最後の一段だけで行う

from datetime import date, datetime, time, timedelta, timezone
from typing import Callable

# ホストのローカルタイムゾーンには一切依存しない
JST = timezone(timedelta(hours=9))

CivilDate = str  # YYYY-MM-DD
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """現在のUTCインスタントを取得（既定のクロック）"""
    return datetime.now(timezone.utc)


def to_civil(instant: datetime) -> datetime:
    """インスタントをUTC+9の壁時計時刻に変換"""
    if instant.tzinfo is None:
        # naiveな値はUTCとして扱う
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(JST)


def parse_civil_date(civil_date: CivilDate) -> date:
    """YYYY-MM-DD 文字列を date に変換

    Raises:
        ValueError: フォーマット不正の場合
    """
    if not isinstance(civil_date, str) or len(civil_date) != 10:
        raise ValueError(f"Invalid civil date: {civil_date!r}")
    parsed = date.fromisoformat(civil_date)
    # 週番号形式など YYYY-MM-DD 以外のISO表記は受け付けない
    if parsed.isoformat() != civil_date:
        raise ValueError(f"Invalid civil date: {civil_date!r}")
    return parsed


def civil_date_of(instant: datetime) -> CivilDate:
    """インスタントが属するUTC+9の暦日"""
    return to_civil(instant).date().isoformat()


def civil_date_now(offset_days: int = 0, clock: Clock = utc_now) -> CivilDate:
    """現在のUTC+9暦日（offset_days 日ずらし可）"""
    return add_days(civil_date_of(clock()), offset_days)


def add_days(civil_date: CivilDate, days: int) -> CivilDate:
    """暦日に日数を加算"""
    return (parse_civil_date(civil_date) + timedelta(days=days)).isoformat()


def days_between(earlier: CivilDate, later: CivilDate) -> int:
    """2つの暦日の差（later - earlier、日数）"""
    return (parse_civil_date(later) - parse_civil_date(earlier)).days


def civil_hour_of(instant: datetime) -> int:
    """インスタントのUTC+9での時（0-23）"""
    return to_civil(instant).hour


def next_boundary_at(instant: datetime, hour: int) -> datetime:
    """instant の翌暦日の hour:00:00（UTC+9）をUTCインスタントで返す

    当日の hour がまだ来ていなくても必ず翌日になる。
    """
    if not 0 <= hour <= 23:
        raise ValueError(f"Hour must be between 0 and 23, got: {hour}")
    next_day = to_civil(instant).date() + timedelta(days=1)
    boundary = datetime.combine(next_day, time(hour, 0), tzinfo=JST)
    return boundary.astimezone(timezone.utc)


def to_epoch_ms(instant: datetime) -> int:
    """インスタントをエポックミリ秒に変換（永続化用）"""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return int(round(instant.timestamp() * 1000))


def from_epoch_ms(epoch_ms: int) -> datetime:
    """エポックミリ秒をUTCインスタントに変換

    Raises:
        TypeError: 数値以外（bool含む）の場合
        ValueError: datetime の表現範囲外の場合
    """
    if isinstance(epoch_ms, bool) or not isinstance(epoch_ms, (int, float)):
        raise TypeError(f"Epoch milliseconds must be a number, got: {epoch_ms!r}")
    try:
        return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
    except (OverflowError, OSError) as e:
        raise ValueError(f"Epoch milliseconds out of range: {epoch_ms!r}") from e
