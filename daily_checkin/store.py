# JSON Document Store - ユーザー単位の全文書ストレージ
# チェックイン / 有効リセット時刻 / 保留中の変更 を独立したJSON文書として保存

import asyncio
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

import orjson

from daily_checkin.clock import CivilDate, from_epoch_ms, parse_civil_date, to_epoch_ms
from daily_checkin.error_stages import StorageError
from daily_checkin.logger import CheckinLogger


T = TypeVar("T")

UserId = str

CHECKINS_FILE = "checkins.json"
RESET_TIMES_FILE = "reset_times.json"
PENDING_RESETS_FILE = "pending_resets.json"


def _require_hour(value: Any) -> int:
    """0-23の整数であることを検証"""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Hour must be an integer, got: {value!r}")
    if not 0 <= value <= 23:
        raise ValueError(f"Hour must be between 0 and 23, got: {value}")
    return value


@dataclass
class Task:
    """チェックイン内の1タスク（id は作成順の1始まり位置）"""
    id: int
    content: str
    completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "content": self.content, "completed": self.completed}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        task_id = data["id"]
        if isinstance(task_id, bool) or not isinstance(task_id, int):
            raise TypeError(f"Task id must be an integer, got: {task_id!r}")
        if not isinstance(data["content"], str):
            raise TypeError("Task content must be a string")
        if not isinstance(data["completed"], bool):
            raise TypeError("Task completed must be a boolean")
        return cls(id=task_id, content=data["content"], completed=data["completed"])


@dataclass
class CheckinRecord:
    """1ユーザー1暦日のチェックイン"""
    date: CivilDate
    tasks: List[Task] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date, "tasks": [task.to_dict() for task in self.tasks]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CheckinRecord":
        parse_civil_date(data["date"])
        if not isinstance(data["tasks"], list):
            raise TypeError("Checkin tasks must be a list")
        return cls(date=data["date"], tasks=[Task.from_dict(t) for t in data["tasks"]])


@dataclass
class ResetHourSetting:
    """有効なリセット時刻設定（未設定は0時扱い）"""
    hour: int
    last_update: datetime
    applied_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"hour": self.hour, "lastUpdate": to_epoch_ms(self.last_update)}
        if self.applied_at is not None:
            data["appliedAt"] = to_epoch_ms(self.applied_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResetHourSetting":
        applied_at = data.get("appliedAt")
        return cls(
            hour=_require_hour(data["hour"]),
            last_update=from_epoch_ms(data["lastUpdate"]),
            applied_at=from_epoch_ms(applied_at) if applied_at is not None else None
        )


@dataclass
class PendingResetChange:
    """まだ有効になっていないリセット時刻変更（1ユーザー最大1件）"""
    hour: int
    last_update: datetime
    effective_time: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hour": self.hour,
            "lastUpdate": to_epoch_ms(self.last_update),
            "effectiveTime": to_epoch_ms(self.effective_time)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingResetChange":
        return cls(
            hour=_require_hour(data["hour"]),
            last_update=from_epoch_ms(data["lastUpdate"]),
            effective_time=from_epoch_ms(data["effectiveTime"])
        )


def _decode_history(data: Any) -> List[CheckinRecord]:
    if not isinstance(data, list):
        raise TypeError("Checkin history must be a list")
    return [CheckinRecord.from_dict(item) for item in data]


def _encode_history(history: List[CheckinRecord]) -> List[Dict[str, Any]]:
    return [record.to_dict() for record in history]


class JsonDocumentStore(Generic[T]):
    """ユーザーIDをキーとする1つのJSON文書（全体読み書き）

    load は欠落・空・破損した文書を空マッピングで書き戻して返す（呼び出し元に解析エラーを出さない）。
    save の失敗は StorageError として必ず伝播する。
    """

    def __init__(
        self,
        path: Path,
        name: str,
        decode: Callable[[Any], T],
        encode: Callable[[T], Any],
        logger: CheckinLogger
    ) -> None:
        self.path = Path(path)
        self.name = name
        self._decode = decode
        self._encode = encode
        self._logger = logger

    def _read_raw(self) -> Optional[Any]:
        """文書を読み取り、自己修復が必要なら None を返す"""
        try:
            content = self.path.read_bytes()
        except FileNotFoundError:
            self._logger.warn(f"{self.name}: document missing, initializing", event_type="load")
            return None
        except OSError as e:
            self._logger.error(f"{self.name}: failed to read {self.path}", e, event_type="load", error_stage="load")
            raise StorageError(f"Failed to read document {self.path}: {e}", self.path) from e

        if not content.strip():
            self._logger.warn(f"{self.name}: document empty, initializing", event_type="load")
            return None

        try:
            raw = orjson.loads(content)
        except orjson.JSONDecodeError as e:
            self._logger.warn(f"{self.name}: document corrupt ({e}), initializing", event_type="load")
            return None

        if not isinstance(raw, dict):
            self._logger.warn(f"{self.name}: document is not an object, initializing", event_type="load")
            return None
        return raw

    def _write_raw(self, raw: Dict[str, Any]) -> None:
        """一時ファイルへ書いてから置き換える（原子的書き込み）"""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = orjson.dumps(raw, option=orjson.OPT_INDENT_2)
            fd, temp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".tmp_", suffix=".json")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(temp_path, self.path)
            except BaseException:
                # 一時ファイルの後始末
                if os.path.exists(temp_path):
                    os.unlink(temp_path)
                raise
        except OSError as e:
            self._logger.error(f"{self.name}: failed to write {self.path}", e, event_type="save", error_stage="save")
            raise StorageError(f"Failed to write document {self.path}: {e}", self.path) from e

    def load_sync(self) -> Dict[UserId, T]:
        raw = self._read_raw()
        if raw is None:
            self._write_raw({})
            return {}

        mapping: Dict[UserId, T] = {}
        for user_id, value in raw.items():
            try:
                mapping[user_id] = self._decode(value)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                self._logger.error(
                    f"{self.name}: dropping malformed entry",
                    e,
                    event_type="load",
                    user_id=user_id,
                    error_stage="load"
                )
                # 不正なエントリはスキップして処理継続
                continue
        return mapping

    def save_sync(self, mapping: Dict[UserId, T]) -> None:
        self._write_raw({user_id: self._encode(value) for user_id, value in mapping.items()})
        self._logger.debug(f"{self.name}: saved {len(mapping)} entries", event_type="save")

    async def load(self) -> Dict[UserId, T]:
        """文書全体を読み込む"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.load_sync)

    async def save(self, mapping: Dict[UserId, T]) -> None:
        """文書全体を書き込む

        Raises:
            StorageError: 書き込みに失敗した場合
        """
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.save_sync, mapping)

    async def initialize(self) -> None:
        """ディレクトリ作成と文書検証（破損時は自己修復）"""
        await self.load()


CheckinStore = JsonDocumentStore[List[CheckinRecord]]
ResetHourStore = JsonDocumentStore[ResetHourSetting]
PendingResetStore = JsonDocumentStore[PendingResetChange]


def create_checkin_store(data_dir: Path, logger: CheckinLogger) -> CheckinStore:
    return JsonDocumentStore(
        Path(data_dir) / CHECKINS_FILE, "checkins", _decode_history, _encode_history, logger
    )


def create_reset_hour_store(data_dir: Path, logger: CheckinLogger) -> ResetHourStore:
    return JsonDocumentStore(
        Path(data_dir) / RESET_TIMES_FILE,
        "reset_times",
        ResetHourSetting.from_dict,
        ResetHourSetting.to_dict,
        logger
    )


def create_pending_reset_store(data_dir: Path, logger: CheckinLogger) -> PendingResetStore:
    return JsonDocumentStore(
        Path(data_dir) / PENDING_RESETS_FILE,
        "pending_resets",
        PendingResetChange.from_dict,
        PendingResetChange.to_dict,
        logger
    )
