# Logger - JSONL形式ログ出力
# 一元ログ: ts,level,event_type,user_id,payload_summary,result,error_stage,error_detail

import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

import orjson

from daily_checkin.clock import JST
from daily_checkin.error_stages import ErrorStage


# スレッドセーフなファイル書き込み用のロック
_log_lock = threading.Lock()


def _get_jst_timestamp() -> str:
    """JST（UTC+9固定）でのISO8601タイムスタンプを取得"""
    return datetime.now(JST).isoformat()


def _truncate_payload_summary(payload_summary: str, max_length: int = 80) -> str:
    """ペイロードサマリーを指定文字数で切り詰め"""
    if len(payload_summary) <= max_length:
        return payload_summary
    return payload_summary[:max_length - 3] + "..."


class CheckinLogger:
    """チェックイン処理用ロガー（fire-and-forget・例外を投げない）

    出力先が壊れていてもコア処理を止めないことが唯一の約束。
    書き込み失敗は標準エラー出力に流して終わる。
    """

    def __init__(self, log_file: Union[str, Path], debug_enabled: bool = False) -> None:
        self.log_file = Path(log_file)
        self.debug_enabled = debug_enabled

    def _write_log_entry(
        self,
        level: str,
        event_type: str,
        user_id: str,
        payload_summary: str,
        result: str,
        error_stage: Optional[str] = None,
        error_detail: Optional[str] = None
    ) -> None:
        """ログエントリをJSONL形式でファイルに書き込み"""
        try:
            log_entry = {
                "ts": _get_jst_timestamp(),
                "level": level,
                "event_type": event_type,
                "user_id": str(user_id),
                "payload_summary": _truncate_payload_summary(str(payload_summary)),
                "result": result,
                "error_stage": error_stage,
                "error_detail": error_detail
            }

            # ディレクトリの存在確認
            self.log_file.parent.mkdir(parents=True, exist_ok=True)

            json_line = orjson.dumps(log_entry).decode('utf-8')

            with _log_lock:
                with open(self.log_file, 'a', encoding='utf-8') as f:
                    f.write(json_line + '\n')

        except Exception as e:
            # ログ出力エラーはアプリケーションをクラッシュさせない
            print(f"LOGGER ERROR: Failed to write log entry: {e}", file=sys.stderr)

    def info(self, message: str, event_type: str = "system", user_id: str = "system") -> None:
        """成功・進捗ログの記録"""
        self._write_log_entry("info", event_type, user_id, message, "ok")

    def warn(self, message: str, event_type: str = "system", user_id: str = "system") -> None:
        """警告ログの記録（自己修復など）"""
        self._write_log_entry("warn", event_type, user_id, message, "warn")

    def error(
        self,
        message: str,
        error: Optional[BaseException] = None,
        event_type: str = "system",
        user_id: str = "system",
        error_stage: Optional[ErrorStage] = None
    ) -> None:
        """エラーログの記録

        Args:
            message: ペイロード要約（先頭80字程度）
            error: 原因となった例外（あれば error_detail に要約を残す）
            event_type: 操作名（create|toggle|update|request_hour|promote|sweep ...）
            user_id: 対象ユーザーID
            error_stage: エラー段階（settings|load|save|resolve|checkin|streak|sweep）
        """
        if error is not None:
            error_detail = f"{type(error).__name__}: {error}"
        else:
            error_detail = message
        self._write_log_entry(
            "error",
            event_type,
            user_id,
            message,
            "error",
            error_stage=error_stage or "resolve",
            error_detail=error_detail
        )

    def debug(self, message: str, event_type: str = "system", user_id: str = "system") -> None:
        """デバッグログ（dev環境のみ出力）"""
        if not self.debug_enabled:
            return
        self._write_log_entry("debug", event_type, user_id, message, "ok")
