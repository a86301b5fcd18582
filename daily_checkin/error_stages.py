"""エラー段階判定システム（段階タグ・ストレージ例外）"""

import functools
from pathlib import Path
from typing import Any, Awaitable, Callable, Literal, Optional, TypeVar, Union

# エラー段階の型定義
ErrorStage = Literal["settings", "load", "save", "resolve", "checkin", "streak", "sweep"]


class StorageError(Exception):
    """永続化ドキュメントの書き込み（または読み取り）に失敗した

    メモリ上の状態と永続化状態が乖離するため、呼び出し元は握りつぶさずに伝播させること。
    """

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None) -> None:
        super().__init__(message)
        self.path = str(path) if path is not None else None


def determine_error_stage(exception: Exception, context: str = "general") -> ErrorStage:
    """例外とコンテキストからエラー段階を判定する

    Args:
        exception: 発生した例外
        context: エラー発生コンテキスト（"settings", "sweep", "checkin", "streak", etc.）

    Returns:
        ErrorStage: 判定されたエラー段階

    Examples:
        >>> determine_error_stage(StorageError("write failed"), "checkin")
        "save"
        >>> determine_error_stage(ValueError("bad hour"), "resolve")
        "resolve"
    """
    # StorageErrorはコンテキストより優先（書き込み失敗は致命的）
    if isinstance(exception, StorageError):
        error_message = str(exception).lower()
        if any(keyword in error_message for keyword in ["read", "load", "parse"]):
            return "load"
        return "save"

    # コンテキスト別の判定
    if context in ("settings", "resolve", "checkin", "streak", "sweep"):
        return context  # type: ignore

    # 例外メッセージ内容による判定（汎用コンテキスト）
    error_message = str(exception).lower()
    if any(keyword in error_message for keyword in ["json", "decode", "parse", "corrupt"]):
        return "load"
    elif any(keyword in error_message for keyword in ["write", "save", "permission", "disk"]):
        return "save"

    # デフォルト: 解決段階（日付・時刻判定の問題として扱う）
    return "resolve"


R = TypeVar("R")


def log_operation_errors(
    event_type: str, context: str = "general"
) -> Callable[[Callable[..., Awaitable[R]]], Callable[..., Awaitable[R]]]:
    """非同期操作の失敗をユーザーID・操作名付きで記録して再送出する

    第1引数が self（_logger を持つ）、第2引数が user_id のメソッドに適用する。
    ネストした操作で同じ例外を二重に記録しない。
    """
    def decorator(func: Callable[..., Awaitable[R]]) -> Callable[..., Awaitable[R]]:
        @functools.wraps(func)
        async def wrapper(self: Any, user_id: str, *args: Any, **kwargs: Any) -> R:
            try:
                return await func(self, user_id, *args, **kwargs)
            except Exception as e:
                if not getattr(e, "_operation_logged", False):
                    self._logger.error(
                        f"{event_type} failed",
                        e,
                        event_type=event_type,
                        user_id=user_id,
                        error_stage=determine_error_stage(e, context)
                    )
                    e._operation_logged = True  # type: ignore[attr-defined]
                raise
        return wrapper
    return decorator
