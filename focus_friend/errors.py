"""
エラー定義
"""
from typing import Optional


class FocusFriendError(Exception):
    """全ドメインエラーの基底クラス"""

    kind = "error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class ValidationError(FocusFriendError):
    """入力値が不正"""

    kind = "validation"


class InvalidStateError(FocusFriendError):
    """現在の状態では実行できない操作"""

    kind = "invalid_state"


class DuplicateEntryError(FocusFriendError):
    """同じレッスン・同じ日の気分記録が既に存在する"""

    kind = "duplicate_entry"


class NotFoundError(FocusFriendError):
    """存在しないレッスン・セッションへの参照"""

    kind = "not_found"


class ExternalCollaboratorError(FocusFriendError):
    """認証・カレンダーなど外部サービスの失敗（reasonは提供元ごとの理由コード）"""

    kind = "external"

    def __init__(self, reason: str, message: str = "", status_code: Optional[int] = None):
        super().__init__(message or reason)
        self.reason = reason
        self.status_code = status_code

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["reason"] = self.reason
        return data
