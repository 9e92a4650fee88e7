"""
外部サービス（認証・カレンダー）
"""
from typing import Optional

from .auth_client import FirebaseAuth, resolve_role
from .calendar_client import GraphCalendar

# シングルトンインスタンス
_auth_instance: Optional[FirebaseAuth] = None


def get_auth() -> FirebaseAuth:
    """認証インスタンスを取得"""
    global _auth_instance
    if _auth_instance is None:
        _auth_instance = FirebaseAuth()
    return _auth_instance


def get_calendar(access_token: str) -> GraphCalendar:
    """アクセストークンごとのカレンダークライアント"""
    return GraphCalendar(access_token)


__all__ = ["FirebaseAuth", "GraphCalendar", "get_auth", "get_calendar", "resolve_role"]
