"""
設定値（環境変数 / .env から読み込み）
"""
import os
from dotenv import load_dotenv

# 環境変数を読み込み
load_dotenv()

# Firebase Authentication (REST API)
FIREBASE_API_KEY = os.getenv("FIREBASE_API_KEY", "")
FIREBASE_AUTH_URL = os.getenv("FIREBASE_AUTH_URL", "https://identitytoolkit.googleapis.com/v1")

# Microsoft Graph（Outlookカレンダー同期）
GRAPH_BASE_URL = os.getenv("GRAPH_BASE_URL", "https://graph.microsoft.com/v1.0")
CALENDAR_TIMEZONE = os.getenv("CALENDAR_TIMEZONE", "UTC")
CALENDAR_PAGE_SIZE = int(os.getenv("CALENDAR_PAGE_SIZE", "50"))

# 先生として扱うメールアドレス（カンマ区切り）
TEACHER_EMAILS = [
    e.strip().lower() for e in os.getenv("TEACHER_EMAILS", "").split(",") if e.strip()
]

HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "10.0"))

DB_PATH = os.getenv("FOCUS_FRIEND_DB", "focus_friend.db")
SECRET_KEY = os.getenv("SECRET_KEY", "focus-friend-dev-secret")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", "")


def is_configured() -> bool:
    """認証プロバイダーが設定されているか"""
    return bool(FIREBASE_API_KEY)
