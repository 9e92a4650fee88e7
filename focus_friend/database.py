"""
データベース操作クラス（JSONを保存するキー・バリューストア）
"""
import json
import logging
import sqlite3
from datetime import datetime
from typing import Any, List, Optional

from . import config

logger = logging.getLogger(__name__)

# 保存キー
SCHEDULE_KEY = "schedule"
MOOD_ENTRIES_KEY = "moodEntries"
FOCUS_SESSIONS_KEY = "focusSessions"
REWARD_STATS_KEY = "rewardStats"
GAME_HIGH_SCORE_KEY = "gameHighScore"
PROFILE_KEY = "profile"


class Database:
    """SQLiteによる永続化ストア（ユーザーごとに分離）"""

    def __init__(self, db_path: str = None, user_id: str = None):
        self.db_path = db_path or config.DB_PATH
        self.user_id = user_id or ""  # 空文字はゲスト
        self.init_database()

    def for_user(self, user_id: str) -> "Database":
        """同じDBファイルで別ユーザー用のストアを返す"""
        return Database(self.db_path, user_id)

    def get_connection(self):
        """データベース接続を取得"""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_database(self):
        """テーブルの初期化"""
        conn = self.get_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    user_id TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (user_id, key)
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def get(self, key: str) -> Optional[Any]:
        """値を取得（存在しない・読めない場合はNone）"""
        try:
            conn = self.get_connection()
            try:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE user_id = ? AND key = ?",
                    (self.user_id, key),
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error("read failed for %s/%s: %s", self.user_id, key, e)
            return None

        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as e:
            logger.error("corrupt value for %s/%s: %s", self.user_id, key, e)
            return None

    def set(self, key: str, value: Any):
        """値を保存（失敗はログのみ）"""
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.error("value for %s/%s is not JSON serializable: %s", self.user_id, key, e)
            return

        try:
            conn = self.get_connection()
            try:
                conn.execute("""
                    INSERT INTO kv_store (user_id, key, value, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(user_id, key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                """, (self.user_id, key, payload, datetime.now().isoformat()))
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error("write failed for %s/%s: %s", self.user_id, key, e)

    def delete(self, key: str):
        """キーを削除"""
        try:
            conn = self.get_connection()
            try:
                conn.execute(
                    "DELETE FROM kv_store WHERE user_id = ? AND key = ?",
                    (self.user_id, key),
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error("delete failed for %s/%s: %s", self.user_id, key, e)

    def keys(self) -> List[str]:
        """このユーザーの保存キー一覧"""
        try:
            conn = self.get_connection()
            try:
                rows = conn.execute(
                    "SELECT key FROM kv_store WHERE user_id = ? ORDER BY key",
                    (self.user_id,),
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error("listing keys failed for %s: %s", self.user_id, e)
            return []
        return [row["key"] for row in rows]

    def user_ids(self) -> List[str]:
        """データを持つユーザーID一覧（先生画面用）"""
        try:
            conn = self.get_connection()
            try:
                rows = conn.execute(
                    "SELECT DISTINCT user_id FROM kv_store WHERE user_id != '' ORDER BY user_id"
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error("listing users failed: %s", e)
            return []
        return [row["user_id"] for row in rows]

    def clear(self):
        """このユーザーの全データを削除"""
        for key in self.keys():
            self.delete(key)
