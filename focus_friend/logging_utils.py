"""
ロガー設定
"""
import logging
import logging.handlers
import os
from typing import Optional

from . import config

DEFAULT_FORMAT = '[%(asctime)s] %(levelname)s [%(name)s:%(lineno)s] %(message)s'


def setup_logger(
    name: str,
    log_file: Optional[str] = None,
    level: int = logging.INFO,
    format_string: Optional[str] = None,
    backup_count: int = 14
) -> logging.Logger:
    """
    コンソール（＋指定があればファイル）出力のロガーを作成

    Args:
        name: ロガー名
        log_file: ログファイルのパス（Noneならコンソールのみ）
        level: ログレベル
        format_string: フォーマット文字列
        backup_count: 保持する世代数
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # 二重登録しない
    if logger.handlers:
        return logger

    formatter = logging.Formatter(format_string or DEFAULT_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        file_handler = logging.handlers.TimedRotatingFileHandler(
            log_file,
            when='midnight',
            interval=1,
            backupCount=backup_count
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = "focus_friend") -> logging.Logger:
    """設定値に従ってアプリのロガーを取得"""
    level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
    log_file = os.path.join(config.LOG_DIR, f"{name}.log") if config.LOG_DIR else None
    return setup_logger(name, log_file=log_file, level=level)
