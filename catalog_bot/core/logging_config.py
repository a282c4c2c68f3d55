"""
Настройка логирования бота.

Консоль получает короткие сообщения, logs/app.log хранит всё подряд, а
logs/pipeline.log отдельно собирает трассировку пайплайна ([web], [text],
[img], [upload]) из catalog_bot.api и catalog_bot.services на уровне DEBUG,
чтобы разбор одного /smartadd не тонул в событиях aiogram.
"""

from __future__ import annotations

import logging
import logging.config
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

LOG_DIR = Path("logs")
LOG_PATTERNS = ("app.log*", "pipeline.log*")
PIPELINE_LOGGERS = ("catalog_bot.api", "catalog_bot.services")


class SuppressPollingNoiseFilter(logging.Filter):
    """Отбрасывает «Update id=... is handled», которые aiogram пишет на каждый апдейт."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        message = record.getMessage().lower()
        return not (message.startswith("update id=") and "is handled" in message)


def _rotating_file(path: Path, max_mb: int, backups: int) -> Dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": "DEBUG",
        "formatter": "detailed",
        "filename": str(path),
        "maxBytes": max_mb * 1024 * 1024,
        "backupCount": backups,
        "encoding": "utf-8",
        "delay": True,
    }


def build_logging_config(level: str = "INFO", log_dir: Path = LOG_DIR, debug: bool = False) -> Dict[str, Any]:
    """
    Словарь для dictConfig.

    Args:
        level: Уровень root-логгера и консоли
        log_dir: Каталог файлов логов
        debug: Печатать в консоль и DEBUG-сообщения пайплайна
    """
    console_level = "DEBUG" if debug else level
    app_file = _rotating_file(log_dir / "app.log", max_mb=5, backups=20)
    app_file["filters"] = ["polling_noise"]

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "polling_noise": {"()": SuppressPollingNoiseFilter},
        },
        "formatters": {
            "detailed": {"format": "%(asctime)s %(levelname)-7s %(name)s: %(message)s"},
            "console": {"format": "%(levelname)s: %(message)s"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": console_level,
                "formatter": "console",
                "filters": ["polling_noise"],
            },
            "app_file": app_file,
            "pipeline_file": _rotating_file(log_dir / "pipeline.log", max_mb=5, backups=10),
        },
        "root": {"handlers": ["console", "app_file"], "level": level},
        "loggers": {
            **{
                name: {"handlers": ["pipeline_file"], "level": "DEBUG", "propagate": True}
                for name in PIPELINE_LOGGERS
            },
            # строка на каждый запрос: только в файл и только предупреждения
            "httpx": {"handlers": ["app_file"], "level": "WARNING", "propagate": False},
            "httpcore": {"handlers": ["app_file"], "level": "WARNING", "propagate": False},
        },
    }


def setup_logging(
    level: str = "INFO",
    debug: bool = False,
    log_dir: Optional[Path] = None,
    retention_days: int = 30,
    max_total_mb: int = 100,
) -> None:
    directory = Path(log_dir) if log_dir is not None else LOG_DIR
    directory.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(build_logging_config(level, directory, debug))
    removed = cleanup_logs(directory, retention_days, max_total_mb * 1024 * 1024)
    if removed:
        logging.getLogger(__name__).info("Removed %s old log files", len(removed))


def cleanup_logs(log_dir: Path, retention_days: int, max_total_bytes: int) -> List[Path]:
    """
    Удаляет файлы старше retention_days, затем самые старые сверх общего лимита.

    Returns:
        List[Path]: удалённые файлы
    """
    files = [path for pattern in LOG_PATTERNS for path in log_dir.glob(pattern) if path.is_file()]
    stats = []
    for path in files:
        try:
            stats.append((path, path.stat()))
        except FileNotFoundError:
            continue
    stats.sort(key=lambda item: item[1].st_mtime, reverse=True)

    cutoff = time.time() - retention_days * 86400
    removed: List[Path] = []
    kept_size = 0
    for path, stat in stats:
        kept_size += stat.st_size
        if stat.st_mtime < cutoff or kept_size > max_total_bytes:
            path.unlink(missing_ok=True)
            removed.append(path)
            kept_size -= stat.st_size
    return removed
