"""
Formatters por nível: um prefixo com emoji e o contexto no final da linha

    ✅ [GREAT] 2024-05-01 12:00:00 - auth.password_reset - Password reset completed | user_id=1 reset_id=3
"""
import logging
from functools import lru_cache

from app.logging.log_levels import LogLevel

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_PREFIXES = {
    LogLevel.ERROR: "❌ [ERROR]",
    LogLevel.WARNING: "⚠️  [WARNING]",
    LogLevel.INFO: "ℹ️  [INFO]",
    LogLevel.REQUEST: "🌐 [REQUEST]",
    LogLevel.SLOW: "🐌 [SLOW]",
    LogLevel.GREAT: "✅ [GREAT]",
}


class LevelFormatter(logging.Formatter):
    """Formata ``%(message)s%(context)s`` com o prefixo do nível"""

    def __init__(self, level: LogLevel):
        # requisições não repetem o nome do módulo (sempre "access")
        name = "" if level is LogLevel.REQUEST else "%(name)s - "
        super().__init__(
            f"{_PREFIXES[level]} %(asctime)s - {name}%(message)s%(context)s",
            datefmt=DATE_FORMAT,
        )

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "context"):
            record.context = ""
        return super().format(record)


@lru_cache(maxsize=None)
def get_formatter_for_level(level: LogLevel) -> logging.Formatter:
    """Retorna o formatter apropriado para o nível de log"""
    return LevelFormatter(level)
