"""
Custom Logger com níveis semânticos e contexto estruturado
Níveis: warning, info, request, error, slow, great

O contexto (kwargs) vai para o fim da linha como ``chave=valor``. Credenciais
nunca são escritas e emails aparecem mascarados (``a***@example.com``).
"""
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from app.core.config import settings
from app.logging.formatters import get_formatter_for_level
from app.logging.log_levels import LogLevel

FILTERED = "[FILTERED]"

# Chaves que nunca devem aparecer no contexto de log
REDACTED_KEYS = frozenset({
    "password", "new_password", "otp", "token",
    "access_token", "refresh_token", "reset_token", "authorization",
})

EMAIL_KEYS = frozenset({"email", "to"})


def mask_email(email: str) -> str:
    local, sep, domain = str(email).partition("@")
    if not sep:
        return FILTERED
    return f"{local[:1]}***@{domain}"


def sanitize_context(context: Dict[str, Any]) -> Dict[str, Any]:
    clean = {}
    for key, value in context.items():
        if key.lower() in REDACTED_KEYS:
            clean[key] = FILTERED
        elif key.lower() in EMAIL_KEYS and value:
            clean[key] = mask_email(value)
        else:
            clean[key] = value
    return clean


def _clean_traceback() -> Optional[str]:
    """Traceback atual sem frames de bibliotecas e sem linhas repetidas"""
    formatted = traceback.format_exc()
    if formatted.startswith("NoneType: None"):
        return None

    seen = set()
    lines = []
    for line in formatted.splitlines():
        if not line.strip() or line in seen or "site-packages" in line:
            continue
        seen.add(line)
        lines.append(line)
    return "\n".join(lines)


class CustomLogger:
    """
    Logger customizado com contexto estruturado

    Uso:
        logger = CustomLogger("auth")
        logger.info("OTP enviado", user_id=123)
        logger.error("Falha ao enviar email", exc_info=True, to="ann@example.com")
        logger.slow("Requisição lenta", duration=5.2, path="/api/auth/login")
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
        self.logger.propagate = False

        # get_logger é cacheado, mas módulos recarregados não podem duplicar handlers
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter("%(message)s"))
            self.logger.addHandler(handler)

    @staticmethod
    def _format_context(context: Dict[str, Any]) -> str:
        if not context:
            return ""
        return " | " + " ".join(f"{key}={value}" for key, value in context.items())

    def _log(self, level: LogLevel, message: str, exc_info: bool = False, **context: Any) -> None:
        stdlib_level = level.stdlib_level
        if not self.logger.isEnabledFor(stdlib_level):
            return

        context = sanitize_context(context)
        record = self.logger.makeRecord(self.name, stdlib_level, "", 0, message, (), None)
        record.context = self._format_context(context)
        line = get_formatter_for_level(level).format(record)

        if exc_info:
            tb = _clean_traceback()
            if tb:
                line = f"{line}\n{tb}"

        self.logger.log(
            stdlib_level,
            line,
            extra={
                "custom_data": {
                    "level": level.value,
                    "module": self.name,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    **context,
                }
            },
        )

    # Métodos públicos para cada nível

    def warning(self, message: str, **context: Any) -> None:
        """
        Situações que merecem atenção mas não são erros

        Exemplo:
            logger.warning("Redis indisponível, rate limit ignorado", scope="login")
        """
        self._log(LogLevel.WARNING, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(LogLevel.INFO, message, **context)

    def request(self, message: str, method: str, path: str, status_code: int, duration: float, **context: Any) -> None:
        """Uma linha por requisição HTTP (ver AccessLoggingMiddleware)"""
        self._log(
            LogLevel.REQUEST,
            f"{method} {path} {status_code} {duration:.4f}s - {message}",
            **context
        )

    def error(self, message: str, exc_info: bool = True, **context: Any) -> None:
        """
        Falhas que requerem atenção; anexa o traceback atual por padrão

        Exemplo:
            try:
                ...
            except SMTPException:
                logger.error("Falha ao enviar OTP", user_id=456)
        """
        self._log(LogLevel.ERROR, message, exc_info=exc_info, **context)

    def slow(self, message: str, duration: float, threshold: float = 1.0, **context: Any) -> None:
        self._log(LogLevel.SLOW, message, duration=duration, threshold=threshold, **context)

    def great(self, message: str, **context: Any) -> None:
        """Eventos positivos importantes (registro do admin, senha redefinida)"""
        self._log(LogLevel.GREAT, message, **context)


_loggers: Dict[str, CustomLogger] = {}


def get_logger(name: str) -> CustomLogger:
    """
    Obtém uma instância do logger customizado

    Uso:
        from app.logging import get_logger
        logger = get_logger(__name__)
    """
    if name not in _loggers:
        _loggers[name] = CustomLogger(name)
    return _loggers[name]
