from app.core.config import settings


def isDebugMode() -> bool:
    return settings.MODE in ("development", "debug")


def isProductionMode() -> bool:
    return settings.MODE == "production"
