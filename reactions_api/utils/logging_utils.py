import logging


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str) -> None:
    """Настраивает корневой логгер процесса, неизвестный уровень заменяется на INFO"""
    resolved_level = getattr(logging, level.strip().upper(), None) if level.strip() else None
    if not isinstance(resolved_level, int):
        resolved_level = logging.INFO
    logging.basicConfig(level=resolved_level, format=LOG_FORMAT)
