from __future__ import annotations

import sys

from loguru import logger

from partner_onboarding.config.paths import resolve_runtime_path

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{extra[request_id]} - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """
    Replaces loguru's default sink with a coloured stderr sink and, when
    `log_file` is given, a rotating JSON sink for later analysis.
    """
    logger.remove()
    logger.configure(extra={"request_id": "-"})
    logger.add(sys.stderr, level=level.upper(), format=CONSOLE_FORMAT)

    if log_file:
        path = resolve_runtime_path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(path),
            rotation="1 day",
            retention="7 days",
            level="DEBUG",
            serialize=True,
        )
