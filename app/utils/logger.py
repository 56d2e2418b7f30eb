import logging
import sys
from loguru import logger as loguru_logger
from app.config.settings import Settings, settings

SERVER_LOGGERS = ("uvicorn", "uvicorn.access", "fastapi")
CLIENT_LOGGERS = ("aiohttp.client", "redis")

class InterceptHandler(logging.Handler):
    """Forwards stdlib records (app modules, uvicorn, redis) to loguru"""

    def emit(self, record):
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging internals so loguru reports the real caller
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        loguru_logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )

def setup_logger(config: Settings = settings):
    console_level = "DEBUG" if config.debug else config.log_level.upper()
    file_level = "DEBUG" if config.debug else "INFO"

    loguru_logger.remove()

    log_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "<level>{message}</level>"
    )

    loguru_logger.add(sys.stdout, format=log_format, level=console_level, colorize=True)

    loguru_logger.add(
        f"{config.log_dir}/catalog_bot_{{time:YYYY-MM-DD}}.log",
        format=log_format,
        level=file_level,
        rotation="1 day",
        retention=f"{config.log_retention_days} days",
        compression="zip"
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in SERVER_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO)
    for name in CLIENT_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if config.debug else logging.WARNING)

    loguru_logger.info(f"Logging initialized ({config.environment}, console level {console_level})")
