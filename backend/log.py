"""Logging initialization using loguru."""

from pathlib import Path
import logging
import sys

from loguru import logger


class InterceptHandler(logging.Handler):
    """Route stdlib `logging` records (uvicorn, httpx) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def init_logging(level: str = "INFO", log_dir: str = "") -> None:
    """Install a stderr sink and, if `log_dir` is set, a rotating file sink."""

    logger.remove()
    logger.add(sys.stderr, level=level, backtrace=False, diagnose=False)
    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_path / "backend_{time:YYYYMMDD}.log"),
            rotation="10 MB",
            retention="10 days",
            enqueue=True,
            backtrace=False,
            diagnose=False,
            level=level,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers = [InterceptHandler()]
        logging.getLogger(name).propagate = False
