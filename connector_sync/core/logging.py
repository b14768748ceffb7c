import logging

import colorlog

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

# taskName names the sync worker (sync-worker-N) a record came from
LOG_FORMAT = (
    "%(asctime)s | %(log_color)s%(levelname)-8s%(reset)s | %(taskName)s | "
    "%(name)s:%(lineno)d | %(message)s"
)

NOISY_LOGGERS = ("uvicorn.access", "aiohttp", "asyncio", "apscheduler", "httpx")


def setup_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(
        colorlog.ColoredFormatter(
            fmt=LOG_FORMAT,
            datefmt="%Y-%m-%d %H:%M:%S",
            log_colors=LOG_COLORS,
        )
    )

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
