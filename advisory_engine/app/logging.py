import logging

from rich.logging import RichHandler


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        handlers=[RichHandler(rich_tracebacks=True)],
    )
    # httpx logs every request at INFO; the refresh loop would flood the console.
    logging.getLogger("httpx").setLevel(logging.WARNING)
