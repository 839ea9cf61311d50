import os
import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.traceback import install

# keep library frames out of tracebacks
import tomlkit, voluptuous, websockets

console = Console()


def setup_logging(level: Optional[str] = None):
    FORMAT = "%(message)s"
    level = level or os.environ.get("LOGLEVEL", "INFO")
    logging_handler = RichHandler(
        level=level,
        console=console,
        rich_tracebacks=True,
        tracebacks_suppress=[tomlkit, voluptuous, websockets]
    )

    logging.basicConfig(
        level="NOTSET", format=FORMAT, datefmt="[%X]", handlers=[logging_handler]
    )
    # websockets logs every frame at debug
    logging.getLogger("websockets").setLevel(logging.INFO)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    install(
        console=console,
        suppress=[websockets]
    )
