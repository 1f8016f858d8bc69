import os
import logging
from rich.console import Console
from rich.logging import RichHandler
from rich.traceback import install

# ignore errors from these libs
import tomlkit, voluptuous, websockets

console = Console()


def setup_logging():
    FORMAT = "%(message)s"
    logging_handler = RichHandler(
        level=os.environ.get("LOGLEVEL", "INFO"),
        console=console,
        rich_tracebacks=True,
        tracebacks_suppress=[tomlkit, voluptuous, websockets]
    )

    logging.basicConfig(
        level="NOTSET", format=FORMAT, datefmt="[%X]", handlers=[logging_handler]
    )
    # websockets logs every frame at DEBUG
    logging.getLogger("websockets").setLevel(logging.INFO)

    install(
        console = console
    )
