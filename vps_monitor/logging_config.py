import logging
import sys
from typing import Union

_HANDLER_NAME = "vps_monitor.console"


def setup_logging(level: Union[int, str] = logging.INFO) -> None:
    """
    Configure the root logger for the whole process.

    Library modules only call logging.getLogger(__name__); handlers live here.
    Calling it again replaces the console handler instead of adding a second one.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)

    for handler in list(root.handlers):
        if handler.get_name() == _HANDLER_NAME:
            root.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.set_name(_HANDLER_NAME)
    console_handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(console_handler)

    # httpx logs every request at INFO, and the request URL contains the bot token
    logging.getLogger("httpx").setLevel(logging.WARNING)
