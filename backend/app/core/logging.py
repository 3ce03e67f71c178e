"""
Configuration du logging JSON
"""
import logging
import sys
from typing import Union

from pythonjsonlogger.json import JsonFormatter

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(level: Union[int, str] = logging.INFO) -> None:
    """
    Configure le logger racine avec un handler JSON sur stdout

    Les champs passés via ``extra=`` apparaissent comme clés JSON.

    Args:
        level: Niveau de log (entier ou nom, ex. "INFO")
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter(LOG_FORMAT))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = []
    root.addHandler(handler)
