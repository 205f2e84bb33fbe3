"""
Logging setup for the movetoearn client.

Console output is one short line per record with long hex values (transaction
hashes, handles, proofs) abbreviated. With MOVETOEARN_DEBUG=1 or --verbose a
full-detail log of every movetoearn module is also written to
movetoearn_debug.log in the working directory.
"""
import logging
import os
import re
import sys
from pathlib import Path

LOG_FILE_NAME = 'movetoearn_debug.log'
CONSOLE_HANDLER_NAME = 'movetoearn_console'
FILE_HANDLER_NAME = 'movetoearn_file'

# Third-party loggers that flood the console at INFO/DEBUG
QUIET_LOGGERS = ('web3', 'urllib3', 'aiohttp', 'asyncio', 'eth_account')

_LONG_HEX = re.compile(r'0x([0-9a-fA-F]{8})[0-9a-fA-F]{33,}')


def debug_enabled() -> bool:
    return os.getenv('MOVETOEARN_DEBUG', '').strip().lower() in ('1', 'true', 'yes')


class ConciseFormatter(logging.Formatter):
    """Colour-tagged single line; logger name only for debug and errors."""

    FORMATS = {
        logging.DEBUG: "\033[90m[D]\033[0m %(name)s: %(message)s",
        logging.INFO: "\033[32m[I]\033[0m %(message)s",
        logging.WARNING: "\033[33m[W]\033[0m %(message)s",
        logging.ERROR: "\033[31m[E]\033[0m %(name)s: %(message)s",
        logging.CRITICAL: "\033[31;1m[!]\033[0m %(name)s: %(message)s",
    }

    def format(self, record):
        fmt = self.FORMATS.get(record.levelno, self.FORMATS[logging.INFO])
        # 0x values longer than an address keep their first 8 digits
        return _LONG_HEX.sub(r"0x\1...", logging.Formatter(fmt).format(record))


def setup_logging(verbose: bool = False) -> logging.Logger:
    """
    Configure console logging once at startup.

    Args:
        verbose: Also write DEBUG records to the log file (same as MOVETOEARN_DEBUG=1)

    Returns:
        The movetoearn package logger
    """
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    root.handlers = [h for h in root.handlers if h.name != CONSOLE_HANDLER_NAME]

    console = logging.StreamHandler(sys.stdout)
    console.name = CONSOLE_HANDLER_NAME
    console.setLevel(logging.INFO)
    console.setFormatter(ConciseFormatter())
    root.addHandler(console)

    app_logger = logging.getLogger('movetoearn')
    app_logger.setLevel(logging.INFO)

    if verbose or debug_enabled():
        path = enable_file_logging()
        app_logger.info(f"Verbose log: {path}")
    return app_logger


def enable_file_logging(directory: str = None) -> Path:
    """Send DEBUG records from every movetoearn module to the log file."""
    path = Path(directory or os.getcwd()) / LOG_FILE_NAME
    app_logger = logging.getLogger('movetoearn')
    app_logger.setLevel(logging.DEBUG)

    if not any(h.name == FILE_HANDLER_NAME for h in app_logger.handlers):
        handler = logging.FileHandler(path, mode='w', encoding='utf-8')
        handler.name = FILE_HANDLER_NAME
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s: %(message)s', datefmt='%Y-%m-%d %H:%M:%S'
        ))
        app_logger.addHandler(handler)
    return path
