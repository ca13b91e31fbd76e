"""
tradesim Logging System
=======================

A unified, thread-safe logging utility for tradesim. This module integrates
with the standard Python `logging` library and the `rich` library to provide
structured, safe and visually distinct logging output.

Usage:
    >>> from tradesim.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Engine started")
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_LEVEL,
    LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_MAX_FILE_SIZE,
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_FILE_OUTPUT,
)


PROJECT_ROOT = Path(__file__).parent.parent
LOG_FILE_PATH = PROJECT_ROOT / "logs" / "tradesim.log"


class LogManager:
    """
    Manages logging configuration via the Singleton pattern.

    Ensures the logging subsystem is initialized exactly once. Sets up a
    'Rich' console handler and a rotating file handler.

    Attributes:
        _instance (LogManager): The singleton instance.
        _lock (threading.Lock): Thread lock for atomic initialization.
    """

    _instance: Optional["LogManager"] = None
    _lock: threading.Lock = threading.Lock()

    def __new__(cls) -> "LogManager":
        """Creates or returns the existing singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return
        self._configured = False
        self._initialized = True

    @staticmethod
    def validate_log_format(log_format: str) -> str:
        """
        Validates the syntax of a logging format string.

        Formats a dummy record to catch runtime errors.

        Returns:
            str: The validated format string, or the default `LOG_FORMAT`
            if validation fails.
        """
        try:
            if not log_format:
                return str(LOG_FORMAT.default())

            log_format = str(log_format)
            format_specifier_pattern = r"\([a-zA-Z_][a-zA-Z0-9_]*\)[a-zA-Z]"
            for match in re.finditer(format_specifier_pattern, log_format):
                start_pos = match.start()
                if start_pos == 0 or log_format[start_pos - 1] != "%":
                    raise ValueError("Malformed format specifier.")

            formatter = logging.Formatter(fmt=log_format)
            record = logging.LogRecord(
                name="test", level=logging.INFO, pathname="", lineno=0,
                msg="test", args=(), exc_info=None,
            )
            formatted_output = formatter.format(record)
            if re.search(format_specifier_pattern, formatted_output):
                raise ValueError("Format specifiers not properly processed.")

            return log_format
        except (ValueError, KeyError, TypeError) as e:
            print(
                f"{time.strftime('%Y-%m-%d %H:%M:%S')} - tradesim.logger - "
                f"Validation Error: {e}. Using default.",
                file=sys.stderr,
            )
            return str(LOG_FORMAT.default())

    @staticmethod
    def validate_date_format(date_format: str) -> str:
        """
        Validates a date format string against standard strftime directives.

        Returns:
            str: The validated date format string, or default if invalid.
        """
        if not date_format:
            return str(LOG_DATE_FORMAT.default())

        date_format = str(date_format)
        date_format_pattern = re.compile(
            r"^(?=.*%(?!%)(?:[EO])?(?:[-_0^#])*(?:[A-DF-HIM-NPR-VW-Za-hj-lm-npr-uw-z]))"
            r"(?:%%|%(?:[EO])?(?:[-_0^#])*(?:[A-DF-HIM-NPR-VW-Za-hj-lm-npr-uw-z])|[0-9 \t:\-\/\.,TZ+])+$"
        )
        if not date_format_pattern.match(date_format):
            print(
                f"{time.strftime(str(LOG_DATE_FORMAT.default()))} - tradesim.logger - "
                f"Invalid date format. Using default.",
                file=sys.stderr,
            )
            return str(LOG_DATE_FORMAT.default())

        return date_format

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        """
        Configures the root logger with console and file handlers.

        Args:
            log_level (Optional[str]): Logging level (DEBUG, INFO, etc.). Defaults to env var.
            log_file (Optional[Path]): Path to log file. Defaults to `logs/tradesim.log`.
            console_output (bool): Enable console logging. Defaults to True.
            file_output (Optional[bool]): Enable rotating file logging. Defaults to `LOG_FILE_OUTPUT`.
        """
        with self._lock:
            if self._configured:
                return

            level_str = log_level or LOG_LEVEL
            numeric_level = getattr(logging, str(level_str).upper(), logging.INFO)

            root_logger = logging.getLogger()
            root_logger.setLevel(numeric_level)

            for lib in ["httpx", "httpx._client", "httpcore"]:
                logging.getLogger(lib).setLevel(logging.WARNING)

            root_logger.handlers.clear()

            log_format = self.validate_log_format(LOG_FORMAT)
            date_format = self.validate_date_format(LOG_DATE_FORMAT)

            # UTC for consistency across machines
            file_formatter = TerminalSafeFormatter(fmt=log_format, datefmt=date_format + " UTC")
            file_formatter.converter = time.gmtime

            if console_output:
                if LOG_CONSOLE_HIGHLIGHTING:
                    tradesim_theme = Theme(
                        {
                            "tradesim.level_critical": "bold red reverse",
                            "tradesim.level_debug":    "bold dim",
                            "tradesim.level_error":    "bold red",
                            "tradesim.level_info":     "bold green",
                            "tradesim.level_warning":  "bold yellow",
                            "tradesim.logger_name":    "magenta",
                            "tradesim.pair":           "bold cyan",
                            "tradesim.side_buy":       "green",
                            "tradesim.side_sell":      "red",
                            "tradesim.status_filled":  "bold green",
                            "tradesim.status_liquidated": "bold red reverse",
                            "tradesim.status_cancelled": "dim",
                            "tradesim.mode":           "bold magenta",
                            "tradesim.entity_id":      "yellow",
                            "tradesim.timestamp":      "bold cyan",
                        }
                    )

                    console = Console(theme=tradesim_theme, highlight=False)
                    rich_handler = RichHandler(
                        console=console,
                        highlighter=TradeSimLogHighlighter(),
                        keywords=[],
                        rich_tracebacks=True,
                        omit_repeated_times=False,
                        show_path=False,
                        show_time=False,
                        show_level=False,
                        markup=False,
                    )
                    rich_handler.setLevel(numeric_level)
                    rich_handler.setFormatter(file_formatter)
                    root_logger.addHandler(rich_handler)
                else:
                    console_handler = logging.StreamHandler(sys.stdout)
                    console_handler.setLevel(numeric_level)
                    console_handler.setFormatter(file_formatter)
                    root_logger.addHandler(console_handler)

            if file_output is None:
                file_output = bool(LOG_FILE_OUTPUT)
            if file_output:
                log_file_path = log_file or LOG_FILE_PATH
                log_file_path.parent.mkdir(parents=True, exist_ok=True)

                file_handler = logging.handlers.RotatingFileHandler(
                    filename=str(log_file_path),
                    maxBytes=LOG_MAX_FILE_SIZE,
                    backupCount=LOG_BACKUP_COUNT,
                    encoding="utf-8",
                )
                file_handler.setLevel(numeric_level)
                file_handler.setFormatter(file_formatter)
                root_logger.addHandler(file_handler)

            self._configured = True

    def get_logger(self, name: str) -> logging.Logger:
        """
        Retrieves a logger for a specific module, configuring on first use.

        Args:
            name (str): The name of the logger (typically `__name__`).
        """
        if not self._configured:
            self.configure()
        return logging.getLogger(name)

    @property
    def is_configured(self) -> bool:
        """Returns True if the logging system has been configured."""
        return self._configured


class TerminalSafeFormatter(logging.Formatter):
    """
    A formatter that strips ANSI escape sequences and non-printable control
    characters from log output (CWE-117).
    """

    _ansi_escape_re = re.compile(
        r"\x1b\[[0-?]*[ -/]*[@-~]"
        r"|\x1b[@-Z\\-_]"
    )
    # Control chars (0x00-0x1F) excluding Tab and Newline
    _control_chars_re = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
    _carriage_return_re = re.compile(r"\r")

    @classmethod
    def sanitize(cls, text: str) -> str:
        """Removes potentially dangerous characters from the provided text."""
        if not text:
            return text
        text = cls._ansi_escape_re.sub("", text)
        text = cls._carriage_return_re.sub("", text)
        text = cls._control_chars_re.sub("", text)
        return text

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class TradeSimLogHighlighter(RegexHighlighter):
    """Regex highlighter for engine log lines."""

    base_style = "tradesim."
    highlights = [
        r"(?P<level_critical>\bCRITICAL\b)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"(?P<level_error>\bERROR\b)",
        r"(?P<level_info>\bINFO\b)",
        r"(?P<level_warning>\bWARNING\b)",
        r"\-\s+\w+\s+-\s+(?P<logger_name>[\w.]+)(?=\s-\s)",
        r"(?P<pair>\b[A-Z]{2,5}/USDT\b)",
        r"(?P<side_buy>\b(buy|long)\b)",
        r"(?P<side_sell>\b(sell|short)\b)",
        r"(?P<status_filled>\bfilled\b)",
        r"(?P<status_liquidated>\bliquidated\b)",
        r"(?P<status_cancelled>\bcancelled\b)",
        r"(?P<mode>\[(paper|real)\])",
        r"(?P<entity_id>\b[0-9a-f]{16}\b)",
        r"(?P<timestamp>^(.*?)UTC)",
    ]


_manager = LogManager()

def get_logger(name: str) -> logging.Logger:
    """
    Public accessor of the logging system.
    Delegates to the Singleton LogManager, ensuring configuration is applied.
    """
    return _manager.get_logger(name)


def configure_logging(**kwargs) -> None:
    """Explicitly configure logging (CLI entry points pass their options here)."""
    _manager.configure(**kwargs)
