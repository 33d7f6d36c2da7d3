"""
Console output context for Simple Backup.

A single Console is built at startup and handed to every component that
talks to the operator. It prints tagged status lines, draws the progress
bar, reads prompt answers and mirrors every line into the ``smbkp.console``
logger so the log file carries the same history as the terminal.
"""

import logging
import sys
from typing import Callable, Optional, TextIO


SUCCESS = 25
logging.addLevelName(SUCCESS, 'SUCCESS')


class Console:
    """
    Operator-facing output and input.

    Args:
        stream: Where status lines are written (default: sys.stdout)
        input_func: Callable used to read prompt answers (default: input)
        logger: Logger that mirrors every line (default: smbkp.console)
    """

    PROGRESS_BAR_LENGTH = 50
    PROGRESS_FILL = '■'
    PROGRESS_EMPTY = '.'

    def __init__(
        self,
        stream: Optional[TextIO] = None,
        input_func: Optional[Callable[[], str]] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.stream = stream or sys.stdout
        self.input_func = input_func or input
        self.logger = logger or logging.getLogger('smbkp.console')

    def _write(self, text: str, newline: bool = True):
        self.stream.write(text + ('\n' if newline else ''))
        self.stream.flush()

    def blank(self):
        """Print an empty line."""
        self._write('')

    def signature(self, message: str):
        """Print a banner line."""
        self._write(message)
        self.logger.info(message)

    def plain(self, message: str, newline: bool = True):
        """Print an untagged line (or the start of one when newline is False)."""
        self._write(message, newline)
        self.logger.info(message)

    def sub(self, message: str):
        """Print a secondary, detail line."""
        self._write(message)
        self.logger.debug(message)

    def info(self, message: str):
        self._write(f"[INFO] {message}")
        self.logger.info(message)

    def warn(self, message: str):
        self._write(f"[WARN] {message}")
        self.logger.warning(message)

    def error(self, message: str):
        self._write(f"[ERROR] {message}")
        self.logger.error(message)

    def ok(self, message: str = ''):
        """Close a pending status line (see plain(newline=False)) with [OK]."""
        self._write(f"[OK] {message}".rstrip())
        if message:
            self.logger.info(message)

    def success(self, message: str):
        self._write(f"[SUCCESS] {message}")
        self.logger.log(SUCCESS, message)

    def prompt(self, question: str) -> str:
        """
        Ask the operator a question and return the normalized answer.

        The answer is stripped and lower-cased. End of input counts as an
        empty answer, which never confirms anything.

        Args:
            question: Question text shown to the operator

        Returns:
            Normalized answer string
        """
        self._write('')
        self._write(f"{question}:", newline=True)
        self._write('  ', newline=False)
        try:
            answer = self.input_func()
        except EOFError:
            answer = ''
        answer = (answer or '').strip().lower()
        self.logger.info(f"{question}: {answer!r}")
        return answer

    def progress(self, percentage: int, suffix: str = ''):
        """Redraw the progress bar in place for the given percentage."""
        percentage = max(0, min(100, percentage))
        completed = percentage * self.PROGRESS_BAR_LENGTH // 100
        remaining = self.PROGRESS_BAR_LENGTH - completed
        bar = self.PROGRESS_FILL * completed + self.PROGRESS_EMPTY * remaining
        self._write(f"\r[{bar}]{suffix}", newline=False)
