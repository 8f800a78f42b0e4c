"""Progress reporting to the console and a log file."""

import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

import click

from sftpkeys.prompts import choose

STYLES = {
    'INFO': ('', None),
    'SUCCESS': ('✅ ', 'green'),
    'WARNING': ('⚠️  ', 'yellow'),
    'ERROR': ('❌ ', 'red'),
}


class Reporter:
    """Reports workflow progress.

    One reporter is created per command and handed to everything that
    reports progress. Notices go to the console and are appended to the log
    file; ``log`` writes to the log file only.
    """

    def __init__(self, log_path: Optional[Path] = None):
        self.log_path = log_path

    def log(self, message: str, level: str = 'INFO') -> None:
        """Append an entry to the log file."""
        if self.log_path is None:
            return
        timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        entry = f'[{timestamp}] {level}: {message}\n'
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, 'a', encoding='utf-8') as f:
                f.write(entry)
        except OSError as e:
            print(f"Warning: Failed to write log entry: {e}", file=sys.stderr)

    def info(self, message: str, *actions: str) -> Optional[str]:
        return self._notify('INFO', message, actions)

    def success(self, message: str, *actions: str) -> Optional[str]:
        return self._notify('SUCCESS', message, actions)

    def warning(self, message: str, *actions: str) -> Optional[str]:
        return self._notify('WARNING', message, actions)

    def error(self, message: str, *actions: str) -> Optional[str]:
        return self._notify('ERROR', message, actions)

    def _notify(self, level: str, message: str, actions: Sequence[str]) -> Optional[str]:
        """Show a notice; with actions, return the label the user picked."""
        self.log(message, 'INFO' if level == 'SUCCESS' else level)
        icon, color = STYLES[level]
        click.secho(f"{icon}{message}", fg=color)

        if not actions:
            return None
        answer = choose(actions)
        if answer.is_cancelled:
            return None
        return actions[answer.value]
