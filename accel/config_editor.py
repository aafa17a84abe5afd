"""
Idempotent editing of line oriented configuration files.

The tool owns tagged blocks at the end of sysctl.conf and limits.conf.
Re-applying a block is always "remove every line the block could have
written, then append a fresh copy", which converges to the same file
however many times it runs and repairs files left half-edited.
"""

import logging
import os
import shutil
import tempfile
from typing import Iterable, List, Optional

from accel.models import ConfigBlock


class ConfigFileError(Exception):
    """A managed file could not be read or written"""


def _collapse(line: str) -> str:
    return ' '.join(line.split())


def line_matches(line: str, pattern: str) -> bool:
    """Substring match on the raw or whitespace-collapsed line, '^' anchors"""
    collapsed = _collapse(line)
    if pattern.startswith('^'):
        return collapsed.startswith(_collapse(pattern[1:]))
    return pattern in line or _collapse(pattern) in collapsed


class ConfigBlockEditor:
    """Removes and appends tool-owned blocks"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('tcp_accel')

    def read_lines(self, file_path: str) -> List[str]:
        return self._read_text(file_path).splitlines()

    def _read_text(self, file_path: str) -> str:
        try:
            with open(file_path, 'r') as f:
                return f.read()
        except FileNotFoundError as e:
            raise ConfigFileError(f"{file_path} does not exist") from e
        except OSError as e:
            raise ConfigFileError(f"Failed to read {file_path}: {e}") from e

    def write_lines(self, file_path: str, lines: List[str]) -> None:
        content = '\n'.join(lines) + '\n' if lines else ''
        self._safe_write_file(file_path, content)

    def _safe_write_file(self, file_path: str, content: str) -> None:
        """Write through a temp file and an atomic rename, keeping the file mode"""
        dir_path = os.path.dirname(os.path.abspath(file_path))
        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(mode='w', dir=dir_path, delete=False,
                                             prefix=f".{os.path.basename(file_path)}.tmp") as tmp_file:
                tmp_path = tmp_file.name
                tmp_file.write(content)
                tmp_file.flush()
                os.fsync(tmp_file.fileno())

            if os.path.exists(file_path):
                shutil.copymode(file_path, tmp_path)
            else:
                os.chmod(tmp_path, 0o644)

            os.replace(tmp_path, file_path)
            self.logger.debug(f"Successfully wrote {file_path}")

        except OSError as e:
            self.logger.error(f"Failed to write {file_path}: {e}")
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise ConfigFileError(f"Failed to write {file_path}: {e}") from e

    def remove_managed_lines(self, file_path: str, patterns: Iterable[str]) -> int:
        """Drop every line matching a pattern and return how many went

        Blank lines directly in front of a dropped line go with it, since
        they are the separators append_block writes. Trailing blank lines
        are trimmed. Everything else keeps its order.
        """
        patterns = list(patterns)
        lines = self.read_lines(file_path)

        kept: List[str] = []
        pending_blank: List[str] = []
        removed = 0
        for line in lines:
            if not line.strip():
                pending_blank.append(line)
                continue
            if any(line_matches(line, p) for p in patterns):
                removed += 1
                pending_blank = []
                continue
            kept.extend(pending_blank)
            pending_blank = []
            kept.append(line)

        if removed:
            self.logger.debug(f"Removed {removed} managed line(s) from {file_path}")

        self.write_lines(file_path, kept)
        return removed

    def append_block(self, file_path: str, block: ConfigBlock) -> None:
        """Append separator, marker and body; creates the file if needed"""
        if os.path.exists(file_path):
            lines = self.read_lines(file_path)
        else:
            lines = []

        lines.extend(block.lines())
        self.write_lines(file_path, lines)
        self.logger.info(f"Appended '{block.marker}' block to {file_path}")

    def ensure_line(self, file_path: str, line: str) -> bool:
        """Append a single line unless an identical one exists

        The rest of the file is left byte for byte as it was.
        """
        content = self._read_text(file_path) if os.path.exists(file_path) else ''
        if any(existing.strip() == line for existing in content.splitlines()):
            return False
        if content and not content.endswith('\n'):
            content += '\n'
        self._safe_write_file(file_path, content + line + '\n')
        self.logger.info(f"Added '{line}' to {file_path}")
        return True

    def remove_line(self, file_path: str, line: str) -> int:
        """Drop lines equal to line, keeping every other byte of the file"""
        content = self._read_text(file_path)
        kept = [existing for existing in content.splitlines(keepends=True)
                if existing.strip() != line]
        removed = len(content.splitlines()) - len(kept)
        if removed:
            self._safe_write_file(file_path, ''.join(kept))
            self.logger.info(f"Removed '{line}' from {file_path}")
        return removed
