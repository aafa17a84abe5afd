"""
One-time snapshots of managed files.

The first snapshot of a file is its pristine, pre-tool content. It is
never refreshed, so restoring always returns to the state before this
tool touched the system, however many operations ran since.
"""

import logging
import os
import shutil
from typing import Optional

from accel.config_editor import ConfigFileError
from accel.models import ManagedFile


class BackupManager:
    """Creates and restores the pristine copy of a managed file"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('tcp_accel')

    def has_backup(self, managed: ManagedFile) -> bool:
        return os.path.exists(managed.backup_path)

    def ensure_backup(self, managed: ManagedFile) -> bool:
        """Copy the file to its backup path unless a backup already exists"""
        if self.has_backup(managed):
            self.logger.debug(f"Backup {managed.backup_path} already exists, keeping it")
            return False

        if not os.path.exists(managed.path):
            self.logger.warning(f"File {managed.path} does not exist, no backup created")
            return False

        try:
            shutil.copy2(managed.path, managed.backup_path)
        except OSError as e:
            self.logger.error(f"Failed to create backup of {managed.path}: {e}")
            raise ConfigFileError(f"Failed to back up {managed.path}: {e}") from e

        self.logger.info(f"Created backup: {managed.backup_path}")
        return True

    def restore(self, managed: ManagedFile) -> bool:
        """Copy the backup over the file; False when there is no backup"""
        if not self.has_backup(managed):
            self.logger.info(f"No backup found at {managed.backup_path}")
            return False

        try:
            shutil.copy2(managed.backup_path, managed.path)
        except OSError as e:
            self.logger.error(f"Failed to restore {managed.path}: {e}")
            raise ConfigFileError(f"Failed to restore {managed.path}: {e}") from e

        self.logger.info(f"Restored {managed.path} from {managed.backup_path}")
        return True
