"""
Live kernel parameter access.

Reads and reloads sysctl state of the running system, loads the
congestion control module and manages its boot-time autoload entry.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple, Union

CONGESTION_CONTROL_PARAM = 'net.ipv4.tcp_congestion_control'
DEFAULT_QDISC_PARAM = 'net.core.default_qdisc'
AVAILABLE_CONGESTION_PARAM = 'net.ipv4.tcp_available_congestion_control'

OPTIONAL_TOOLS = ['modprobe', 'sysctl']


class CommandRunner:
    """Runs external commands and never raises for command failures"""

    def __init__(self, logger: Optional[logging.Logger] = None, timeout: int = 30):
        self.logger = logger or logging.getLogger('tcp_accel')
        self.timeout = timeout

    def run(self, cmd: Union[str, List[str]],
            timeout: Optional[int] = None,
            check: bool = False) -> Tuple[int, str, str]:
        """Execute system command with timeout and error handling"""
        timeout = timeout or self.timeout
        try:
            if isinstance(cmd, str):
                cmd = cmd.split()

            self.logger.debug(f"Executing command: {' '.join(cmd)}")

            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=check
            )

            self.logger.debug(f"Command exit code: {result.returncode}")
            if result.stdout:
                self.logger.debug(f"Command stdout: {result.stdout[:500]}")
            if result.stderr:
                self.logger.debug(f"Command stderr: {result.stderr[:500]}")

            return result.returncode, result.stdout, result.stderr

        except subprocess.TimeoutExpired:
            self.logger.error(f"Command timed out after {timeout}s: {' '.join(cmd)}")
            return -1, "", f"Command timed out after {timeout}s"
        except subprocess.CalledProcessError as e:
            self.logger.error(f"Command failed: {' '.join(cmd)}, error: {e}")
            return e.returncode, e.stdout or "", e.stderr or ""
        except FileNotFoundError as e:
            if cmd and cmd[0] in OPTIONAL_TOOLS:
                self.logger.debug(f"Tool not found: {' '.join(cmd)}")
            else:
                self.logger.error(f"Required command not found: {' '.join(cmd)}")
            return -1, "", str(e)
        except OSError as e:
            self.logger.error(f"Unexpected error running command: {e}")
            return -1, "", str(e)


class LiveParameterGateway:
    """Read/write view over the running kernel's parameters"""

    def __init__(self, runner: CommandRunner,
                 logger: Optional[logging.Logger] = None,
                 module_name: str = 'tcp_bbr',
                 autoload_path: str = '/etc/modules-load.d/bbr.conf',
                 proc_modules: str = '/proc/modules'):
        self.runner = runner
        self.logger = logger or logging.getLogger('tcp_accel')
        self.module_name = module_name
        self.autoload_path = autoload_path
        self.proc_modules = proc_modules

    def read_parameter(self, name: str) -> Optional[str]:
        """Current value of a parameter, None when the kernel does not expose it"""
        code, stdout, stderr = self.runner.run(['sysctl', '-n', name])
        value = stdout.strip()
        if code != 0 or not value:
            self.logger.debug(f"Parameter {name} not available: {stderr.strip()}")
            return None
        return value

    def current_congestion_control(self) -> Optional[str]:
        return self.read_parameter(CONGESTION_CONTROL_PARAM)

    def current_qdisc(self) -> Optional[str]:
        return self.read_parameter(DEFAULT_QDISC_PARAM)

    def available_algorithms(self) -> List[str]:
        value = self.read_parameter(AVAILABLE_CONGESTION_PARAM)
        return value.split() if value else []

    def apply_from_file(self, path: str) -> bool:
        """Reload parameters from a file, skipping lines the kernel rejects

        sysctl keeps going past unknown or malformed lines, so a non-zero
        exit only means some lines were not applied.
        """
        code, _, stderr = self.runner.run(['sysctl', '-e', '-p', path])
        if code != 0:
            self.logger.warning(f"sysctl -p {path} applied partially: {stderr.strip()}")
            return False
        self.logger.debug(f"Reloaded parameters from {path}")
        return True

    def load_congestion_module(self) -> bool:
        """Try to load the module; failure is normal when it is built in"""
        code, _, stderr = self.runner.run(['modprobe', self.module_name])
        if code != 0:
            self.logger.debug(f"modprobe {self.module_name} failed: {stderr.strip()}")
            return False
        return True

    def loaded_modules(self) -> List[str]:
        """Names of currently loaded kernel modules"""
        try:
            with open(self.proc_modules, 'r') as f:
                return [line.split()[0] for line in f if line.strip()]
        except OSError as e:
            self.logger.debug(f"Cannot read {self.proc_modules}: {e}")
            return []

    def is_module_loaded(self) -> bool:
        return self.module_name in self.loaded_modules()

    def register_autoload(self) -> None:
        """Have the module loaded at boot"""
        path = Path(self.autoload_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"{self.module_name}\n")
        self.logger.info(f"Registered {self.module_name} for autoload in {path}")

    def unregister_autoload(self) -> bool:
        """Remove the autoload entry; returns whether one existed"""
        if not os.path.exists(self.autoload_path):
            return False
        os.remove(self.autoload_path)
        self.logger.info(f"Removed module autoload entry {self.autoload_path}")
        return True
