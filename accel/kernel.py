"""
Kernel version probing and congestion control feature detection.
"""

import logging
import platform
import re
from pathlib import Path
from typing import Callable, Optional

from accel.live_params import LiveParameterGateway
from accel.models import FeatureTier, KernelVersion

# Highest tier first; each threshold is the minimum (major, minor)
TIER_THRESHOLDS = [
    (FeatureTier.V3, (6, 1)),
    (FeatureTier.V2, (5, 13)),
    (FeatureTier.V1, (4, 9)),
]

_LEADING_DIGITS = re.compile(r'\d+')


def parse_kernel_release(release: str) -> KernelVersion:
    """Parse a release string such as '5.15.0-91-generic'"""
    dotted = release.strip().split('-', 1)[0]
    parts = dotted.split('.')

    def component(index: int) -> int:
        if index >= len(parts):
            return 0
        match = _LEADING_DIGITS.match(parts[index])
        return int(match.group()) if match else 0

    return KernelVersion(major=component(0), minor=component(1), full=release.strip())


class KernelVersionProbe:
    """Reads the running kernel's release"""

    def __init__(self, release_source: Optional[Callable[[], str]] = None):
        self.release_source = release_source or platform.release

    def probe(self) -> KernelVersion:
        return parse_kernel_release(self.release_source())


class FeatureDetector:
    """Classifies congestion control support of the running kernel"""

    def __init__(self, probe: KernelVersionProbe,
                 gateway: LiveParameterGateway,
                 logger: Optional[logging.Logger] = None,
                 algorithm: str = 'bbr',
                 modules_root: str = '/lib/modules'):
        self.probe = probe
        self.gateway = gateway
        self.logger = logger or logging.getLogger('tcp_accel')
        self.algorithm = algorithm
        self.modules_root = modules_root

    @staticmethod
    def detect_tier(version: KernelVersion) -> FeatureTier:
        for tier, threshold in TIER_THRESHOLDS:
            if version.as_tuple() >= threshold:
                return tier
        return FeatureTier.UNSUPPORTED

    def _module_file_present(self, version: KernelVersion) -> bool:
        module_dir = Path(self.modules_root) / version.full
        if not module_dir.is_dir():
            return False
        pattern = f"{self.gateway.module_name}.ko*"
        return any(True for _ in module_dir.rglob(pattern))

    def is_congestion_module_available(self, version: Optional[KernelVersion] = None,
                                       load: bool = True) -> bool:
        """Whether the algorithm is built in, loadable, or shipped as a module file

        Checks stop at the first positive answer so the module is only
        loaded when the kernel does not already list the algorithm. With
        load=False the kernel is only inspected, never changed.
        """
        if self.algorithm in self.gateway.available_algorithms():
            self.logger.debug(f"{self.algorithm} listed as available congestion control")
            return True

        if load and self.gateway.load_congestion_module():
            self.logger.debug(f"Loaded {self.gateway.module_name}")
            return True

        version = version or self.probe.probe()
        if self._module_file_present(version):
            self.logger.debug(f"Found {self.gateway.module_name} module file for {version.full}")
            return True

        self.logger.debug(f"No evidence of {self.algorithm} support")
        return False

    def is_fully_supported(self, version: Optional[KernelVersion] = None,
                           load: bool = True) -> bool:
        version = version or self.probe.probe()
        if self.detect_tier(version) < FeatureTier.V1:
            return False
        return self.is_congestion_module_available(version, load)
