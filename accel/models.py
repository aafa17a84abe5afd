"""
Value objects and outcome types shared by the acceleration components.
"""

from dataclasses import dataclass, field
from enum import Enum
from functools import total_ordering
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class KernelVersion:
    """Running kernel version, only major and minor are compared"""
    major: int
    minor: int
    full: str

    def as_tuple(self) -> Tuple[int, int]:
        return (self.major, self.minor)


@total_ordering
class FeatureTier(Enum):
    """Congestion control support level derived from the kernel version"""
    UNSUPPORTED = 0
    V1 = 1
    V2 = 2
    V3 = 3

    def __lt__(self, other):
        if not isinstance(other, FeatureTier):
            return NotImplemented
        return self.value < other.value

    @property
    def label(self) -> str:
        return TIER_LABELS[self]


TIER_LABELS = {
    FeatureTier.UNSUPPORTED: "unsupported",
    FeatureTier.V1: "BBR",
    FeatureTier.V2: "BBRv2",
    FeatureTier.V3: "BBRv3",
}


@dataclass(frozen=True)
class ConfigBlock:
    """Tool-owned block of a line oriented config file"""
    marker: str
    key_patterns: Tuple[str, ...]
    body: Tuple[str, ...]

    def lines(self) -> List[str]:
        """Lines written by an append: separator, marker, body"""
        return [''] + [self.marker] + list(self.body)


@dataclass(frozen=True)
class ManagedFile:
    """Config file mutated by the tool together with its one-time backup"""
    path: str
    backup_path: str


class Outcome(Enum):
    """Result vocabulary of the orchestrated operations"""
    SUCCESS = "SUCCESS"
    UNSUPPORTED_KERNEL = "UNSUPPORTED_KERNEL"
    ACTIVATION_VERIFICATION_FAILED = "ACTIVATION_VERIFICATION_FAILED"
    NOTHING_TO_RESTORE = "NOTHING_TO_RESTORE"
    FILE_WRITE_FAILURE = "FILE_WRITE_FAILURE"


class ModuleState(Enum):
    """How the congestion control module is present in the running kernel"""
    LOADED = "loaded"
    BUILT_IN = "built-in"
    NOT_LOADED = "not loaded"


@dataclass
class OperationResult:
    """Outcome of one operation plus optional diagnostic detail"""
    operation: str
    outcome: Outcome
    detail: Optional[str] = None
    tier: Optional[FeatureTier] = None
    per_file: Dict[str, Outcome] = field(default_factory=dict)
    steps: List['OperationResult'] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.outcome == Outcome.SUCCESS


@dataclass
class StatusReport:
    """Read-only snapshot of kernel support and live congestion control state"""
    kernel: KernelVersion
    tier: FeatureTier
    fully_supported: bool
    congestion_control: Optional[str]
    qdisc: Optional[str]
    available_algorithms: List[str]
    module_state: ModuleState


@dataclass
class ConfigView:
    """Live parameter values grouped for display"""
    groups: Dict[str, Dict[str, Optional[str]]]
    loaded_modules: List[str]
