"""
Operation sequencing.

Each public method is one operator action. Actions run to completion,
keep no state between calls and report through an OperationResult
instead of raising for expected I/O problems.
"""

import logging
import os
from typing import Callable, Dict, List, Optional

from accel.backup import BackupManager
from accel.blocks import (ALGORITHM, CONGESTION_PATTERNS, LIMITS_BLOCK,
                          MODULE_NAME, OPTIMIZATION_BLOCK, OPTIMIZED_BLOCK,
                          PLAIN_BLOCK, PROFILE_ULIMIT_LINE, QDISC,
                          advanced_block)
from accel.config_editor import ConfigBlockEditor, ConfigFileError
from accel.kernel import FeatureDetector, KernelVersionProbe
from accel.live_params import (AVAILABLE_CONGESTION_PARAM,
                               CONGESTION_CONTROL_PARAM, DEFAULT_QDISC_PARAM,
                               CommandRunner, LiveParameterGateway)
from accel.models import (ConfigBlock, ConfigView, FeatureTier, ManagedFile,
                          ModuleState, OperationResult, Outcome, StatusReport)
from accel.settings import ToolSettings

VIEW_GROUPS = {
    'Congestion control': [
        CONGESTION_CONTROL_PARAM,
        DEFAULT_QDISC_PARAM,
        AVAILABLE_CONGESTION_PARAM,
    ],
    'Latency tuning': [
        'net.ipv4.tcp_notsent_lowat',
        'net.ipv4.tcp_slow_start_after_idle',
        'net.ipv4.tcp_ecn',
    ],
    'Network buffers': [
        'net.core.rmem_max',
        'net.core.wmem_max',
        'net.ipv4.tcp_rmem',
        'net.ipv4.tcp_wmem',
    ],
}

VIEW_MODULE_KEYWORDS = (ALGORITHM, QDISC)


class Orchestrator:
    """Runs the operator actions against the managed files and live kernel"""

    def __init__(self, settings: ToolSettings,
                 probe: KernelVersionProbe,
                 detector: FeatureDetector,
                 gateway: LiveParameterGateway,
                 editor: ConfigBlockEditor,
                 backups: BackupManager,
                 logger: Optional[logging.Logger] = None):
        self.settings = settings
        self.probe = probe
        self.detector = detector
        self.gateway = gateway
        self.editor = editor
        self.backups = backups
        self.logger = logger or logging.getLogger('tcp_accel')

        self.network_file = ManagedFile(settings.sysctl_conf, settings.sysctl_backup)
        self.limits_file = ManagedFile(settings.limits_conf, settings.limits_backup)

    @classmethod
    def from_settings(cls, settings: ToolSettings,
                      logger: Optional[logging.Logger] = None,
                      runner: Optional[CommandRunner] = None,
                      release_source: Optional[Callable[[], str]] = None) -> 'Orchestrator':
        """Wire up the components for the given settings"""
        logger = logger or logging.getLogger('tcp_accel')
        runner = runner or CommandRunner(logger, timeout=settings.command_timeout)
        gateway = LiveParameterGateway(
            runner,
            logger,
            module_name=MODULE_NAME,
            autoload_path=settings.modules_load_conf,
            proc_modules=settings.proc_modules,
        )
        probe = KernelVersionProbe(release_source)
        detector = FeatureDetector(probe, gateway, logger,
                                   algorithm=ALGORITHM,
                                   modules_root=settings.modules_root)
        return cls(settings, probe, detector, gateway,
                   ConfigBlockEditor(logger), BackupManager(logger), logger)

    # Congestion control

    def enable_plain(self) -> OperationResult:
        return self._enable('enable', lambda tier: PLAIN_BLOCK)

    def enable_optimized(self) -> OperationResult:
        return self._enable('enable-optimized', lambda tier: OPTIMIZED_BLOCK)

    def enable_advanced(self) -> OperationResult:
        return self._enable('enable-advanced', advanced_block)

    def _enable(self, operation: str,
                block_for_tier: Callable[[FeatureTier], ConfigBlock]) -> OperationResult:
        version = self.probe.probe()
        tier = self.detector.detect_tier(version)
        self.logger.info(f"Kernel {version.full} detected, support tier {tier.name}")

        if tier < FeatureTier.V1:
            return OperationResult(
                operation, Outcome.UNSUPPORTED_KERNEL, tier=tier,
                detail=f"Kernel {version.full} is older than 4.9, {ALGORITHM} is not supported"
            )
        if not self.detector.is_congestion_module_available(version):
            return OperationResult(
                operation, Outcome.UNSUPPORTED_KERNEL, tier=tier,
                detail=f"{ALGORITHM} is neither built in nor available as module {MODULE_NAME}"
            )

        block = block_for_tier(tier)
        path = self.network_file.path
        try:
            self.backups.ensure_backup(self.network_file)
            self.editor.remove_managed_lines(path, block.key_patterns)
            self.gateway.load_congestion_module()
            self.editor.append_block(path, block)
        except ConfigFileError as e:
            return OperationResult(operation, Outcome.FILE_WRITE_FAILURE, detail=str(e), tier=tier)

        self.gateway.apply_from_file(path)

        current = self.gateway.current_congestion_control()
        if current != ALGORITHM:
            self.logger.warning(f"Congestion control is {current} after reload, expected {ALGORITHM}")
            return OperationResult(
                operation, Outcome.ACTIVATION_VERIFICATION_FAILED, tier=tier,
                detail=f"Expected {ALGORITHM}, kernel reports {current or 'not configured'}"
            )

        try:
            self.gateway.register_autoload()
        except OSError as e:
            self.logger.error(f"Failed to register module autoload: {e}")
            return OperationResult(operation, Outcome.FILE_WRITE_FAILURE, detail=str(e), tier=tier)

        return OperationResult(operation, Outcome.SUCCESS, tier=tier,
                               detail=f"{block.marker.lstrip('# ')} active")

    def disable(self) -> OperationResult:
        path = self.network_file.path
        removed = 0
        try:
            if os.path.exists(path):
                self.backups.ensure_backup(self.network_file)
                removed = self.editor.remove_managed_lines(path, CONGESTION_PATTERNS)
                self.gateway.apply_from_file(path)
            self.gateway.unregister_autoload()
        except (ConfigFileError, OSError) as e:
            return OperationResult('disable', Outcome.FILE_WRITE_FAILURE, detail=str(e))

        return OperationResult('disable', Outcome.SUCCESS,
                               detail=f"Removed {removed} congestion control line(s)")

    # System tuning

    def optimize_system(self) -> OperationResult:
        network = self.network_file.path
        limits = self.limits_file.path
        try:
            self.backups.ensure_backup(self.network_file)
            self.backups.ensure_backup(self.limits_file)

            self.editor.remove_managed_lines(network, OPTIMIZATION_BLOCK.key_patterns)
            self.editor.append_block(network, OPTIMIZATION_BLOCK)
            self.gateway.apply_from_file(network)

            # limits.conf has no live reload, new sessions pick it up
            self.editor.remove_managed_lines(limits, LIMITS_BLOCK.key_patterns)
            self.editor.append_block(limits, LIMITS_BLOCK)

            self.editor.ensure_line(self.settings.profile, PROFILE_ULIMIT_LINE)
        except ConfigFileError as e:
            return OperationResult('optimize', Outcome.FILE_WRITE_FAILURE, detail=str(e))

        return OperationResult('optimize', Outcome.SUCCESS,
                               detail="Descriptor limits apply to new login sessions")

    def restore(self) -> OperationResult:
        per_file: Dict[str, Outcome] = {}
        errors: List[str] = []

        for managed in (self.network_file, self.limits_file):
            try:
                restored = self.backups.restore(managed)
            except ConfigFileError as e:
                per_file[managed.path] = Outcome.FILE_WRITE_FAILURE
                errors.append(str(e))
                continue
            per_file[managed.path] = Outcome.SUCCESS if restored else Outcome.NOTHING_TO_RESTORE

        try:
            self.gateway.unregister_autoload()
            self._remove_profile_ulimit()
        except (ConfigFileError, OSError) as e:
            errors.append(str(e))

        if os.path.exists(self.network_file.path):
            self.gateway.apply_from_file(self.network_file.path)

        if errors:
            return OperationResult('restore', Outcome.FILE_WRITE_FAILURE,
                                   detail='; '.join(errors), per_file=per_file)
        if Outcome.SUCCESS in per_file.values():
            return OperationResult('restore', Outcome.SUCCESS, per_file=per_file)
        return OperationResult('restore', Outcome.NOTHING_TO_RESTORE, per_file=per_file,
                               detail="No backups found")

    def _remove_profile_ulimit(self) -> None:
        profile = self.settings.profile
        if not os.path.exists(profile):
            return
        self.editor.remove_line(profile, PROFILE_ULIMIT_LINE)

    def quick_setup(self) -> OperationResult:
        """Optimized congestion control followed by system tuning"""
        first = self.enable_optimized()
        if not first.succeeded:
            return OperationResult('quick-setup', first.outcome, detail=first.detail,
                                   tier=first.tier, steps=[first])

        second = self.optimize_system()
        return OperationResult('quick-setup', second.outcome, detail=second.detail,
                               tier=first.tier, steps=[first, second])

    # Read-only views

    def status(self) -> StatusReport:
        version = self.probe.probe()
        tier = self.detector.detect_tier(version)
        fully_supported = self.detector.is_fully_supported(version, load=False)

        congestion_control = self.gateway.current_congestion_control()
        if self.gateway.is_module_loaded():
            module_state = ModuleState.LOADED
        elif congestion_control == ALGORITHM:
            module_state = ModuleState.BUILT_IN
        else:
            module_state = ModuleState.NOT_LOADED

        return StatusReport(
            kernel=version,
            tier=tier,
            fully_supported=fully_supported,
            congestion_control=congestion_control,
            qdisc=self.gateway.current_qdisc(),
            available_algorithms=self.gateway.available_algorithms(),
            module_state=module_state,
        )

    def view_config(self) -> ConfigView:
        groups = {
            title: {name: self.gateway.read_parameter(name) for name in names}
            for title, names in VIEW_GROUPS.items()
        }
        modules = [m for m in self.gateway.loaded_modules()
                   if any(keyword in m for keyword in VIEW_MODULE_KEYWORDS)]
        return ConfigView(groups=groups, loaded_modules=modules)
