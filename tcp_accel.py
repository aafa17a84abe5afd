#!/usr/bin/env python3
"""
TCP Acceleration Manager for Linux
==================================

A CLI tool that enables BBR congestion control and applies a fixed set of
network and file-descriptor tunables on Linux hosts.

Version: 1.0.0
License: MIT
Python: 3.7+

Features:
- Kernel support detection (BBR, BBRv2 and BBRv3 feature tiers)
- Plain, optimized and advanced congestion control profiles
- Idempotent edits of /etc/sysctl.conf and /etc/security/limits.conf
- One-time pristine backups and restore
- Status and live configuration views, optionally as JSON
- Interactive menu mode
"""

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from accel import __version__ as VERSION
from accel.blocks import ALGORITHM, MODULE_NAME, QDISC
from accel.models import (ConfigView, FeatureTier, ModuleState, OperationResult,
                          Outcome, StatusReport)
from accel.orchestrator import Orchestrator
from accel.settings import SettingsError, load_settings

NOT_CONFIGURED = "not configured"


# Color codes for terminal output
class Colors:
    RED = '\033[91m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    WHITE = '\033[97m'
    BOLD = '\033[1m'
    RESET = '\033[0m'

    BRIGHT_RED = '\033[1;31m'
    BRIGHT_GREEN = '\033[1;32m'
    BRIGHT_YELLOW = '\033[1;33m'
    BRIGHT_CYAN = '\033[1;36m'

    BG_GREEN = '\033[42m'


class OutcomeIcons:
    SUCCESS = "[✓]"
    FAILURE = "[✗]"
    NOTICE = "[i]"


class ColorManager:
    """Manages color output based on terminal capabilities and user preferences"""

    def __init__(self):
        self.colors_enabled = self._should_use_colors()

    def _should_use_colors(self) -> bool:
        """Determine if colors should be used based on terminal and environment"""
        # Check NO_COLOR environment variable (per no-color.org)
        if os.environ.get('NO_COLOR'):
            return False

        if not sys.stdout.isatty():
            return False

        term = os.environ.get('TERM', '')
        if term in ['dumb', 'unknown']:
            return False

        return True

    def set_colors_enabled(self, enabled: bool):
        """Override color settings (for --no-color flag)"""
        self.colors_enabled = enabled

    def color(self, color_code: str, text: str) -> str:
        """Apply specific color if colors are enabled"""
        if not self.colors_enabled:
            return text
        return f"{color_code}{text}{Colors.RESET}"

    def get_outcome_display(self, outcome: Outcome) -> str:
        """Get colored icon and text for an operation outcome"""
        display_map = {
            Outcome.SUCCESS: (OutcomeIcons.SUCCESS, Colors.BRIGHT_GREEN),
            Outcome.NOTHING_TO_RESTORE: (OutcomeIcons.NOTICE, Colors.BRIGHT_CYAN),
            Outcome.UNSUPPORTED_KERNEL: (OutcomeIcons.FAILURE, Colors.BRIGHT_RED),
            Outcome.ACTIVATION_VERIFICATION_FAILED: (OutcomeIcons.FAILURE, Colors.BRIGHT_RED),
            Outcome.FILE_WRITE_FAILURE: (OutcomeIcons.FAILURE, Colors.BRIGHT_RED),
        }
        icon, color_code = display_map[outcome]
        return self.color(color_code, f"{icon} {outcome.value}")


def _json_default(value):
    if isinstance(value, Enum):
        return value.name
    return str(value)


class TcpAccelerator:
    """Console front end over the orchestrated operations"""

    def __init__(self, verbose: bool = False, no_color: bool = False,
                 config_file: Optional[str] = None,
                 orchestrator: Optional[Orchestrator] = None):
        self.verbose = verbose
        self.logger = self._setup_logging()
        self.color_manager = ColorManager()

        if no_color:
            self.color_manager.set_colors_enabled(False)

        if orchestrator is None:
            settings = load_settings(config_file, self.logger)
            orchestrator = Orchestrator.from_settings(settings, self.logger)
        self.orchestrator = orchestrator

    def _setup_logging(self) -> logging.Logger:
        """Configure logging"""
        logger = logging.getLogger('tcp_accel')
        logger.setLevel(logging.DEBUG if self.verbose else logging.INFO)

        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        return logger

    def _is_root(self) -> bool:
        """Check if running as root"""
        return os.geteuid() == 0

    def _check_root_required(self, operation: str) -> bool:
        """Warn when a mutating operation runs without root"""
        if not self._is_root():
            warning_text = self.color_manager.color(
                Colors.YELLOW, f"Warning: {operation} requires root privileges for system-level changes")
            command_text = self.color_manager.color(Colors.CYAN, "sudo tcp-accel")
            print(warning_text)
            print(f"Run with sudo for full functionality: {command_text}")
            return False
        return True

    def _value(self, value: Optional[str], expected: Optional[str] = None) -> str:
        """Render a live value, highlighting it when it matches the target"""
        if value is None:
            return self.color_manager.color(Colors.BRIGHT_RED, NOT_CONFIGURED)
        if expected is None:
            return self.color_manager.color(Colors.BRIGHT_GREEN, value)
        if value == expected:
            return self.color_manager.color(Colors.BRIGHT_GREEN, f"{value} ✓")
        return self.color_manager.color(Colors.BRIGHT_YELLOW, value)

    def _tier_display(self, report: StatusReport) -> str:
        thresholds = {
            FeatureTier.V3: "kernel 6.1+",
            FeatureTier.V2: "kernel 5.13+",
            FeatureTier.V1: "kernel 4.9+",
        }
        if report.tier == FeatureTier.UNSUPPORTED:
            return self.color_manager.color(Colors.BRIGHT_RED, "not supported (requires kernel 4.9+)")
        if not report.fully_supported:
            return self.color_manager.color(
                Colors.BRIGHT_RED, f"{report.tier.label} kernel, {MODULE_NAME} module not available")
        return self.color_manager.color(
            Colors.BRIGHT_GREEN, f"{report.tier.label} ({thresholds[report.tier]})")

    def print_status(self, report: StatusReport):
        """Print kernel support and live congestion control state"""
        separator = "=" * 60
        print(f"\n{self.color_manager.color(Colors.BOLD, separator)}")
        print(f"{self.color_manager.color(Colors.BOLD, 'System Status')}")
        print(f"{self.color_manager.color(Colors.BOLD, separator)}")

        print(f"  Kernel version:     {self.color_manager.color(Colors.BRIGHT_GREEN, report.kernel.full)}")
        print(f"  BBR support:        {self._tier_display(report)}")
        print(f"  Congestion control: {self._value(report.congestion_control, ALGORITHM)}")
        print(f"  Queue discipline:   {self._value(report.qdisc, QDISC)}")

        module_color = Colors.BRIGHT_YELLOW if report.module_state == ModuleState.NOT_LOADED else Colors.BRIGHT_GREEN
        print(f"  BBR module:         {self.color_manager.color(module_color, report.module_state.value)}")

        if report.available_algorithms:
            algorithms = ' '.join(report.available_algorithms)
            print(f"  Available:          {self.color_manager.color(Colors.BRIGHT_GREEN, algorithms)}")
        print()

    def print_config(self, view: ConfigView):
        """Print grouped live parameters"""
        print(f"\n{self.color_manager.color(Colors.BOLD, 'Current TCP Configuration')}")

        for title, params in view.groups.items():
            print(f"\n  {self.color_manager.color(Colors.BOLD, title + ':')}")
            for name, value in params.items():
                print(f"    {name} = {self._value(value)}")

        print(f"\n  {self.color_manager.color(Colors.BOLD, 'Loaded modules:')}")
        if view.loaded_modules:
            for module in view.loaded_modules:
                print(f"    {module}")
        else:
            print(f"    {self.color_manager.color(Colors.BRIGHT_YELLOW, 'no related modules loaded')}")
        print()

    def print_result(self, result: OperationResult):
        """Print the outcome of an operation and any nested steps"""
        for step in result.steps:
            self.print_result(step)

        print(f"{result.operation}: {self.color_manager.get_outcome_display(result.outcome)}")
        if result.tier is not None and result.tier != FeatureTier.UNSUPPORTED:
            print(f"  Support tier: {result.tier.label}")
        for path, outcome in result.per_file.items():
            print(f"  {path}: {self.color_manager.get_outcome_display(outcome)}")
        if result.detail:
            print(f"  {result.detail}")

        if result.outcome == Outcome.UNSUPPORTED_KERNEL:
            tip = self.color_manager.color(Colors.YELLOW, "Upgrade the kernel to 4.9 or newer")
            print(f"  {tip}")
        elif result.succeeded and result.operation in ('optimize', 'restore', 'quick-setup'):
            tip = self.color_manager.color(Colors.YELLOW, "A reboot is recommended for all settings to take effect")
            print(f"  {tip}")

    def status_json(self) -> str:
        return json.dumps(asdict(self.orchestrator.status()), indent=2, default=_json_default)

    def config_json(self) -> str:
        return json.dumps(asdict(self.orchestrator.view_config()), indent=2, default=_json_default)

    def operations(self) -> Dict[str, Tuple[str, Callable[[], OperationResult]]]:
        """Mutating operations keyed by CLI destination name"""
        o = self.orchestrator
        return {
            'enable': ("Enable BBR", o.enable_plain),
            'enable_optimized': ("Enable BBR (optimized)", o.enable_optimized),
            'enable_advanced': ("Enable BBR advanced (auto-detect v2/v3)", o.enable_advanced),
            'disable': ("Disable all acceleration", o.disable),
            'optimize': ("Optimize system configuration", o.optimize_system),
            'restore': ("Restore default configuration", o.restore),
            'quick_setup': ("Quick setup (BBR + system optimization)", o.quick_setup),
        }

    def run_operation(self, name: str) -> OperationResult:
        title, action = self.operations()[name]
        self._check_root_required(title)
        print(self.color_manager.color(Colors.BOLD, f"{title}..."))
        result = action()
        self.print_result(result)
        return result

    def _menu_entries(self) -> List[Tuple[str, str]]:
        entries = [(name, title) for name, (title, _) in self.operations().items()]
        entries.insert(5, ('view_config', "View current configuration"))
        return entries

    def _prompt_menu_choice(self, entries: List[Tuple[str, str]]) -> Optional[str]:
        """Prompt until a valid menu number is entered; None means exit"""
        banner = self.color_manager.color(Colors.BG_GREEN, f" TCP Acceleration Manager v{VERSION} ")
        print(banner)
        for index, (_, title) in enumerate(entries, 1):
            print(f"  {self.color_manager.color(Colors.GREEN, f'{index}.')} {title}")
        print(f"  {self.color_manager.color(Colors.GREEN, '0.')} Exit")

        while True:
            choice = input(f"\nEnter a number [0-{len(entries)}]: ").strip()
            if choice == '0':
                return None
            if choice.isdigit() and 1 <= int(choice) <= len(entries):
                return entries[int(choice) - 1][0]
            print(f"Please enter a number between 0 and {len(entries)}")

    def run_menu(self):
        """Interactive loop: status banner, menu, action"""
        entries = self._menu_entries()
        while True:
            self.print_status(self.orchestrator.status())
            try:
                choice = self._prompt_menu_choice(entries)
                if choice is None:
                    return
                if choice == 'view_config':
                    self.print_config(self.orchestrator.view_config())
                else:
                    self.run_operation(choice)
                input("\nPress Enter to return to the menu...")
            except EOFError:
                print()
                return


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    if sys.version_info < (3, 7):
        print("Error: This tool requires Python 3.7 or higher", file=sys.stderr)
        print(f"Current version: {sys.version}", file=sys.stderr)
        return 1

    parser = argparse.ArgumentParser(
        description="TCP Acceleration Manager: BBR congestion control and system tuning for Linux",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                        # Interactive menu
  %(prog)s --status               # Kernel support and live state
  %(prog)s --status --json        # Same, as JSON
  %(prog)s --enable-optimized     # BBR with latency tuning
  %(prog)s --enable-advanced      # Richest profile the kernel supports
  %(prog)s --optimize             # Network and descriptor limit tuning
  %(prog)s --quick-setup          # --enable-optimized then --optimize
  %(prog)s --restore              # Restore backed up configuration
  %(prog)s --config accel.yaml    # Use custom file locations
        """
    )

    actions = parser.add_mutually_exclusive_group()
    actions.add_argument('--status', action='store_true',
                         help='Show kernel support and live congestion control state')
    actions.add_argument('--view-config', action='store_true',
                         help='Show live TCP parameters')
    actions.add_argument('--enable', action='store_true',
                         help='Enable BBR congestion control')
    actions.add_argument('--enable-optimized', action='store_true',
                         help='Enable BBR with latency tuning')
    actions.add_argument('--enable-advanced', action='store_true',
                         help='Enable the richest BBR profile the kernel supports')
    actions.add_argument('--disable', action='store_true',
                         help='Remove all congestion control settings')
    actions.add_argument('--optimize', action='store_true',
                         help='Apply network and file descriptor tuning')
    actions.add_argument('--restore', action='store_true',
                         help='Restore configuration files from backup')
    actions.add_argument('--quick-setup', action='store_true',
                         help='Enable optimized BBR, then optimize the system')
    actions.add_argument('--menu', action='store_true',
                         help='Interactive menu (default on a terminal)')

    parser.add_argument('--json', action='store_true',
                        help='Print --status or --view-config output as JSON')
    parser.add_argument('--config',
                        help='Path to configuration YAML file')
    parser.add_argument('--version', action='version',
                        version=f'TCP Acceleration Manager v{VERSION}')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose output')
    parser.add_argument('--no-color', action='store_true',
                        help='Disable colored output')

    args = parser.parse_args(argv)

    operation = next((name for name in ('enable', 'enable_optimized', 'enable_advanced',
                                        'disable', 'optimize', 'restore', 'quick_setup')
                      if getattr(args, name)), None)

    if not any([operation, args.status, args.view_config, args.menu]):
        if sys.stdin.isatty():
            args.menu = True
        else:
            args.status = True

    try:
        accelerator = TcpAccelerator(
            verbose=args.verbose,
            no_color=args.no_color,
            config_file=args.config
        )
    except SettingsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        if operation:
            result = accelerator.run_operation(operation)
            return 0 if result.succeeded or result.outcome == Outcome.NOTHING_TO_RESTORE else 1

        if args.view_config:
            if args.json:
                print(accelerator.config_json())
            else:
                accelerator.print_config(accelerator.orchestrator.view_config())
            return 0

        if args.status:
            if args.json:
                print(accelerator.status_json())
            else:
                accelerator.print_status(accelerator.orchestrator.status())
            return 0

        accelerator.run_menu()
        return 0

    except KeyboardInterrupt:
        print(f"\n{Colors.YELLOW}Operation cancelled by user{Colors.RESET}")
        return 1
    except Exception as e:
        print(f"\n{Colors.RED}Error: {e}{Colors.RESET}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
