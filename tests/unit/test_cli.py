import json
import logging

import pytest

import tcp_accel
from accel.models import Outcome
from tcp_accel import ColorManager, TcpAccelerator, main
from tests.conftest import SYSCTL_CONTENT, install_module_file


@pytest.fixture(autouse=True)
def reset_logger():
    """Drop handlers bound to streams captured by an earlier test"""
    yield
    logger = logging.getLogger('tcp_accel')
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


@pytest.fixture
def accelerator(make_orchestrator):
    return TcpAccelerator(no_color=True, orchestrator=make_orchestrator())


@pytest.fixture
def patched_main(monkeypatch, make_orchestrator):
    """Route main() to an orchestrator over temporary files"""

    def _patch(release='5.15.0-91-generic'):
        orchestrator = make_orchestrator(release)
        monkeypatch.setattr(tcp_accel.Orchestrator, 'from_settings',
                            lambda settings, logger=None: orchestrator)
        return orchestrator

    return _patch


class TestColorManager:
    """Test color handling"""

    def test_no_color_env(self, monkeypatch):
        """Test that NO_COLOR disables colors"""
        monkeypatch.setenv('NO_COLOR', '1')

        assert ColorManager().color('\033[91m', 'text') == 'text'

    def test_outcome_display_plain(self):
        """Test outcome rendering without colors"""
        manager = ColorManager()
        manager.set_colors_enabled(False)

        assert manager.get_outcome_display(Outcome.SUCCESS) == "[✓] SUCCESS"
        assert manager.get_outcome_display(Outcome.NOTHING_TO_RESTORE) == "[i] NOTHING_TO_RESTORE"


class TestConsoleOutput:
    """Test the human readable views"""

    def test_status(self, accelerator, settings, capsys):
        """Test that status shows kernel, tier and live values"""
        install_module_file(settings)

        accelerator.print_status(accelerator.orchestrator.status())

        out = capsys.readouterr().out
        assert '5.15.0-91-generic' in out
        assert 'BBRv2 (kernel 5.13+)' in out
        assert 'cubic' in out
        assert 'not loaded' in out

    def test_status_module_missing(self, accelerator, capsys):
        """Test that a new kernel without the module blames the module"""
        accelerator.print_status(accelerator.orchestrator.status())

        out = capsys.readouterr().out
        assert 'BBRv2 kernel, tcp_bbr module not available' in out
        assert 'requires kernel 4.9+' not in out

    def test_status_unsupported(self, make_orchestrator, capsys):
        """Test the unsupported kernel line"""
        accelerator = TcpAccelerator(no_color=True, orchestrator=make_orchestrator('4.4.0'))

        accelerator.print_status(accelerator.orchestrator.status())

        assert 'not supported (requires kernel 4.9+)' in capsys.readouterr().out

    def test_config_shows_missing_values(self, accelerator, capsys):
        """Test that absent parameters render as not configured"""
        accelerator.print_config(accelerator.orchestrator.view_config())

        out = capsys.readouterr().out
        assert 'net.ipv4.tcp_ecn = not configured' in out
        assert 'no related modules loaded' in out

    def test_run_operation_prints_outcome(self, accelerator, capsys):
        """Test that an operation reports its outcome and tier"""
        result = accelerator.run_operation('enable')

        out = capsys.readouterr().out
        assert result.outcome == Outcome.SUCCESS
        assert 'enable: [✓] SUCCESS' in out
        assert 'Support tier: BBRv2' in out

    def test_quick_setup_prints_steps(self, accelerator, capsys):
        """Test that composed operations list every step"""
        accelerator.run_operation('quick_setup')

        out = capsys.readouterr().out
        assert 'enable-optimized: [✓] SUCCESS' in out
        assert 'optimize: [✓] SUCCESS' in out
        assert 'quick-setup: [✓] SUCCESS' in out


class TestMenu:
    """Test the interactive loop"""

    def test_view_config_then_exit(self, accelerator, monkeypatch, capsys):
        """Test a menu round trip through the configuration view"""
        answers = iter(['6', '', '0'])
        monkeypatch.setattr('builtins.input', lambda prompt='': next(answers))

        accelerator.run_menu()

        out = capsys.readouterr().out
        assert 'Current TCP Configuration' in out
        assert out.count('System Status') == 2

    def test_invalid_choice_is_repeated(self, accelerator, monkeypatch, capsys):
        """Test that out of range input asks again"""
        answers = iter(['42', 'x', '0'])
        monkeypatch.setattr('builtins.input', lambda prompt='': next(answers))

        accelerator.run_menu()

        assert capsys.readouterr().out.count('Please enter a number between 0 and 8') == 2

    def test_end_of_input_exits(self, accelerator, monkeypatch):
        """Test that closed stdin leaves the menu"""
        def closed(prompt=''):
            raise EOFError

        monkeypatch.setattr('builtins.input', closed)

        accelerator.run_menu()


class TestMain:
    """Test argument handling and exit codes"""

    def test_status_json(self, patched_main, capsys):
        """Test machine readable status"""
        patched_main()

        assert main(['--status', '--json', '--no-color']) == 0

        data = json.loads(capsys.readouterr().out)
        assert data['kernel'] == {'major': 5, 'minor': 15, 'full': '5.15.0-91-generic'}
        assert data['tier'] == 'V2'
        assert data['module_state'] == 'NOT_LOADED'
        assert data['available_algorithms'] == ['reno', 'cubic']

    def test_view_config_json(self, patched_main, capsys):
        """Test machine readable configuration"""
        patched_main()

        assert main(['--view-config', '--json']) == 0

        data = json.loads(capsys.readouterr().out)
        assert data['groups']['Latency tuning']['net.ipv4.tcp_ecn'] is None

    def test_enable_exit_code(self, patched_main, settings):
        """Test that a successful operation exits 0"""
        patched_main()

        assert main(['--enable', '--no-color']) == 0
        with open(settings.sysctl_conf) as f:
            assert 'net.ipv4.tcp_congestion_control=bbr' in f.read()

    def test_unsupported_exit_code(self, patched_main, settings):
        """Test that a failed operation exits 1"""
        patched_main('4.8.0')

        assert main(['--enable-advanced', '--no-color']) == 1
        with open(settings.sysctl_conf) as f:
            assert f.read() == SYSCTL_CONTENT

    def test_nothing_to_restore_exit_code(self, patched_main):
        """Test that restore without backups is not an error"""
        patched_main()

        assert main(['--restore', '--no-color']) == 0

    def test_bad_settings_file(self, tmp_path, capsys):
        """Test that an unusable config file exits 1 before any action"""
        config = tmp_path / 'accel.yaml'
        config.write_text("- just\n- a list\n")

        assert main(['--status', '--config', str(config)]) == 1
        assert 'Error' in capsys.readouterr().err

    def test_actions_are_exclusive(self):
        """Test that two actions at once are rejected"""
        with pytest.raises(SystemExit) as exc:
            main(['--enable', '--disable'])
        assert exc.value.code == 2

    def test_version(self, capsys):
        """Test version output"""
        with pytest.raises(SystemExit) as exc:
            main(['--version'])
        assert exc.value.code == 0
        assert '1.0.0' in capsys.readouterr().out
