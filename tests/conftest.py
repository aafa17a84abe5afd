"""
Pytest configuration for tcp_accel unit tests.

Provides temporary managed files and a scripted command runner that
stands in for sysctl and modprobe, so tests never touch the host.
"""

import os

import pytest

from accel.orchestrator import Orchestrator
from accel.settings import ToolSettings
from tests.fakes import FakeRunner

SYSCTL_CONTENT = """\
# /etc/sysctl.conf - Configuration file for setting system variables
#kernel.domainname = example.com
vm.swappiness = 10
net.ipv4.conf.all.rp_filter = 1
"""

LIMITS_CONTENT = """\
# /etc/security/limits.conf
#<domain>      <type>  <item>         <value>
@student        hard    nproc           20
# End of file
"""

PROFILE_CONTENT = """\
# /etc/profile: system-wide .profile file
if [ "$PS1" ]; then
  PS1='\\h:\\w\\$ '
fi
"""



def install_module_file(settings, release='5.15.0-91-generic'):
    """Place a tcp_bbr module file under the fake modules tree"""
    module_dir = os.path.join(settings.modules_root, release, 'kernel', 'net', 'ipv4')
    os.makedirs(module_dir)
    with open(os.path.join(module_dir, 'tcp_bbr.ko.zst'), 'wb'):
        pass


@pytest.fixture
def settings(tmp_path):
    """Tool settings pointing every managed path into tmp_path"""
    etc = tmp_path / 'etc'
    (etc / 'security').mkdir(parents=True)
    (etc / 'sysctl.conf').write_text(SYSCTL_CONTENT)
    (etc / 'security' / 'limits.conf').write_text(LIMITS_CONTENT)
    (etc / 'profile').write_text(PROFILE_CONTENT)
    (tmp_path / 'proc_modules').write_text(
        "nf_tables 331776 0 - Live 0x0000000000000000\n"
    )

    return ToolSettings(
        sysctl_conf=str(etc / 'sysctl.conf'),
        sysctl_backup=str(etc / 'sysctl.conf.backup'),
        limits_conf=str(etc / 'security' / 'limits.conf'),
        limits_backup=str(etc / 'security' / 'limits.conf.backup'),
        modules_load_conf=str(etc / 'modules-load.d' / 'bbr.conf'),
        profile=str(etc / 'profile'),
        modules_root=str(tmp_path / 'lib' / 'modules'),
        proc_modules=str(tmp_path / 'proc_modules'),
    )


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def make_orchestrator(settings, runner):
    """Factory building an Orchestrator for a given kernel release"""

    def _make(release='5.15.0-91-generic'):
        return Orchestrator.from_settings(settings, runner=runner,
                                          release_source=lambda: release)

    return _make
