"""
Fixed managed blocks.

Each block pairs the lines the tool appends with the patterns that
identify anything an earlier run of the same operation may have left.
"""

from accel.models import ConfigBlock, FeatureTier

ALGORITHM = 'bbr'
QDISC = 'fq'
MODULE_NAME = 'tcp_bbr'

PROFILE_ULIMIT_LINE = 'ulimit -SHn 1000000'

_BASE_SETTINGS = (
    f"net.core.default_qdisc={QDISC}",
    f"net.ipv4.tcp_congestion_control={ALGORITHM}",
)

_LATENCY_SETTINGS = (
    "net.ipv4.tcp_notsent_lowat=16384",
    "net.ipv4.tcp_slow_start_after_idle=0",
)

_ECN_SETTINGS = (
    "net.ipv4.tcp_ecn=1",
)

# Covers plain, optimized and every advanced variant
CONGESTION_PATTERNS = (
    '# BBR',
    'net.core.default_qdisc',
    'net.ipv4.tcp_congestion_control',
    'net.ipv4.tcp_notsent_lowat',
    'net.ipv4.tcp_slow_start_after_idle',
    'net.ipv4.tcp_ecn',
)

PLAIN_BLOCK = ConfigBlock(
    marker='# BBR TCP Congestion Control',
    key_patterns=CONGESTION_PATTERNS,
    body=_BASE_SETTINGS,
)

OPTIMIZED_BLOCK = ConfigBlock(
    marker='# BBR TCP Congestion Control (Optimized)',
    key_patterns=CONGESTION_PATTERNS,
    body=_BASE_SETTINGS + _LATENCY_SETTINGS,
)

_ADVANCED_BODIES = {
    FeatureTier.V1: _BASE_SETTINGS,
    FeatureTier.V2: _BASE_SETTINGS + _LATENCY_SETTINGS,
    FeatureTier.V3: _BASE_SETTINGS + _LATENCY_SETTINGS + _ECN_SETTINGS,
}


def advanced_block(tier: FeatureTier) -> ConfigBlock:
    """Richest congestion control block the tier supports"""
    if tier not in _ADVANCED_BODIES:
        raise ValueError(f"No advanced block for tier {tier.name}")
    return ConfigBlock(
        marker=f"# {tier.label} TCP Congestion Control (Advanced)",
        key_patterns=CONGESTION_PATTERNS,
        body=_ADVANCED_BODIES[tier],
    )


OPTIMIZATION_PATTERNS = (
    "fs.file-max",
    "fs.inotify.max_user_instances",
    "net.ipv4.tcp_syncookies",
    "net.ipv4.tcp_fin_timeout",
    "net.ipv4.tcp_tw_reuse",
    "net.ipv4.tcp_tw_recycle",
    "net.ipv4.tcp_max_syn_backlog",
    "net.ipv4.ip_local_port_range",
    "net.ipv4.tcp_max_tw_buckets",
    "net.ipv4.route.gc_timeout",
    "net.ipv4.tcp_synack_retries",
    "net.ipv4.tcp_syn_retries",
    "net.core.somaxconn",
    "net.core.netdev_max_backlog",
    "net.ipv4.tcp_timestamps",
    "net.ipv4.tcp_max_orphans",
    "net.ipv4.ip_forward",
    "net.ipv6.conf.all.forwarding",
    "net.core.rmem_max",
    "net.core.wmem_max",
    "net.core.rmem_default",
    "net.core.wmem_default",
    "net.ipv4.tcp_rmem",
    "net.ipv4.tcp_wmem",
    "net.ipv4.tcp_mtu_probing",
    "net.ipv4.tcp_fastopen",
    "net.ipv4.tcp_keepalive_time",
    "net.ipv4.tcp_keepalive_intvl",
    "net.ipv4.tcp_keepalive_probes",
    "# System Optimization",
    "# File system",
    "# Network core",
    "# TCP settings",
    "# IP forward",
)

OPTIMIZATION_BLOCK = ConfigBlock(
    marker='# System Optimization for Modern Linux',
    key_patterns=OPTIMIZATION_PATTERNS,
    body=(
        "# File system",
        "fs.file-max = 1000000",
        "fs.inotify.max_user_instances = 8192",
        "",
        "# Network core settings",
        "net.core.somaxconn = 65535",
        "net.core.netdev_max_backlog = 65535",
        "net.core.rmem_max = 134217728",
        "net.core.wmem_max = 134217728",
        "net.core.rmem_default = 262144",
        "net.core.wmem_default = 262144",
        "",
        "# TCP settings",
        "net.ipv4.tcp_syncookies = 1",
        "net.ipv4.tcp_fin_timeout = 15",
        "net.ipv4.tcp_tw_reuse = 1",
        "net.ipv4.tcp_max_syn_backlog = 8192",
        "net.ipv4.tcp_max_tw_buckets = 6000",
        "net.ipv4.ip_local_port_range = 1024 65535",
        "net.ipv4.tcp_rmem = 4096 87380 67108864",
        "net.ipv4.tcp_wmem = 4096 65536 67108864",
        "net.ipv4.tcp_mtu_probing = 1",
        "net.ipv4.tcp_fastopen = 3",
        "net.ipv4.tcp_keepalive_time = 600",
        "net.ipv4.tcp_keepalive_intvl = 30",
        "net.ipv4.tcp_keepalive_probes = 3",
        "net.ipv4.tcp_timestamps = 1",
        "net.ipv4.tcp_max_orphans = 262144",
        "",
        "# IP forward (useful for VPN/proxy)",
        "net.ipv4.ip_forward = 1",
        "net.ipv6.conf.all.forwarding = 1",
    ),
)

LIMITS_PATTERNS = (
    "# TCP Script Optimization",
    "^* soft nofile 1000000",
    "^* hard nofile 1000000",
    "^* soft nproc unlimited",
    "^* hard nproc unlimited",
    "^root soft nofile 1000000",
    "^root hard nofile 1000000",
    "^root soft nproc unlimited",
    "^root hard nproc unlimited",
)

LIMITS_BLOCK = ConfigBlock(
    marker='# TCP Script Optimization',
    key_patterns=LIMITS_PATTERNS,
    body=(
        "*               soft    nofile          1000000",
        "*               hard    nofile          1000000",
        "*               soft    nproc           unlimited",
        "*               hard    nproc           unlimited",
        "root            soft    nofile          1000000",
        "root            hard    nofile          1000000",
        "root            soft    nproc           unlimited",
        "root            hard    nproc           unlimited",
    ),
)
