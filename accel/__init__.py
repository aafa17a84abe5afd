"""
TCP acceleration components.

This package holds the pieces behind the tcp_accel command line tool:
kernel version probing, feature detection, idempotent editing of the
managed configuration files, live sysctl access and backups.
"""

__version__ = "1.0.0"
