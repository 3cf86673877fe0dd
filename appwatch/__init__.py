"""appwatch — local web application discovery and health monitor.

Quickstart::

    from appwatch.config import Settings
    from appwatch.probe import PortProbe

    probe = PortProbe(Settings.from_env())
    servers = await probe.quick_scan()
"""

__version__ = "1.0.0"
