"""
RPC endpoint health tracking and failover.
"""

from .models import EndpointStatus, HealthMonitorConfig
from .monitor import EndpointHealthMonitor, Probe

__all__ = [
    "EndpointHealthMonitor",
    "EndpointStatus",
    "HealthMonitorConfig",
    "Probe",
]
