"""
Monitoring package for the Newswire pipeline: duplicate detection,
resource pressure sampling and storage lifecycle cleanup.
"""
from monitoring.duplicate_detector import DuplicateDetector
from monitoring.resource_monitor import PressureLevel, ResourceMonitor
from monitoring.lifecycle import CLEANUP_POLICIES, CleanupManager, CleanupPolicy, get_policy

__all__ = [
    'DuplicateDetector',
    'ResourceMonitor',
    'PressureLevel',
    'CleanupManager',
    'CleanupPolicy',
    'CLEANUP_POLICIES',
    'get_policy',
]
