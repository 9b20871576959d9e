"""
Job execution and lifecycle management.
"""

from feedcrawl.jobs.executor import JobExecutor
from feedcrawl.jobs.manager import JobLifecycleManager

__all__ = [
    "JobExecutor",
    "JobLifecycleManager",
]
