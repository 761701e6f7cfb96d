"""
Scheduler package for the Electricity Price Window service.
Contains the optional daily ingestion trigger.
"""

from .simple_scheduler import simple_scheduler, SimpleScheduler

__all__ = [
    "simple_scheduler",
    "SimpleScheduler",
]
