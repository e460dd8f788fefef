"""
Scheduling service: cron parsing and batch runs over configured subjects.
"""

from integrator.service.cron_parser import CronSpec, next_fire_time_cron, parse_cron
from integrator.service.scheduler import Scheduler, serve

__all__ = [
    "CronSpec",
    "Scheduler",
    "next_fire_time_cron",
    "parse_cron",
    "serve",
]
