"""
Scripts for DoseCheck
Utility scripts for seeding demo data and running batch jobs
"""

from .seed_data import seed_all
from .run_jobs import run

__all__ = [
    "seed_all",
    "run",
]
