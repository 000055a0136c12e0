"""
Jobs Package

Background maintenance started from the app lifespan.
"""
from app.jobs.token_cleanup import run_token_cleanup, token_cleanup_scheduler

__all__ = [
    "run_token_cleanup",
    "token_cleanup_scheduler",
]
