"""Shared utilities for the sweeper jobs."""
from jobs.utils.database import (
    create_task_engine,
    create_task_session_maker,
    task_engine,
    task_session_maker,
)

__all__ = [
    "create_task_engine",
    "create_task_session_maker",
    "task_engine",
    "task_session_maker",
]
