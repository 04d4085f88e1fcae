"""API routers for AgentFlow Core."""

from . import audit_logs, epics, tasks, validation_runs

__all__ = ["audit_logs", "epics", "tasks", "validation_runs"]
