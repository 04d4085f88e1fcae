"""AgentFlow Core - epic and task lifecycle tracking.

Tasks move through a validated state machine with an append-only audit trail,
while GitHub issues, pull requests and check runs are reconciled on read to
show perceived progress.
"""

__version__ = "1.0.0"
