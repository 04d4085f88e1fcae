"""MCP tool definitions for AgentFlow."""

from mcp.types import Tool

TASK_STATES = [
    "PLANNED", "RUNNING", "PR_READY", "VALIDATING", "APPROVAL_PENDING",
    "FIXING", "MERGED", "DONE", "BLOCKED",
]

TASK_ACTIONS = [
    "start", "submit_pr", "start_validation", "complete_validation",
    "approve_merge", "merge", "block", "retry",
]


def get_tools() -> list[Tool]:
    """Get the list of all MCP tools for epic and task management."""
    return [
        # ============================================================================
        # Epic Tools
        # ============================================================================
        Tool(
            name="list_epics",
            description="List epics, most recently updated first. "
                       "Common pattern: list_epics() → get_epic(epic_id=...) → work with its tasks.",
            inputSchema={
                "type": "object",
                "properties": {
                    "page": {
                        "type": "integer",
                        "description": "Page number (default: 1)"
                    },
                    "page_size": {
                        "type": "integer",
                        "description": "Items per page (default: 50, max: 100)"
                    },
                    "status": {
                        "type": "string",
                        "enum": ["DRAFT", "RUNNING", "BLOCKED", "COMPLETED"],
                        "description": "Filter by epic status"
                    }
                }
            }
        ),
        Tool(
            name="get_epic",
            description="Get an epic with its ordered tasks. Errors: 404 (not found).",
            inputSchema={
                "type": "object",
                "properties": {
                    "epic_id": {
                        "type": "string",
                        "description": "UUID of the epic"
                    }
                },
                "required": ["epic_id"]
            }
        ),
        Tool(
            name="create_epic",
            description="Create a new epic targeting a GitHub repository. "
                       "Pass tasks explicitly, or set generate_plan=true to start from a default plan.",
            inputSchema={
                "type": "object",
                "properties": {
                    "title": {"type": "string", "description": "Epic title"},
                    "intent": {"type": "string", "description": "What the epic should achieve"},
                    "repository": {"type": "string", "description": "Target repository as owner/name"},
                    "default_branch": {"type": "string", "description": "Base branch (default: main)"},
                    "constraints": {"type": "string", "description": "Constraints for the work"},
                    "merge_policy": {
                        "type": "string",
                        "enum": ["manual", "auto"],
                        "description": "manual requires approve_merge before merge (default: manual)"
                    },
                    "tasks": {
                        "type": "array",
                        "description": "Initial tasks in execution order",
                        "items": {
                            "type": "object",
                            "properties": {
                                "title": {"type": "string"},
                                "description": {"type": "string"},
                                "acceptance_criteria": {"type": "array", "items": {"type": "string"}}
                            },
                            "required": ["title"]
                        }
                    },
                    "generate_plan": {
                        "type": "boolean",
                        "description": "Generate a default plan when no tasks are given"
                    }
                },
                "required": ["title", "repository"]
            }
        ),
        Tool(
            name="get_epic_signals",
            description="Compare each task's stored state with the state derived from GitHub "
                       "issues, pull requests and check runs. Read-only.",
            inputSchema={
                "type": "object",
                "properties": {
                    "epic_id": {"type": "string", "description": "UUID of the epic"}
                },
                "required": ["epic_id"]
            }
        ),
        # ============================================================================
        # Task Tools
        # ============================================================================
        Tool(
            name="list_tasks",
            description="List an epic's tasks in position order.",
            inputSchema={
                "type": "object",
                "properties": {
                    "epic_id": {"type": "string", "description": "UUID of the epic"}
                },
                "required": ["epic_id"]
            }
        ),
        Tool(
            name="get_task",
            description="Get task details including allowed transitions. Errors: 404 (not found).",
            inputSchema={
                "type": "object",
                "properties": {
                    "task_id": {"type": "string", "description": "UUID of the task"}
                },
                "required": ["task_id"]
            }
        ),
        Tool(
            name="transition_task",
            description="Move a task to a new state. Only transitions allowed by the state machine succeed; "
                       "BLOCKED requires blocked_reason. "
                       "Errors: 404 (not found), 422 (invalid transition), 400 (missing reason), 409 (conflict).",
            inputSchema={
                "type": "object",
                "properties": {
                    "task_id": {"type": "string", "description": "UUID of the task"},
                    "target_state": {
                        "type": "string",
                        "enum": TASK_STATES,
                        "description": "State to move to"
                    },
                    "blocked_reason": {"type": "string", "description": "Why the task is blocked"},
                    "pr_url": {"type": "string", "description": "Pull request URL to record"},
                    "branch_name": {"type": "string", "description": "Branch name to record"},
                    "expected_version": {
                        "type": "integer",
                        "description": "Reject if the task changed since this version was read"
                    },
                    "actor": {"type": "string", "description": "Who is acting (default: user)"}
                },
                "required": ["task_id", "target_state"]
            }
        ),
        Tool(
            name="run_task_action",
            description="Run a workflow action on a task: start, submit_pr (pr_url), start_validation, "
                       "complete_validation (passed, optional run_id), approve_merge, merge, block (reason), retry. "
                       "Errors: 409 (preconditions not met).",
            inputSchema={
                "type": "object",
                "properties": {
                    "task_id": {"type": "string", "description": "UUID of the task"},
                    "action": {"type": "string", "enum": TASK_ACTIONS},
                    "reason": {"type": "string"},
                    "pr_url": {"type": "string"},
                    "branch_name": {"type": "string"},
                    "passed": {"type": "boolean"},
                    "run_id": {"type": "string", "description": "Validation run to complete (default: newest)"},
                    "checks": {"type": "array", "items": {"type": "string"}},
                    "logs_url": {"type": "string"},
                    "actor": {"type": "string"}
                },
                "required": ["task_id", "action"]
            }
        ),
        # ============================================================================
        # Audit Tools
        # ============================================================================
        Tool(
            name="list_audit_logs",
            description="List audit log entries newest first, optionally for one epic or task.",
            inputSchema={
                "type": "object",
                "properties": {
                    "epic_id": {"type": "string"},
                    "task_id": {"type": "string"},
                    "limit": {"type": "integer", "description": "Maximum entries (default: 50, max: 500)"}
                }
            }
        ),
    ]
