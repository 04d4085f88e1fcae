"""MCP tool handlers.

All handlers follow a consistent pattern:
- Accept: arguments dict and an httpx.AsyncClient bound to the API base URL
- Return: list[TextContent] built with the formatters module
- Let httpx.HTTPStatusError propagate; the server turns it into "Error: <detail>"
"""
import logging

import httpx
from mcp.types import TextContent

from . import formatters

logger = logging.getLogger("agentflow-mcp.handlers")


def _drop_none(arguments: dict, *keys: str) -> dict:
    return {key: arguments[key] for key in keys if arguments.get(key) is not None}


# ============================================================================
# Epic Handlers
# ============================================================================

async def handle_list_epics(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """List epics with pagination."""
    params = _drop_none(arguments, "page", "page_size", "status")
    response = await client.get("/epics/", params=params)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully listed {result['total']} epics")

    if not result['items']:
        return [TextContent(type="text", text="No epics found.")]

    items_text = "\n\n".join(formatters.format_epic(item) for item in result['items'])
    summary = f"Found {result['total']} epics (page {result['page']} of {result['total_pages']})\n\n{items_text}"
    return [TextContent(type="text", text=summary)]


async def handle_get_epic(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """Get an epic with its tasks."""
    epic_id = arguments["epic_id"]
    response = await client.get(f"/epics/{epic_id}")
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully retrieved epic {epic_id}: {result['title']}")

    return [TextContent(type="text", text=formatters.format_epic_detail(result))]


async def handle_create_epic(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """Create an epic."""
    payload = _drop_none(
        arguments,
        "title", "intent", "repository", "default_branch", "constraints",
        "merge_policy", "tasks", "generate_plan",
    )
    response = await client.post("/epics/", json=payload)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully created epic {result['id']}: {result['title']}")

    text = f"Created epic **{result['title']}**\n\n{formatters.format_epic_detail(result)}"
    return [TextContent(type="text", text=text)]


async def handle_get_epic_signals(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """Compare stored and GitHub-derived task states for an epic."""
    epic_id = arguments["epic_id"]
    response = await client.get(f"/epics/{epic_id}/signals")
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully derived signals for {len(result['tasks'])} tasks of epic {epic_id}")

    header = f"**Signals for {result['repository']}**"
    if not result['collaborator_available']:
        header += "\n(GitHub unavailable: showing no-signal states)"
    lines = "\n".join(formatters.format_task_signal(signal) for signal in result['tasks'])
    return [TextContent(type="text", text=f"{header}\n\n{lines or 'No tasks.'}")]


# ============================================================================
# Task Handlers
# ============================================================================

async def handle_list_tasks(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """List an epic's tasks."""
    epic_id = arguments["epic_id"]
    response = await client.get(f"/epics/{epic_id}/tasks")
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully listed {len(result)} tasks for epic {epic_id}")

    if not result:
        return [TextContent(type="text", text=f"No tasks found for epic {epic_id}")]

    lines = "\n".join(formatters.format_task_line(task) for task in result)
    return [TextContent(type="text", text=f"Found {len(result)} tasks\n\n{lines}")]


async def handle_get_task(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """Get task details."""
    task_id = arguments["task_id"]
    response = await client.get(f"/tasks/{task_id}")
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully retrieved task {task_id}")

    return [TextContent(type="text", text=formatters.format_task(result))]


async def handle_transition_task(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """Transition a task to a new state."""
    task_id = arguments["task_id"]
    payload = _drop_none(
        arguments,
        "target_state", "blocked_reason", "pr_url", "branch_name", "expected_version", "actor",
    )
    response = await client.post(f"/tasks/{task_id}/transition", json=payload)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully transitioned task {task_id} to {result['state']}")

    text = f"Transitioned task to **{result['state']}**\n\n{formatters.format_task(result)}"
    return [TextContent(type="text", text=text)]


async def handle_run_task_action(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """Run a workflow action on a task."""
    task_id = arguments["task_id"]
    action = arguments["action"]
    payload = _drop_none(
        arguments, "actor", "reason", "pr_url", "branch_name", "passed", "run_id", "checks", "logs_url",
    )
    response = await client.post(f"/tasks/{task_id}/actions/{action}", json=payload)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully ran {action} on task {task_id} (now {result['state']})")

    text = f"Ran **{action}**: task is now {result['state']}\n\n{formatters.format_task(result)}"
    return [TextContent(type="text", text=text)]


# ============================================================================
# Audit Handlers
# ============================================================================

async def handle_list_audit_logs(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """List audit log entries."""
    params = _drop_none(arguments, "epic_id", "task_id", "limit")
    response = await client.get("/audit-logs/", params=params)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully retrieved {len(result)} audit log entries")

    if not result:
        return [TextContent(type="text", text="No audit log entries found.")]

    lines = "\n".join(formatters.format_audit_log(entry) for entry in result)
    return [TextContent(type="text", text=f"**Audit Log**\n\n{lines}")]


HANDLERS = {
    "list_epics": handle_list_epics,
    "get_epic": handle_get_epic,
    "create_epic": handle_create_epic,
    "get_epic_signals": handle_get_epic_signals,
    "list_tasks": handle_list_tasks,
    "get_task": handle_get_task,
    "transition_task": handle_transition_task,
    "run_task_action": handle_run_task_action,
    "list_audit_logs": handle_list_audit_logs,
}
