"""Formatting functions for MCP responses."""

STATE_EMOJI = {
    'PLANNED': '📝',
    'RUNNING': '🏃',
    'PR_READY': '📬',
    'VALIDATING': '🔍',
    'APPROVAL_PENDING': '⏳',
    'FIXING': '🔧',
    'MERGED': '🔀',
    'DONE': '✅',
    'BLOCKED': '⛔',
}


def format_epic(epic: dict) -> str:
    """Format an epic for display."""
    intent_info = f"\nIntent: {epic['intent']}" if epic.get('intent') else ""
    constraints_info = f"\nConstraints: {epic['constraints']}" if epic.get('constraints') else ""

    return f"""**{epic['title']}** [{epic['status']}]
ID: {epic['id']}
Repository: {epic['full_repo_name']} (branch: {epic['default_branch']})
Merge policy: {epic['merge_policy']}
Tasks: {epic.get('task_count', 0)}{intent_info}{constraints_info}
Updated: {epic['updated_at']}"""


def format_task_line(task: dict) -> str:
    """Format a task as a single list line."""
    emoji = STATE_EMOJI.get(task['state'], '•')
    return f"{task['position']}. {emoji} {task['title']} [{task['state']}] (id: {task['id']})"


def format_task(task: dict) -> str:
    """Format a task with all details."""
    emoji = STATE_EMOJI.get(task['state'], '•')
    lines = [
        f"{emoji} **{task['title']}** [{task['state']}]",
        f"ID: {task['id']}",
        f"Epic: {task['epic_id']} (position {task['position']})",
        f"Attempts: {task['attempts']}  Version: {task['version']}",
    ]
    if task.get('description'):
        lines.append(f"Description: {task['description']}")
    if task.get('acceptance_criteria'):
        lines.append("Acceptance criteria:")
        lines.extend(f"  - {criterion}" for criterion in task['acceptance_criteria'])
    if task.get('branch_name'):
        lines.append(f"Branch: {task['branch_name']}")
    if task.get('pr_url'):
        lines.append(f"PR: {task['pr_url']}")
    if task.get('blocked_reason'):
        lines.append(f"Blocked: {task['blocked_reason']}")
    if task.get('merge_approved'):
        lines.append("Merge approved: yes")

    allowed = task.get('allowed_transitions') or []
    lines.append(f"Allowed transitions: {', '.join(allowed) if allowed else 'none (terminal)'}")
    return "\n".join(lines)


def format_epic_detail(epic: dict) -> str:
    """Format an epic with its task list."""
    tasks = epic.get('tasks') or []
    task_lines = "\n".join(format_task_line(task) for task in tasks) or "No tasks yet."
    return f"{format_epic(epic)}\n\n**Tasks**\n{task_lines}"


def format_audit_log(entry: dict) -> str:
    """Format an audit log entry for display."""
    task_info = f" task {entry['task_id']}" if entry.get('task_id') else ""
    return f"- [{entry['created_at']}] {entry['action']} by {entry['actor']}{task_info}: {entry['details']}"


def format_task_signal(signal: dict) -> str:
    """Format a task's stored vs derived state."""
    marker = "=" if signal['in_sync'] else "≠"
    link_info = f"\n  Link: {signal['link']}" if signal.get('link') else ""
    return (
        f"- {signal['title']}: stored {signal['stored_state']} {marker} "
        f"derived {signal['derived_state']} ({signal['category']})\n"
        f"  Reason: {signal['reason']}{link_info}"
    )
