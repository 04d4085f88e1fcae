"""Default plan generation for new epics.

Produces a fixed seven-step placeholder plan. Callers that have a real
planner pass explicit tasks to ``create_epic`` instead.
"""
from .schemas import TaskCreateItem

_DEFAULT_PLAN = (
    (
        "Project scaffolding and configuration",
        "Set up the initial project structure for: {intent}",
        (
            "Project initialized with required dependencies",
            "Configuration files created",
            "Build and lint pass",
        ),
    ),
    (
        "Data models and database schema",
        "Define and implement the core data models and database schema.",
        (
            "All data models defined with types",
            "Database schema created",
            "Basic CRUD operations working",
        ),
    ),
    (
        "Core API endpoints",
        "Implement the main API endpoints for the application.",
        (
            "REST endpoints for all core resources",
            "Input validation on all endpoints",
            "Proper error handling and status codes",
        ),
    ),
    (
        "Core UI layout and navigation",
        "Build the main application layout, navigation, and routing.",
        (
            "Main layout with navigation",
            "All page routes configured",
            "Responsive design working",
        ),
    ),
    (
        "Primary feature implementation",
        "Implement the primary feature set for: {intent}",
        (
            "Core feature logic implemented",
            "UI components for the primary workflow",
            "Integration between frontend and API",
        ),
    ),
    (
        "Secondary features and polish",
        "Add secondary features, error handling, and UI polish.",
        (
            "Edge cases handled",
            "Loading and error states shown",
            "Validation and feedback messages",
        ),
    ),
    (
        "Testing and documentation",
        "Add tests and documentation for the project.",
        (
            "Unit tests for critical paths",
            "README with setup instructions",
            "All tests passing",
        ),
    ),
)


def generate_default_plan(intent: str) -> list[TaskCreateItem]:
    """Build the placeholder task list for an epic intent, in execution order."""
    intent = (intent or "").strip()
    return [
        TaskCreateItem(
            title=title,
            description=description.format(intent=intent),
            acceptance_criteria=list(criteria),
        )
        for title, description, criteria in _DEFAULT_PLAN
    ]
