"""Task profile schemas.

Defines the immutable description of a unit of agent work that the
router classifies: its type, complexity, duration estimate, resource
requirements, labels and priority.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TaskType(StrEnum):
    """Category of work a task represents."""

    FEATURE = "feature"
    BUGFIX = "bugfix"
    REFACTOR = "refactor"
    TEST = "test"
    DOCUMENTATION = "documentation"
    SECURITY = "security"
    PERFORMANCE = "performance"
    INFRASTRUCTURE = "infrastructure"
    RESEARCH = "research"


class Level(StrEnum):
    """Three-step scale used for complexity and resource demands."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Priority(StrEnum):
    """Scheduling priority of a task."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ResourceRequirements(BaseModel):
    """Resource demands of a task.

    Memory levels map roughly to: low < 2GB, medium 2-8GB, high > 8GB.
    """

    model_config = ConfigDict(frozen=True)

    cpu: Level = Field(default=Level.MEDIUM, description="CPU demand")
    memory: Level = Field(default=Level.MEDIUM, description="Memory demand")
    disk: Level = Field(default=Level.LOW, description="Disk demand")
    network: Level = Field(default=Level.LOW, description="Network demand")
    gpu: bool = Field(default=False, description="Whether a GPU is required")
    isolation: bool = Field(
        default=False, description="Whether an isolated environment is required"
    )


class TaskProfile(BaseModel):
    """Immutable profile of a task submitted for routing.

    Built by the caller (usually from an issue-tracker event) and
    consumed read-only by the router.
    """

    model_config = ConfigDict(frozen=True)

    task_id: str = Field(min_length=1, description="Unique task identifier")
    title: str = Field(description="Human-readable task title")
    type: TaskType = Field(default=TaskType.FEATURE, description="Task category")
    complexity: Level = Field(default=Level.MEDIUM, description="Task complexity")
    estimated_duration: float = Field(
        default=30.0, gt=0, description="Estimated duration in minutes"
    )
    resource_requirements: ResourceRequirements = Field(
        default_factory=ResourceRequirements,
        description="Resource demands of the task",
    )
    labels: frozenset[str] = Field(
        default_factory=frozenset, description="Free-form labels (e.g. 'quick-fix')"
    )
    dependencies: tuple[str, ...] = Field(
        default=(), description="Identifiers of tasks this one depends on"
    )
    priority: Priority = Field(default=Priority.MEDIUM, description="Task priority")
    agent_type: str | None = Field(
        default=None, description="Preferred agent type, if any"
    )


def create_task_profile(task_id: str, title: str, **options: Any) -> TaskProfile:
    """Build a TaskProfile from minimal input.

    Any field not given in ``options`` takes its default: a medium
    complexity, medium priority, 30 minute feature with medium CPU and
    memory demand. Nested values may be given as plain dicts and lists.
    """
    return TaskProfile(task_id=task_id, title=title, **options)
