"""Declarative rule conditions.

Rule predicates are plain data: a small set of condition kinds that can
be loaded from TOML or JSON, evaluated in isolation and inspected.
Field paths address the task (``task.``), the system load snapshot
(``load.``), the worker configuration (``config.``) or the performance
history for the task's type (``history.``).
"""

from __future__ import annotations

import operator
from collections.abc import Callable
from enum import StrEnum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from taskroute.schemas.routing import RoutingContext
from taskroute.schemas.task import TaskProfile

_ROOTS = ("task", "load", "config", "history")


class Operator(StrEnum):
    """Comparison operators available to ``compare`` conditions."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GE = "ge"
    LT = "lt"
    LE = "le"


_OPERATORS: dict[Operator, Callable[[Any, Any], bool]] = {
    Operator.EQ: operator.eq,
    Operator.NE: operator.ne,
    Operator.GT: operator.gt,
    Operator.GE: operator.ge,
    Operator.LT: operator.lt,
    Operator.LE: operator.le,
}


def resolve_field(path: str, task: TaskProfile, context: RoutingContext) -> Any:
    """Resolve a dotted field path against a task and routing context.

    Returns None for ``history.`` paths when the task's type has no
    recorded history yet.

    Raises:
        ValueError: If the root or any attribute on the path is unknown.
    """
    root, _, rest = path.partition(".")
    if root == "task":
        obj: Any = task
    elif root == "load":
        obj = context.system_load
    elif root == "config":
        obj = context.config
    elif root == "history":
        obj = context.historical_performance.get(task.type)
        if obj is None:
            return None
    else:
        raise ValueError(f"Unknown field root '{root}' in '{path}'")

    for part in rest.split(".") if rest else ():
        if isinstance(obj, dict):
            if part not in obj:
                raise ValueError(f"Unknown key '{part}' in '{path}'")
            obj = obj[part]
        elif isinstance(obj, BaseModel):
            if part not in type(obj).model_fields:
                raise ValueError(f"Unknown field '{part}' in '{path}'")
            obj = getattr(obj, part)
        else:
            raise ValueError(f"Cannot descend into '{part}' in '{path}'")
    return obj


def _check_path(path: str) -> str:
    root = path.partition(".")[0]
    if root not in _ROOTS:
        raise ValueError(
            f"Field path '{path}' must start with one of: {', '.join(_ROOTS)}"
        )
    return path


class Always(BaseModel):
    """Matches every task."""

    kind: Literal["always"] = "always"

    def evaluate(self, task: TaskProfile, context: RoutingContext) -> bool:
        return True


class Compare(BaseModel):
    """Compares a field with a literal value or with another field.

    Exactly one of ``value`` and ``value_from`` is set. A None on either
    side (missing history) never matches.
    """

    kind: Literal["compare"] = "compare"
    field: str = Field(description="Dotted path of the left operand")
    op: Operator = Field(description="Comparison operator")
    value: Any = Field(default=None, description="Literal right operand")
    value_from: str | None = Field(
        default=None, description="Dotted path of the right operand"
    )

    @field_validator("field")
    @classmethod
    def check_field(cls, v: str) -> str:
        return _check_path(v)

    @field_validator("value_from")
    @classmethod
    def check_value_from(cls, v: str | None) -> str | None:
        return _check_path(v) if v is not None else v

    @model_validator(mode="after")
    def require_operand(self) -> Compare:
        if self.value is None and self.value_from is None:
            raise ValueError("compare condition needs 'value' or 'value_from'")
        if self.value is not None and self.value_from is not None:
            raise ValueError("compare condition takes 'value' or 'value_from', not both")
        return self

    def evaluate(self, task: TaskProfile, context: RoutingContext) -> bool:
        left = resolve_field(self.field, task, context)
        if self.value_from is not None:
            right = resolve_field(self.value_from, task, context)
        else:
            right = self.value
        if left is None or right is None:
            return False
        return bool(_OPERATORS[self.op](left, right))


class Contains(BaseModel):
    """Matches when a collection field contains a value."""

    kind: Literal["contains"] = "contains"
    field: str = Field(description="Dotted path of a collection field")
    value: Any = Field(description="Value looked up in the collection")

    @field_validator("field")
    @classmethod
    def check_field(cls, v: str) -> str:
        return _check_path(v)

    def evaluate(self, task: TaskProfile, context: RoutingContext) -> bool:
        collection = resolve_field(self.field, task, context)
        if collection is None:
            return False
        return self.value in collection


class OneOf(BaseModel):
    """Matches when a field's value is one of the listed values."""

    kind: Literal["one_of"] = "one_of"
    field: str = Field(description="Dotted path of the tested field")
    values: list[Any] = Field(min_length=1, description="Accepted values")

    @field_validator("field")
    @classmethod
    def check_field(cls, v: str) -> str:
        return _check_path(v)

    def evaluate(self, task: TaskProfile, context: RoutingContext) -> bool:
        return resolve_field(self.field, task, context) in self.values


class AllOf(BaseModel):
    """Matches when every nested condition matches."""

    kind: Literal["all"] = "all"
    conditions: list[Condition] = Field(min_length=1)

    def evaluate(self, task: TaskProfile, context: RoutingContext) -> bool:
        return all(c.evaluate(task, context) for c in self.conditions)


class AnyOf(BaseModel):
    """Matches when at least one nested condition matches."""

    kind: Literal["any"] = "any"
    conditions: list[Condition] = Field(min_length=1)

    def evaluate(self, task: TaskProfile, context: RoutingContext) -> bool:
        return any(c.evaluate(task, context) for c in self.conditions)


class Not(BaseModel):
    """Inverts a nested condition."""

    kind: Literal["not"] = "not"
    condition: Condition

    def evaluate(self, task: TaskProfile, context: RoutingContext) -> bool:
        return not self.condition.evaluate(task, context)


Condition = Annotated[
    Union[Always, Compare, Contains, OneOf, AllOf, AnyOf, Not],
    Field(discriminator="kind"),
]

AllOf.model_rebuild()
AnyOf.model_rebuild()
Not.model_rebuild()
