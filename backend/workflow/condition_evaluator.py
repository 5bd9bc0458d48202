"""Boolean condition expressions over submitted form data.

Two shapes are supported:

    single: {"field": "amount", "operator": "gt", "value": 100}
    group:  {"logic": "and" | "or", "conditions": [ ... ]}

``type`` ("single" / "group") may be given explicitly; when it is omitted,
a dict carrying ``conditions`` is treated as a group.

Fields use dot paths (``applicant.level``) to reach into nested form data.
A single condition missing ``field`` or ``operator`` and a group with no
conditions both evaluate to True.
"""

import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


def resolve_field(data: Any, path: str) -> Any:
    """Walk a dot path through nested dicts, returning None when any hop is missing."""
    current = data
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return None
    return current


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strict_equal(left: Any, right: Any) -> bool:
    # 100 == 100.0 holds; 1 == True and 1 == "1" do not
    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def _compare(left: Any, right: Any, op: str) -> bool:
    a = _to_number(left)
    b = _to_number(right)
    if a is None or b is None:
        return False
    if op == "gt":
        return a > b
    if op == "gte":
        return a >= b
    if op == "lt":
        return a < b
    return a <= b


class ConditionEvaluator:
    """Pure evaluator for condition expressions."""

    def evaluate(self, condition: Optional[dict], form_data: Optional[dict]) -> bool:
        if not condition:
            return True
        form_data = form_data or {}

        kind = condition.get("type")
        if kind == "group" or (kind is None and "conditions" in condition):
            return self._evaluate_group(condition, form_data)
        return self._evaluate_single(condition, form_data)

    def _evaluate_group(self, condition: dict, form_data: dict) -> bool:
        children = condition.get("conditions") or []
        if not children:
            return True
        logic = str(condition.get("logic", "and")).lower()
        if logic == "or":
            return any(self.evaluate(child, form_data) for child in children)
        return all(self.evaluate(child, form_data) for child in children)

    def _evaluate_single(self, condition: dict, form_data: dict) -> bool:
        field_path = condition.get("field")
        operator = condition.get("operator")
        if not field_path or not operator:
            return True

        actual = resolve_field(form_data, field_path)
        expected = condition.get("value")

        if operator == "eq":
            return _strict_equal(actual, expected)
        if operator == "ne":
            return not _strict_equal(actual, expected)
        if operator in ("gt", "gte", "lt", "lte"):
            return _compare(actual, expected, operator)
        if operator == "in":
            if not isinstance(expected, list):
                return False
            return any(_strict_equal(actual, item) for item in expected)
        if operator == "contains":
            if not isinstance(actual, str) or not isinstance(expected, str):
                return False
            return expected in actual

        logger.warning(f"Unknown condition operator: {operator!r}")
        return False


_evaluator = ConditionEvaluator()


def evaluate(condition: Optional[dict], form_data: Optional[dict]) -> bool:
    """Module-level shortcut for ``ConditionEvaluator().evaluate``."""
    return _evaluator.evaluate(condition, form_data)
