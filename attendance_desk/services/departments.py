from __future__ import annotations

import re

HIERARCHY_SEPARATOR = ">"
UNASSIGNED_DEPARTMENT = "Unassigned"

_WHITESPACE_RE = re.compile(r"\s+")
_TOKEN_SPLIT_RE = re.compile(r"[\s>_\-]+")


def normalize_department(value: str | None) -> str:
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", value.strip().lower())


def department_leaf(value: str | None) -> str:
    """Last segment of a hierarchical path such as ``All Departments>Finance``."""
    if not value or not value.strip():
        return ""
    if HIERARCHY_SEPARATOR not in value:
        return value.strip()
    return value.split(HIERARCHY_SEPARATOR)[-1].strip()


def _tokens(value: str) -> set[str]:
    return {token for token in _TOKEN_SPLIT_RE.split(value) if token}


def _segment_match(path: str, target: str) -> bool:
    segments = [segment.strip() for segment in path.split(HIERARCHY_SEPARATOR)]
    if segments[-1] == target:
        return True
    return any(segment == target for segment in segments)


def _directed_match(employee_department: str, target: str) -> bool:
    if employee_department == target:
        return True
    if HIERARCHY_SEPARATOR in employee_department:
        return _segment_match(employee_department, target)
    return bool(_tokens(employee_department) & _tokens(target))


def is_department_match(employee_department: str | None, target_department: str | None) -> bool:
    """Loose department comparison used for manager scoping.

    Upstream department strings are not canonical ("All Departments>E-CENTRIC",
    "E-Centric", "e_centric"), so the match favours false positives. Both
    directions are evaluated which keeps the relation symmetric.
    """
    left = normalize_department(employee_department)
    right = normalize_department(target_department)
    if not left or not right:
        return False
    return _directed_match(left, right) or _directed_match(right, left)


def matches_any(employee_department: str | None, targets: list[str]) -> bool:
    return any(is_department_match(employee_department, target) for target in targets)
