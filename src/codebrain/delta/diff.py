"""
Structural diffs over JSON-like values.

A diff is a list of operations on dotted paths:

    {"op": "add",     "path": "a.b", "value": ...}
    {"op": "delete",  "path": "a.b", "value": ...}
    {"op": "replace", "path": "a.b", "from": ..., "to": ...}

Dicts are walked recursively; lists and scalars are compared as whole values.
The empty path addresses the root value.
"""

import copy
from typing import Any, Dict, List

_MISSING = object()


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else str(key)


def compute(before: Any, after: Any, path: str = "") -> List[Dict[str, Any]]:
    """
    Compute the operations turning ``before`` into ``after``.

    Examples:
        >>> compute({"a": 1}, {"a": 2})
        [{'op': 'replace', 'path': 'a', 'from': 1, 'to': 2}]
        >>> compute({"a": 1}, {"a": 1})
        []
    """
    if before is None and after is None:
        return []
    if before is None:
        return [{"op": "add", "path": path, "value": copy.deepcopy(after)}]
    if after is None:
        return [{"op": "delete", "path": path, "value": copy.deepcopy(before)}]

    if isinstance(before, dict) and isinstance(after, dict):
        diffs: List[Dict[str, Any]] = []
        for key in before:
            child = _join(path, key)
            if key not in after:
                diffs.append({"op": "delete", "path": child, "value": copy.deepcopy(before[key])})
            else:
                diffs.extend(compute(before[key], after[key], child))
        for key in after:
            if key not in before:
                diffs.append({"op": "add", "path": _join(path, key), "value": copy.deepcopy(after[key])})
        return diffs

    if before != after:
        return [{"op": "replace", "path": path, "from": copy.deepcopy(before), "to": copy.deepcopy(after)}]
    return []


def _set_path(target: Dict[str, Any], parts: List[str], value: Any) -> None:
    for part in parts[:-1]:
        nxt = target.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            target[part] = nxt
        target = nxt
    target[parts[-1]] = value


def _delete_path(target: Dict[str, Any], parts: List[str]) -> None:
    for part in parts[:-1]:
        target = target.get(part, _MISSING)
        if not isinstance(target, dict):
            return
    target.pop(parts[-1], None)


def apply(base: Any, diffs: List[Dict[str, Any]]) -> Any:
    """Apply diff operations to a copy of ``base`` and return the result."""
    result = copy.deepcopy(base)
    for d in diffs:
        path = d.get("path", "")
        op = d["op"]
        if not path:
            if op == "delete":
                result = None
            else:
                result = copy.deepcopy(d["value"] if op == "add" else d["to"])
            continue

        if result is None:
            result = {}
        parts = path.split(".")
        if op == "add":
            _set_path(result, parts, copy.deepcopy(d["value"]))
        elif op == "replace":
            _set_path(result, parts, copy.deepcopy(d["to"]))
        elif op == "delete":
            _delete_path(result, parts)
        else:
            raise ValueError(f"Unknown diff op: {op}")
    return result


def reverse(diffs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Invert a diff; applying the result undoes the original."""
    reversed_diffs = []
    for d in reversed(diffs):
        if d["op"] == "add":
            reversed_diffs.append({"op": "delete", "path": d["path"], "value": d.get("value")})
        elif d["op"] == "delete":
            reversed_diffs.append({"op": "add", "path": d["path"], "value": d.get("value")})
        else:
            reversed_diffs.append({"op": "replace", "path": d["path"], "from": d.get("to"), "to": d.get("from")})
    return reversed_diffs


def equals(a: Any, b: Any) -> bool:
    return not compute(a, b)


def changed_paths(before: Any, after: Any) -> List[str]:
    """Dotted paths touched between two values, in diff order."""
    return [d["path"] for d in compute(before, after)]
