# integrations/transform.py
"""
Payload transformation rules.

A rule set is a dict with optional ``defaults`` (copied first),
``mappings`` (``[{"source": "a.b", "target": "x.y"}]`` with dotted paths)
and ``computed`` (``[{"field": "x", "expression": "uppercase(a.b)"}]``).
Messages go source -> canonical -> target through two rule sets.
"""
import copy
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from django.utils import timezone

from integrations.models import Transformation

_MISSING = object()

CALL_RE = re.compile(r"^\s*(concat|uppercase|lowercase|now)\((.*)\)\s*$")


@dataclass
class TransformResult:
    success: bool
    source_payload: dict
    canonical_payload: Optional[dict] = None
    target_payload: Optional[dict] = None
    transformation_id: Optional[str] = None
    errors: list = field(default_factory=list)


def get_path(data: Any, path: str):
    current = data
    for key in path.split("."):
        if isinstance(current, dict) and key in current:
            current = current[key]
        else:
            return _MISSING
    return current


def set_path(data: dict, path: str, value) -> None:
    keys = path.split(".")
    target = data
    for key in keys[:-1]:
        if not isinstance(target.get(key), dict):
            target[key] = {}
        target = target[key]
    target[keys[-1]] = value


def _lookup(name: str, source: dict, current: dict):
    value = get_path(source, name)
    if value is _MISSING:
        value = get_path(current, name)
    return None if value is _MISSING else value


def evaluate(expression: str, source: dict, current: dict):
    """Evaluate a computed-field expression; unknown forms return _MISSING."""
    match = CALL_RE.match(expression or "")
    if not match:
        return _MISSING
    func, raw_args = match.groups()
    args = [arg.strip() for arg in raw_args.split(",")] if raw_args.strip() else []

    if func == "now":
        return timezone.now().isoformat()
    if func == "concat":
        parts = []
        for arg in args:
            if len(arg) >= 2 and arg[0] == arg[-1] == "'":
                parts.append(arg[1:-1])
            else:
                value = _lookup(arg, source, current)
                parts.append("" if value is None else str(value))
        return "".join(parts)
    if not args:
        return _MISSING
    value = _lookup(args[0], source, current)
    if not isinstance(value, str):
        return value
    return value.upper() if func == "uppercase" else value.lower()


def apply_rules(payload: dict, rules: dict) -> dict:
    rules = rules or {}
    result = copy.deepcopy(rules.get("defaults") or {})

    for mapping in rules.get("mappings") or []:
        value = get_path(payload, mapping["source"])
        if value is not _MISSING:
            set_path(result, mapping["target"], value)

    for computed in rules.get("computed") or []:
        value = evaluate(computed.get("expression", ""), payload, result)
        if value is not _MISSING:
            set_path(result, computed["field"], value)

    return result


def find_transformation(source_connector: str, target_connector: str, source_type: str, target_type: str = None):
    qs = Transformation.objects.filter(
        source_connector=source_connector,
        target_connector=target_connector,
        source_type=source_type,
        is_active=True,
    )
    if target_type:
        qs = qs.filter(target_type=target_type)
    return qs.order_by("-priority", "name").first()


def run(transformation: Transformation, payload: dict) -> TransformResult:
    try:
        canonical = apply_rules(payload, transformation.source_to_canonical)
        target = apply_rules(canonical, transformation.canonical_to_target)
    except (KeyError, TypeError, AttributeError) as exc:
        return TransformResult(
            success=False,
            source_payload=payload,
            transformation_id=str(transformation.public_id),
            errors=[f"Invalid transformation rules: {exc}"],
        )
    return TransformResult(
        success=True,
        source_payload=payload,
        canonical_payload=canonical,
        target_payload=target,
        transformation_id=str(transformation.public_id),
    )


def transform_payload(source_connector: str, target_connector: str, source_type: str, payload: dict,
                      target_type: str = None) -> TransformResult:
    transformation = find_transformation(source_connector, target_connector, source_type, target_type)
    if transformation is None:
        label = f"{source_type} -> {target_type}" if target_type else source_type
        return TransformResult(
            success=False,
            source_payload=payload,
            errors=[f"No transformation found for {source_connector} -> {target_connector} ({label})"],
        )
    return run(transformation, payload)
