import json
from pathlib import Path
from typing import Any, Dict, Literal

import jsonschema

from ..errors import CoachActionError
from .coach import CoachSummary

SchemaType = Literal["coach_summary"]


def _load_schema(name: str) -> Dict[str, Any]:
    schema_path = Path(__file__).with_name(f"{name}.schema.json")
    with schema_path.open("r", encoding="utf-8") as f:
        return json.load(f)["schema"]


_compiled_schemas = {
    "coach_summary": jsonschema.Draft7Validator(_load_schema("coach_summary")),
}


def validate_against_schema(schema_type: SchemaType, data: Any) -> Dict[str, Any]:
    validator = _compiled_schemas[schema_type]
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.path))
    if not errors:
        return {"valid": True}
    return {"valid": False, "errors": [f"{'/'.join(map(str, err.path))} {err.message}" for err in errors]}


def is_same_shape(candidate: CoachSummary, base: CoachSummary) -> bool:
    """True when ``candidate`` only rewrites prose of ``base``."""
    if len(candidate.topPriorities) != len(base.topPriorities):
        return False
    if len(candidate.risks) != len(base.risks):
        return False
    if len(candidate.nextActions) != len(base.nextActions):
        return False

    for ours, theirs in zip(candidate.topPriorities, base.topPriorities):
        if (ours.goalId, ours.title, ours.score) != (theirs.goalId, theirs.title, theirs.score):
            return False
    for ours, theirs in zip(candidate.risks, base.risks):
        if (ours.goalId, ours.title, ours.category, ours.severity) != (
            theirs.goalId,
            theirs.title,
            theirs.category,
            theirs.severity,
        ):
            return False
    for ours, theirs in zip(candidate.nextActions, base.nextActions):
        if ours.goalId != theirs.goalId:
            return False

    return candidate.confidence == base.confidence


def validate_rewritten_summary(candidate: Any, base: CoachSummary) -> CoachSummary:
    """Accept a model-rewritten summary only if it keeps the rules summary's structure.

    The rewrite never carries its own ``meta``; the base summary's meta is merged in
    before validation.
    """
    if not isinstance(candidate, dict):
        raise CoachActionError("VALIDATION", "Rewritten summary is not an object")

    merged = {**candidate, "meta": base.meta.model_dump()}
    validation = validate_against_schema("coach_summary", merged)
    if not validation["valid"]:
        raise CoachActionError("VALIDATION", "; ".join(validation["errors"]))

    try:
        parsed = CoachSummary.model_validate(merged)
    except ValueError as error:
        raise CoachActionError("VALIDATION", str(error)) from error

    if not is_same_shape(parsed, base):
        raise CoachActionError("VALIDATION", "Rewritten summary changed ids, titles, scores or counts")
    return parsed
