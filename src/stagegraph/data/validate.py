from typing import Any, Dict, List
from functools import lru_cache

from jsonschema import Draft202012Validator, SchemaError

from stagegraph.logs import get_logger
from stagegraph.models import TaskSnapshot
from stagegraph.recovery import FatalError
from stagegraph.tree import find_tree_issues
from stagegraph.version import APP_SCHEMA_VERSION

log = get_logger("data.validate")

SCHEMA_DIALECT = "https://json-schema.org/draft/2020-12/schema"

@lru_cache(maxsize=1)
def snapshot_schema() -> Dict[str, Any]:
    """
    JSON schema of the data file, generated from the pydantic models.

    Keys are the on-disk camelCase names.
    """
    schema = TaskSnapshot.model_json_schema(by_alias=True)
    schema["$schema"] = SCHEMA_DIALECT
    schema["$comment"] = f"stagegraph data file, schema version {APP_SCHEMA_VERSION}"
    return schema

@lru_cache(maxsize=1)
def _validator() -> Draft202012Validator:
    schema = snapshot_schema()
    try:
        Draft202012Validator.check_schema(schema)
    except SchemaError as e:
        raise FatalError(f"Generated data schema is not valid: {e.message}") from e
    return Draft202012Validator(schema)

def validate_snapshot_data(data: Dict[str, Any]) -> List[str]:
    """
    Validate raw file contents against the data schema.

    Returns:
        One message per schema violation, with the JSON path of the offending value
    """
    errors = []
    for error in sorted(_validator().iter_errors(data), key=lambda e: list(e.absolute_path)):
        location = "/".join(str(p) for p in error.absolute_path) or "<root>"
        errors.append(f"{location}: {error.message}")
    if errors:
        log.debug(f"Schema validation found {len(errors)} problem(s)")
    return errors

def find_snapshot_issues(snapshot: TaskSnapshot) -> Dict[str, List[str]]:
    """Stage tree problems per task ID; tasks without problems are left out."""
    issues = {}
    seen_ids = set()
    for task in snapshot.tasks:
        task_issues = find_tree_issues(task.stages)
        if task.id in seen_ids:
            task_issues.insert(0, "task id is used by more than one task")
        seen_ids.add(task.id)
        if task_issues:
            issues[task.id] = task_issues
    return issues
