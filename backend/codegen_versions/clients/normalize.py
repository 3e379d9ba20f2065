"""Parse boundaries for control-plane payloads.

Each function takes the raw decoded JSON and returns a :class:`Parsed`
holding either a fully normalized value or the reason it was rejected.
Nothing partially normalized is ever handed back to callers.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from codegen_versions.errors import ResponseShapeError
from codegen_versions.models.neon import AuthDomain, Branch, NeonAuth, OperationStatus

T = TypeVar("T")

_BRANCH_FIELDS = ("id", "name", "created_at", "parent_id")
_BRANCH_LIST_KEYS = ("branches", "items", "data")


@dataclass(frozen=True, slots=True)
class Parsed(Generic[T]):
    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self, operation: str) -> T:
        if self.error is not None:
            raise ResponseShapeError(operation, self.error)
        return self.value  # type: ignore[return-value]


def success(value: T) -> Parsed[T]:
    return Parsed(value=value)


def failure(reason: str) -> Parsed[Any]:
    return Parsed(error=reason)


def _non_empty_str(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def _optional_strings_ok(record: dict[str, Any]) -> bool:
    return all(record.get(key) is None or isinstance(record.get(key), str) for key in _BRANCH_FIELDS)


def parse_branch(item: Any) -> Parsed[Branch]:
    """Normalize a flat or ``{"branch": {...}}``-nested branch entry."""
    if not isinstance(item, dict):
        return failure("branch entry is not an object")
    if not _optional_strings_ok(item):
        return failure("branch entry has non-string fields")

    nested = item.get("branch")
    if nested is None:
        nested = {}
    elif not isinstance(nested, dict) or not _optional_strings_ok(nested):
        return failure("nested branch is malformed")

    merged = {key: item.get(key) if item.get(key) is not None else nested.get(key) for key in _BRANCH_FIELDS}
    if not _non_empty_str(merged["id"]):
        return failure("branch entry has no id")
    return success(Branch(**merged))


def parse_branch_list(payload: Any) -> Parsed[list[Branch]]:
    """Accept a bare array or an envelope keyed by ``branches``/``items``/``data``."""
    if isinstance(payload, list):
        entries = payload
    elif isinstance(payload, dict):
        entries = next(
            (payload[key] for key in _BRANCH_LIST_KEYS if isinstance(payload.get(key), list)),
            [],
        )
    else:
        return failure("branch list is neither an array nor an object")

    branches = [parsed.value for parsed in map(parse_branch, entries) if parsed.ok]
    return success(branches)  # type: ignore[arg-type]


def parse_created_project(payload: Any) -> Parsed[tuple[str, str, list[str]]]:
    """Extract ``(project id, first connection uri, operation ids)``."""
    if not isinstance(payload, dict):
        return failure("create-project response is not an object")

    project = payload.get("project")
    project_id = _non_empty_str(project.get("id")) if isinstance(project, dict) else None
    project_id = project_id or _non_empty_str(payload.get("id"))
    if project_id is None:
        return failure("project id missing")

    uris = payload.get("connection_uris")
    first = uris[0] if isinstance(uris, list) and uris else None
    database_url = _non_empty_str(first.get("connection_uri")) if isinstance(first, dict) else None
    if database_url is None:
        return failure("connection uri missing")

    return success((project_id, database_url, parse_operation_ids(payload)))


def parse_operation_ids(payload: Any) -> list[str]:
    if not isinstance(payload, dict):
        return []
    operations = payload.get("operations")
    if not isinstance(operations, list):
        return []
    return [
        op_id
        for op_id in (_non_empty_str(op.get("id")) for op in operations if isinstance(op, dict))
        if op_id is not None
    ]


def parse_snapshot_id(payload: Any) -> Parsed[str]:
    if not isinstance(payload, dict):
        return failure("snapshot response is not an object")
    snapshot = payload.get("snapshot")
    snapshot_id = _non_empty_str(snapshot.get("id")) if isinstance(snapshot, dict) else None
    snapshot_id = snapshot_id or _non_empty_str(payload.get("id"))
    if snapshot_id is None:
        return failure("snapshot id missing")
    return success(snapshot_id)


def parse_operation_status(payload: Any) -> Parsed[OperationStatus]:
    operation = payload.get("operation") if isinstance(payload, dict) else None
    raw = operation.get("status") if isinstance(operation, dict) else None
    if not isinstance(raw, str):
        return failure("operation status missing")
    try:
        return success(OperationStatus(raw))
    except ValueError:
        return failure(f"unknown operation status {raw!r}")


def parse_connection_uri(payload: Any) -> Parsed[str]:
    uri = _non_empty_str(payload.get("uri")) if isinstance(payload, dict) else None
    if uri is None:
        return failure("connection uri missing")
    return success(uri)


def _parse_model(model: Callable[..., T], what: str) -> Callable[[Any], Parsed[T]]:
    def parse(payload: Any) -> Parsed[T]:
        if not isinstance(payload, dict):
            return failure(f"{what} is not an object")
        try:
            return success(model(**payload))
        except (TypeError, ValueError) as exc:
            return failure(f"{what} is malformed: {exc}")

    return parse


parse_neon_auth = _parse_model(NeonAuth, "auth response")
_parse_auth_domain = _parse_model(AuthDomain, "auth domain")


def parse_auth_domains(payload: Any) -> Parsed[list[AuthDomain]]:
    domains = payload.get("domains") if isinstance(payload, dict) else None
    if not isinstance(domains, list):
        return failure("domains list missing")
    parsed = [_parse_auth_domain(item) for item in domains]
    rejected = next((item for item in parsed if not item.ok), None)
    if rejected is not None:
        return failure(rejected.error or "auth domain is malformed")
    return success([item.value for item in parsed])  # type: ignore[misc]
