from __future__ import annotations


class OrchestrationError(RuntimeError):
    """Base error for version orchestration."""


class ConfigurationError(OrchestrationError):
    """Raised when a project or the service is misconfigured.

    These are never retried: they are raised before any external call.
    """


class UnsupportedBackendError(ConfigurationError):
    """Raised when no adapter is registered for a backend type."""

    def __init__(self, backend_type: str | None):
        super().__init__(f"Unsupported backend: {backend_type!r}")
        self.backend_type = backend_type


class ValidationError(OrchestrationError):
    """Raised when a cheap precondition check on a backend fails."""


class BackendError(OrchestrationError):
    """Base error for Backend Adapter operations."""


class ProvisionError(BackendError):
    """Raised when backend resources cannot be created."""


class DestroyError(BackendError):
    """Raised when backend resources cannot be removed."""


class SnapshotError(BackendError):
    """Raised when a backend snapshot cannot be captured."""


class RollbackError(BackendError):
    """Raised when a backend snapshot cannot be applied."""


class ExternalServiceError(OrchestrationError):
    """Raised when a remote service call fails.

    Carries the service and operation names plus the raw status and body so
    an operator can tell which system failed and why.
    """

    def __init__(
        self,
        service: str,
        operation: str,
        status_code: int | None = None,
        detail: str = "",
    ):
        status = status_code if status_code is not None else "no response"
        super().__init__(f"{service} {operation} failed: {status} {detail}".rstrip())
        self.service = service
        self.operation = operation
        self.status_code = status_code
        self.detail = detail


class OperationFailedError(ExternalServiceError):
    """Raised when a control-plane operation settles with a negative outcome."""

    def __init__(self, service: str, operation: str, statuses: dict[str, str]):
        failed = ", ".join(f"{op_id}={status}" for op_id, status in statuses.items())
        super().__init__(service, operation, detail=f"operations did not finish: {failed}")
        self.statuses = statuses


class OperationTimeoutError(OrchestrationError):
    """Raised when an operation does not settle within its time budget.

    The outcome is unknown: the operation may still complete later.
    """

    def __init__(self, operation_id: str, last_status: str | None, timeout: float):
        super().__init__(
            f"Timed out after {timeout:g}s waiting for operation {operation_id} "
            f"to settle (last status: {last_status})"
        )
        self.operation_id = operation_id
        self.last_status = last_status
        self.timeout = timeout


class ResponseShapeError(OrchestrationError):
    """Raised when a remote payload cannot be normalized."""

    def __init__(self, operation: str, reason: str):
        super().__init__(f"Unexpected response from {operation}: {reason}")
        self.operation = operation
        self.reason = reason


class ProductionBranchNotFoundError(OrchestrationError):
    """Raised when a backend project has no writable production branch."""

    def __init__(self, backend_project_id: str):
        super().__init__(f"Production branch not found for backend project '{backend_project_id}'")
        self.backend_project_id = backend_project_id


class ProjectNotFoundError(OrchestrationError):
    """Raised when a project identifier cannot be resolved."""

    def __init__(self, project_id: str):
        super().__init__(f"Project '{project_id}' was not found")
        self.project_id = project_id


class VersionNotFoundError(OrchestrationError):
    """Raised when a version does not exist or belongs to another project."""

    def __init__(self, version_id: str):
        super().__init__(f"Version '{version_id}' was not found")
        self.version_id = version_id


class SecretsNotFoundError(OrchestrationError):
    """Raised when a version has no secrets bundle."""

    def __init__(self, version_id: str):
        super().__init__(f"No secrets found for version '{version_id}'")
        self.version_id = version_id


class StalePointerError(OrchestrationError):
    """Raised when the current-version pointer moved under an optimistic update."""

    def __init__(self, project_id: str, expected: str | None, actual: str | None):
        super().__init__(
            f"Project '{project_id}' current version is {actual!r}, expected {expected!r}"
        )
        self.project_id = project_id
        self.expected = expected
        self.actual = actual


class SecretsDecryptionError(OrchestrationError):
    """Raised when a stored bundle cannot be decrypted with the current key."""
