"""Pluggable database backends.

Dispatch is a plain mapping from backend type to adapter constructor; a
backend type without a registered constructor is rejected, never defaulted.
"""

from __future__ import annotations

from collections.abc import Callable

from codegen_versions.backends.base import BackendAdapter
from codegen_versions.backends.neon import NeonBackendAdapter
from codegen_versions.clients.neon import NeonClient
from codegen_versions.errors import UnsupportedBackendError
from codegen_versions.models.project import BackendType, Project

AdapterFactory = Callable[[Project, NeonClient], BackendAdapter]

BACKEND_ADAPTERS: dict[str, AdapterFactory] = {
    BackendType.NEON.value: lambda project, neon: NeonBackendAdapter(
        project.backend_project_id, neon
    ),
}


def get_backend_adapter(project: Project, neon: NeonClient) -> BackendAdapter:
    factory = BACKEND_ADAPTERS.get(project.backend_type)
    if factory is None:
        raise UnsupportedBackendError(project.backend_type)
    return factory(project, neon)


__all__ = [
    "BACKEND_ADAPTERS",
    "BackendAdapter",
    "NeonBackendAdapter",
    "get_backend_adapter",
]
