from __future__ import annotations

from fastapi import APIRouter, status

from codegen_versions.dependencies import CurrentUserId, ProjectServiceDep
from codegen_versions.models.api import (
    AcceptedResponse,
    AgentCheckpointRequest,
    CheckpointCreatedResponse,
    CheckpointRequest,
    DeploymentStatusResponse,
    DeployResponse,
    ProjectCreateRequest,
    ProjectResponse,
    RestoreVersionRequest,
    RestoreVersionResponse,
    VersionItem,
    VersionListResponse,
)
from codegen_versions.models.project import Project, ProjectVersion

router = APIRouter(prefix="/projects", tags=["projects"])


def _project_response(project: Project) -> ProjectResponse:
    return ProjectResponse(**project.model_dump(exclude={"user_id"}))


def _version_item(version: ProjectVersion) -> VersionItem:
    return VersionItem(**version.model_dump(exclude={"project_id"}))


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    payload: ProjectCreateRequest,
    service: ProjectServiceDep,
    user_id: CurrentUserId,
) -> ProjectResponse:
    project, _ = await service.create_project(user_id, payload.name, payload.source_url)
    return _project_response(project)


@router.get("/{project_id}/versions", response_model=VersionListResponse)
async def list_versions(
    project_id: str,
    service: ProjectServiceDep,
    user_id: CurrentUserId,
) -> VersionListResponse:
    project, versions = await service.list_versions(project_id, user_id)
    return VersionListResponse(
        versions=[_version_item(version) for version in versions],
        current_dev_version_id=project.current_dev_version_id,
    )


@router.post("/{project_id}/versions/restore", response_model=RestoreVersionResponse)
async def restore_version(
    project_id: str,
    payload: RestoreVersionRequest,
    service: ProjectServiceDep,
    user_id: CurrentUserId,
) -> RestoreVersionResponse:
    version = await service.restore_version(project_id, payload.version_id, user_id)
    return RestoreVersionResponse(
        message="Version restored successfully",
        version=_version_item(version),
    )


@router.post(
    "/{project_id}/versions",
    response_model=CheckpointCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_agent_checkpoint(
    project_id: str,
    payload: AgentCheckpointRequest,
    service: ProjectServiceDep,
    user_id: CurrentUserId,
) -> CheckpointCreatedResponse:
    result = await service.record_agent_checkpoint(
        project_id,
        payload.message,
        payload.environment_variables,
        user_id,
        payload.assistant_message_id,
    )
    return CheckpointCreatedResponse(version_id=result.version_id)


@router.post(
    "/{project_id}/checkpoint",
    response_model=AcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def create_checkpoint(
    project_id: str,
    payload: CheckpointRequest,
    service: ProjectServiceDep,
    user_id: CurrentUserId,
) -> AcceptedResponse:
    await service.request_checkpoint(project_id, user_id, payload.assistant_message_id)
    return AcceptedResponse(message="Checkpoint creation started", project_id=project_id)


@router.delete(
    "/{project_id}",
    response_model=AcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def delete_project(
    project_id: str,
    service: ProjectServiceDep,
    user_id: CurrentUserId,
) -> AcceptedResponse:
    await service.request_delete(project_id, user_id)
    return AcceptedResponse(message="Project deletion started", project_id=project_id)


@router.post(
    "/{project_id}/deploy",
    response_model=DeployResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def deploy_project(
    project_id: str,
    service: ProjectServiceDep,
    user_id: CurrentUserId,
) -> DeployResponse:
    deployment, _ = await service.request_deploy(project_id, user_id)
    return DeployResponse(
        message="Deployment triggered",
        domain=deployment.domain,
        url=deployment.url,
    )


@router.get("/{project_id}/deploy", response_model=DeploymentStatusResponse)
async def get_deployment(
    project_id: str,
    service: ProjectServiceDep,
    user_id: CurrentUserId,
) -> DeploymentStatusResponse:
    deployment = await service.get_deployment(project_id, user_id)
    return DeploymentStatusResponse(domain=deployment.domain, url=deployment.url, status="deployed")
