from __future__ import annotations

import logging
import re
import shlex
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

import httpx

from codegen_versions.clients.http import JsonApiClient
from codegen_versions.errors import ExternalServiceError, ResponseShapeError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.freestyle.sh"
DEFAULT_BRANCH = "main"

_COMMIT_HASH = re.compile(r"^[0-9a-fA-F]{7,64}$")
_NON_SLUG = re.compile(r"[^a-z0-9]+")


@dataclass(slots=True)
class CommandResult:
    command: str
    exit_code: int
    stdout: str
    stderr: str


def slugify(value: str, max_length: int = 30) -> str:
    slug = _NON_SLUG.sub("-", value.lower()).strip("-")
    return slug[:max_length].rstrip("-") or "app"


def generate_deployment_url(project_name: str, owner: str, domain_suffix: str) -> tuple[str, str]:
    """Return the ``(domain, url)`` a project is published under."""
    domain = f"{slugify(project_name)}-{slugify(owner)}.{domain_suffix}"
    return domain, f"https://{domain}"


def _join_output(value: Any) -> str:
    if isinstance(value, list):
        return "\n".join(str(line) for line in value)
    return value if isinstance(value, str) else ""


@dataclass(slots=True)
class DevServerProcess:
    """Command execution inside a running dev server."""

    gateway: SandboxGateway
    repo_id: str

    async def exec(self, command: str, *, background: bool = False) -> CommandResult:
        payload = await self.gateway._request(
            "exec",
            "POST",
            "/ephemeral/v1/dev-servers/exec",
            json={
                "devServer": {"repoId": self.repo_id},
                "command": command,
                "background": background,
            },
        )
        payload = payload or {}
        exit_code = payload.get("exitCode", payload.get("exit_code", 0))
        return CommandResult(
            command=command,
            exit_code=exit_code if isinstance(exit_code, int) else -1,
            stdout=_join_output(payload.get("stdout")),
            stderr=_join_output(payload.get("stderr")),
        )


@dataclass(slots=True)
class DevServerFileSystem:
    """File access inside a running dev server."""

    gateway: SandboxGateway
    repo_id: str

    async def read_file(self, path: str) -> str:
        payload = await self.gateway._request(
            "read_file",
            "POST",
            "/ephemeral/v1/dev-servers/files/read",
            json={"devServer": {"repoId": self.repo_id}, "path": path},
        )
        content = payload.get("content") if isinstance(payload, dict) else None
        if not isinstance(content, str):
            raise ResponseShapeError("read_file", f"no content for {path}")
        return content

    async def write_file(self, path: str, content: str) -> None:
        await self.gateway._request(
            "write_file",
            "POST",
            "/ephemeral/v1/dev-servers/files/write",
            json={"devServer": {"repoId": self.repo_id}, "path": path, "content": content},
        )

    async def list_files(self, path: str = ".") -> list[str]:
        payload = await self.gateway._request(
            "list_files",
            "POST",
            "/ephemeral/v1/dev-servers/files/list",
            json={"devServer": {"repoId": self.repo_id}, "path": path},
        )
        files = payload.get("files") if isinstance(payload, dict) else None
        return [str(name) for name in files] if isinstance(files, list) else []


@dataclass(slots=True)
class DevServer:
    repo_id: str
    ephemeral_url: str
    is_new: bool
    process: DevServerProcess
    fs: DevServerFileSystem
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def origin(self) -> str:
        """``scheme://host`` of the ephemeral url, used for auth allow-listing."""
        parts = urlsplit(self.ephemeral_url)
        return f"{parts.scheme}://{parts.netloc}"

    async def commit_and_push(self, message: str) -> None:
        await self.process.gateway.commit_and_push(self.repo_id, message)


class SandboxGateway(JsonApiClient):
    """Facade over the sandbox host: git repos plus live dev servers."""

    service = "sandbox"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        client: httpx.AsyncClient | None = None,
        timeout: float = 120.0,
    ) -> None:
        super().__init__(api_key, base_url=base_url, client=client, timeout=timeout)

    async def create_repo(self, name: str, source_url: str) -> str:
        logger.info(f"[Sandbox] Creating repository {name!r} from {source_url}")
        payload = await self._request(
            "create_repo",
            "POST",
            "/git/v1/repo",
            json={"name": name, "public": False, "source": {"url": source_url, "type": "git"}},
        )
        repo_id = payload.get("repoId") if isinstance(payload, dict) else None
        if not isinstance(repo_id, str) or not repo_id:
            raise ResponseShapeError("create_repo", "repoId missing")
        return repo_id

    async def delete_repo(self, repo_id: str) -> None:
        logger.info(f"[Sandbox] Deleting repository {repo_id}")
        await self._request("delete_repo", "DELETE", f"/git/v1/repo/{repo_id}")

    async def deploy_web(
        self,
        git_url: str,
        *,
        domains: list[str],
        environment_variables: Mapping[str, str],
    ) -> str | None:
        """Build and publish the repository at ``git_url`` on ``domains``."""
        logger.info(f"[Sandbox] Deploying {git_url} to {', '.join(domains)}")
        env = dict(environment_variables)
        payload = await self._request(
            "deploy_web",
            "POST",
            "/web/v1/deployment",
            json={
                "source": {"kind": "git", "url": git_url},
                "config": {"domains": domains, "envVars": env, "build": {"envVars": env}},
            },
        )
        deployment_id = payload.get("deploymentId") if isinstance(payload, dict) else None
        logger.info(f"[Sandbox] Deployment {deployment_id} finished for {git_url}")
        return deployment_id if isinstance(deployment_id, str) else None

    async def get_latest_commit(self, repo_id: str, branch: str = DEFAULT_BRANCH) -> str:
        payload = await self._request(
            "get_latest_commit",
            "GET",
            f"/git/v1/repo/{repo_id}/git/refs/heads/{branch}",
        )
        sha = None
        if isinstance(payload, dict):
            target = payload.get("object")
            sha = payload.get("sha") or (target.get("sha") if isinstance(target, dict) else None)
        if not isinstance(sha, str) or not sha:
            raise ResponseShapeError("get_latest_commit", f"no commit for {repo_id}@{branch}")
        return sha

    async def request_dev_server(
        self,
        repo_id: str,
        environment_variables: Mapping[str, str] | None = None,
    ) -> DevServer:
        payload = await self._request(
            "request_dev_server",
            "POST",
            "/ephemeral/v1/dev-servers",
            json={
                "repoId": repo_id,
                "environmentVariables": dict(environment_variables or {}),
            },
        )
        if not isinstance(payload, dict) or not isinstance(payload.get("ephemeralUrl"), str):
            raise ResponseShapeError("request_dev_server", "ephemeralUrl missing")
        return DevServer(
            repo_id=repo_id,
            ephemeral_url=payload["ephemeralUrl"],
            is_new=bool(payload.get("isNew", False)),
            process=DevServerProcess(self, repo_id),
            fs=DevServerFileSystem(self, repo_id),
            raw=payload,
        )

    async def commit_and_push(self, repo_id: str, message: str) -> None:
        logger.info(f"[Sandbox] Committing and pushing {repo_id}: {message!r}")
        await self._request(
            "commit_and_push",
            "POST",
            "/ephemeral/v1/dev-servers/git/commit-push",
            json={"devServer": {"repoId": repo_id}, "message": message},
        )

    async def reset_to_commit(
        self,
        process: DevServerProcess,
        commit_hash: str,
        branch: str = DEFAULT_BRANCH,
    ) -> None:
        """Point ``branch`` at ``commit_hash`` in the sandbox and on its remote."""
        if not _COMMIT_HASH.match(commit_hash):
            raise ValidationError(f"Invalid commit hash: {commit_hash!r}")

        quoted_branch = shlex.quote(branch)
        command = (
            f"git fetch origin && git checkout {quoted_branch} && "
            f"git reset --hard {commit_hash} && git push --force origin {quoted_branch}"
        )
        result = await process.exec(command)
        if result.exit_code != 0:
            raise ExternalServiceError(
                self.service, "reset_to_commit", detail=result.stderr or result.stdout
            )
        logger.info(f"[Sandbox] Reset {process.repo_id} to {commit_hash}")
