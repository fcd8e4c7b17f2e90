"""MCP server exposing the Cloud Run tools.

Two modes are supported. Locally every tool is registered and the caller
picks the project. When the server itself runs on Google Cloud (remote
mode) only content-based deploys and read-only tools are registered, and
project and region are pinned to the host's own.
"""

from typing import Annotated

from google.api_core import exceptions as google_exceptions
from mcp.server.fastmcp import Context, FastMCP
from pydantic import Field

from cloud_run_mcp.config import settings
from cloud_run_mcp.core.events import ContextSink
from cloud_run_mcp.core.exceptions import (
    CloudRunMcpError,
    DeploymentError,
    ForbiddenRoleError,
    InvalidInputError,
)
from cloud_run_mcp.core.orchestrator import DeploymentOrchestrator
from cloud_run_mcp.models.deployment import DeployedService, DeploymentRequest, InlineFile
from cloud_run_mcp.models.project import GcpEnvironment
from cloud_run_mcp.services import cloud_run, iam, projects
from cloud_run_mcp.services.clients import ClientFactory, default_client_factory
from cloud_run_mcp.utils.logging import get_logger

logger = get_logger(__name__)

SERVER_NAME = "cloud-run"
# Streamable HTTP endpoint, served at this exact path without a trailing slash
MCP_PATH = "/mcp"

PROJECT_HINT = (
    "Google Cloud project ID. Do not select it yourself, make sure the user "
    "provides or confirms the project ID."
)
RegionArg = Annotated[str, Field(description="Region of the Cloud Run service")]
ServiceArg = Annotated[str, Field(description="Name of the Cloud Run service")]


def _require(value: str | None, message: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(message)
    return value.strip()


def format_deploy_result(service: DeployedService, source: str | None = None) -> str:
    origin = f" from folder {source}" if source else ""
    text = (
        f"Cloud Run service {service.name} deployed{origin} in project {service.project}\n"
        f"Cloud Console: {service.console_url}\n"
        f"Service URL: {service.url}"
    )
    if service.billing_message:
        text += f"\n{service.billing_message}"
    return text


class CloudRunTools:
    """Tool implementations, independent of the MCP plumbing."""

    def __init__(
        self,
        environment: GcpEnvironment | None = None,
        client_factory: ClientFactory = default_client_factory,
        orchestrator: DeploymentOrchestrator | None = None,
    ):
        self.environment = environment
        self.client_factory = client_factory
        self.orchestrator = orchestrator or DeploymentOrchestrator(client_factory=client_factory)

    @property
    def is_remote(self) -> bool:
        return self.environment is not None

    def _target(self, project: str | None, region: str | None) -> tuple[str | None, str]:
        """Pin project and region to the host in remote mode."""
        region = region or settings.default_region
        if self.environment is None:
            return project, region
        return self.environment.project, self.environment.region or region

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def list_projects(self) -> str:
        try:
            found = await projects.list_projects(self.client_factory(None))
        except google_exceptions.GoogleAPICallError as e:
            return f"Error listing GCP projects: {e.message or e}"
        lines = "\n".join(f"- {project.id}" for project in found)
        return f"Available GCP Projects:\n{lines}"

    async def create_project(self, project_id: str | None = None) -> str:
        try:
            result = await projects.create_project_and_attach_billing(
                self.client_factory(None), project_id or None
            )
        except CloudRunMcpError as e:
            return f"Error creating GCP project: {e.message}"
        return f"Project ID: {result.project_id}\n{result.billing_message}"

    # ------------------------------------------------------------------
    # Read-only service queries
    # ------------------------------------------------------------------

    async def list_services(self, project: str | None, region: str | None = None) -> str:
        project, region = self._target(project, region)
        project = _require(project, "Project ID must be provided and be a non-empty string.")
        try:
            services = await cloud_run.list_services(self.client_factory(project), project, region)
        except google_exceptions.GoogleAPICallError as e:
            return (
                f"Error listing services for project {project} (region {region}): "
                f"{e.message or e}"
            )
        lines = "\n".join(f"- {s.name} (URL: {s.uri})" for s in services)
        return f"Services in project {project} (location {region}):\n{lines}"

    async def get_service(
        self, project: str | None, service: str, region: str | None = None
    ) -> str:
        project, region = self._target(project, region)
        project = _require(project, "Project ID must be provided.")
        service = _require(service, "Service name must be provided.")
        try:
            details = await cloud_run.get_service(
                self.client_factory(project), project, region, service
            )
        except google_exceptions.GoogleAPICallError as e:
            return (
                f"Error getting service {service} in project {project} (region {region}): "
                f"{e.message or e}"
            )
        if details is None:
            return f"Service {service} not found in project {project} (region {region})."
        return (
            f"Name: {service}\nRegion: {region}\nProject: {project}\n"
            f"URL: {details.uri}\nLast deployed by: {details.last_modifier}"
        )

    async def get_service_log(
        self, project: str | None, service: str, region: str | None = None
    ) -> str:
        project, region = self._target(project, region)
        project = _require(project, "Project ID must be provided.")
        service = _require(service, "Service name must be provided.")
        try:
            return await cloud_run.get_service_logs(
                self.client_factory(project),
                project,
                region,
                service,
                page_size=settings.log_page_size,
            )
        except google_exceptions.GoogleAPICallError as e:
            return (
                f"Error getting logs for service {service} in project {project} "
                f"(region {region}): {e.message or e}"
            )

    # ------------------------------------------------------------------
    # Deployments
    # ------------------------------------------------------------------

    async def _deploy(
        self,
        request: DeploymentRequest,
        ctx: Context | None,
        source: str | None = None,
    ) -> str:
        sink = ContextSink(ctx) if ctx is not None else None
        logger.info(
            "tools.deploy",
            project_id=request.project_id,
            service=request.service_name,
            region=request.region,
        )
        try:
            service = await self.orchestrator.deploy(request, sink)
        except (DeploymentError, FileNotFoundError) as e:
            logger.warning("tools.deploy_failed", error=str(e))
            prefix = "Error deploying folder to Cloud Run" if source else "Error deploying to Cloud Run"
            return f"{prefix}: {e}"
        return format_deploy_result(service, source)

    async def deploy_local_files(
        self,
        project: str,
        files: list[str],
        region: str | None = None,
        service: str | None = None,
        ctx: Context | None = None,
    ) -> str:
        project = _require(
            project,
            "Project must be specified, please prompt the user for a valid existing "
            "Google Cloud project ID.",
        )
        request = DeploymentRequest(
            project_id=project,
            service_name=service or settings.default_service_name,
            region=region or settings.default_region,
            files=files,
        )
        return await self._deploy(request, ctx)

    async def deploy_local_folder(
        self,
        project: str,
        folder_path: str,
        region: str | None = None,
        service: str | None = None,
        ctx: Context | None = None,
    ) -> str:
        project = _require(
            project,
            "Project must be specified, please prompt the user for a valid existing "
            "Google Cloud project ID.",
        )
        folder_path = _require(
            folder_path, "Folder path must be specified and be a non-empty string."
        )
        request = DeploymentRequest(
            project_id=project,
            service_name=service or settings.default_service_name,
            region=region or settings.default_region,
            files=[folder_path],
        )
        return await self._deploy(request, ctx, source=folder_path)

    async def deploy_file_contents(
        self,
        files: list[InlineFile],
        project: str | None = None,
        region: str | None = None,
        service: str | None = None,
        ctx: Context | None = None,
    ) -> str:
        project, region = self._target(project or None, region)
        for file in files or []:
            if isinstance(file, InlineFile) and not file.content:
                raise InvalidInputError(f"File {file.filename} must have content")
        request = DeploymentRequest(
            project_id=project,
            service_name=service or settings.default_service_name,
            region=region,
            files=files,
        )
        return await self._deploy(request, ctx)

    # ------------------------------------------------------------------
    # IAM
    # ------------------------------------------------------------------

    async def add_iam_roles(
        self, project: str | None, service_account_email: str, roles: list[str]
    ) -> str:
        project, _ = self._target(project, None)
        if not isinstance(project, str) or not project.strip():
            return "Google Cloud project ID must be provided and cannot be empty."
        if not isinstance(service_account_email, str) or not service_account_email.strip():
            return (
                "Service account email must be provided and cannot be empty. This should "
                "be the full email address of the service account (e.g., "
                "my-service-account@my-project-id.iam.gserviceaccount.com)."
            )
        if not isinstance(roles, list) or not roles:
            return (
                'At least one IAM role must be specified as an array '
                '(e.g., ["roles/run.invoker"]).'
            )

        try:
            await iam.add_iam_roles(
                self.client_factory(project), project, service_account_email, roles
            )
        except ForbiddenRoleError as e:
            return f"Error: {e.message}"
        except CloudRunMcpError as e:
            return (
                f"Error processing IAM roles request for service account "
                f"{service_account_email} in project {project}: {e.message}"
            )
        return (
            f"IAM roles {', '.join(roles)} successfully added to service account "
            f"{service_account_email} in project {project}."
        )


def create_mcp_server(
    environment: GcpEnvironment | None = None,
    client_factory: ClientFactory = default_client_factory,
    orchestrator: DeploymentOrchestrator | None = None,
) -> FastMCP:
    """Build the FastMCP server and register the tools for the current mode."""
    tools = CloudRunTools(environment, client_factory, orchestrator)
    mcp = FastMCP(
        name=SERVER_NAME,
        instructions=(
            "Deploy applications to Google Cloud Run and inspect deployed services."
        ),
        host=settings.api_host,
        port=settings.api_port,
        streamable_http_path=MCP_PATH,
        # Each HTTP request stands alone; the identity proxy never keeps a session
        stateless_http=True,
    )

    if not tools.is_remote:

        @mcp.tool(name="list_projects", description="Lists available GCP projects")
        async def list_projects_tool() -> str:
            return await tools.list_projects()

        @mcp.tool(
            name="create_project",
            description=(
                "Creates a new GCP project and attempts to attach it to the first "
                "available billing account. A project ID is generated if none is given."
            ),
        )
        async def create_project_tool(
            projectId: Annotated[
                str | None, Field(description="Optional ID for the new GCP project")
            ] = None,
        ) -> str:
            return await tools.create_project(projectId)

    @mcp.tool(
        name="list_services",
        description="Lists Cloud Run services in a given project and region.",
    )
    async def list_services_tool(
        project: Annotated[str, Field(description="Google Cloud project ID")] = "",
        region: RegionArg = settings.default_region,
    ) -> str:
        return await tools.list_services(project, region)

    @mcp.tool(name="get_service", description="Gets details for a specific Cloud Run service.")
    async def get_service_tool(
        service: ServiceArg,
        project: Annotated[str, Field(description="Google Cloud project ID")] = "",
        region: RegionArg = settings.default_region,
    ) -> str:
        return await tools.get_service(project, service, region)

    @mcp.tool(
        name="get_service_log",
        description="Gets logs and error messages for a specific Cloud Run service.",
    )
    async def get_service_log_tool(
        service: ServiceArg,
        project: Annotated[str, Field(description="Google Cloud project ID")] = "",
        region: RegionArg = settings.default_region,
    ) -> str:
        return await tools.get_service_log(project, service, region)

    if not tools.is_remote:

        @mcp.tool(
            name="deploy_local_files",
            description=(
                "Deploy local files to Cloud Run. Takes an array of absolute file paths "
                "from the local filesystem that will be deployed. Use this tool if the "
                "files exist on the user local filesystem."
            ),
        )
        async def deploy_local_files_tool(
            project: Annotated[str, Field(description=PROJECT_HINT)],
            files: Annotated[
                list[str], Field(description="Absolute paths of the files to deploy")
            ],
            ctx: Context,
            region: RegionArg = settings.default_region,
            service: ServiceArg = settings.default_service_name,
        ) -> str:
            return await tools.deploy_local_files(project, files, region, service, ctx)

        @mcp.tool(
            name="deploy_local_folder",
            description=(
                "Deploy a local folder to Cloud Run. Takes an absolute folder path from "
                "the local filesystem that will be deployed. Use this tool if the entire "
                "folder content needs to be deployed."
            ),
        )
        async def deploy_local_folder_tool(
            project: Annotated[str, Field(description=PROJECT_HINT)],
            folderPath: Annotated[
                str, Field(description="Absolute path to the folder to deploy")
            ],
            ctx: Context,
            region: RegionArg = settings.default_region,
            service: ServiceArg = settings.default_service_name,
        ) -> str:
            return await tools.deploy_local_folder(project, folderPath, region, service, ctx)

    @mcp.tool(
        name="deploy_file_contents",
        description=(
            "Deploy files to Cloud Run by providing their contents directly. Takes an "
            "array of file objects containing filename and content. Use this tool if "
            "the files only exist in the current chat context."
        ),
    )
    async def deploy_file_contents_tool(
        files: Annotated[
            list[InlineFile],
            Field(description="File objects with a relative filename and its content"),
        ],
        ctx: Context,
        project: Annotated[
            str | None,
            Field(description=PROJECT_HINT + " A new project is created when omitted."),
        ] = None,
        region: RegionArg = settings.default_region,
        service: ServiceArg = settings.default_service_name,
    ) -> str:
        return await tools.deploy_file_contents(files, project, region, service, ctx)

    # Policy writes are never exposed by a hosted server
    if not tools.is_remote:

        @mcp.tool(
            name="add_IAM_Roles",
            description="Grants IAM roles on a project to a service account.",
        )
        async def add_iam_roles_tool(
            serviceAccountEmail: Annotated[
                str, Field(description="Full email address of the service account")
            ],
            roles: Annotated[
                list[str], Field(description='IAM role names, e.g. ["roles/run.invoker"]')
            ],
            project: Annotated[str, Field(description="Google Cloud project ID")] = "",
        ) -> str:
            return await tools.add_iam_roles(project, serviceAccountEmail, roles)

    logger.info(
        "mcp.server.created",
        mode="remote" if tools.is_remote else "local",
        project=environment.project if environment else None,
    )
    return mcp
