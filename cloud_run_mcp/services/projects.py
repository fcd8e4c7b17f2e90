"""Project listing, creation and billing bootstrap."""

import asyncio
import random

from google.api_core import exceptions as google_exceptions
from google.cloud import billing_v1
from google.cloud import resourcemanager_v3

from cloud_run_mcp.core.events import ProgressReporter
from cloud_run_mcp.core.exceptions import ProvisioningError
from cloud_run_mcp.models.project import BillingAccount, ProjectCreationResult, ProjectInfo
from cloud_run_mcp.services.clients import GcpClients
from cloud_run_mcp.utils.logging import get_logger

logger = get_logger(__name__)

PROJECT_ID_PREFIX = "mcp"
CONSONANTS = "bcdfghjklmnpqrstvwxyz"
VOWELS = "aeiou"


def billing_console_url(project_id: str) -> str:
    return f"https://console.cloud.google.com/billing/linkedaccount?project={project_id}"


def generate_project_id(rng: random.Random | None = None) -> str:
    """Generate a pronounceable id such as ``mcp-kol-bet``."""
    rng = rng or random.Random()

    def syllable() -> str:
        return rng.choice(CONSONANTS) + rng.choice(VOWELS) + rng.choice(CONSONANTS)

    return f"{PROJECT_ID_PREFIX}-{syllable()}-{syllable()}"


async def list_projects(clients: GcpClients) -> list[ProjectInfo]:
    """List every project the caller can see."""
    pager = await asyncio.to_thread(clients.projects.search_projects)
    return await asyncio.to_thread(
        lambda: [ProjectInfo(id=project.project_id) for project in pager]
    )


async def create_project(clients: GcpClients, project_id: str | None = None) -> str:
    """Create a project and wait for it.

    A generated id that collides with an existing project is not
    regenerated; the create error is raised as is.
    """
    project_id = project_id or generate_project_id()
    logger.info("projects.create", project_id=project_id)
    try:
        operation = await asyncio.to_thread(
            clients.projects.create_project,
            project=resourcemanager_v3.Project(project_id=project_id, display_name=project_id),
        )
        created = await asyncio.to_thread(operation.result)
    except google_exceptions.GoogleAPICallError as e:
        raise ProvisioningError(f"project {project_id}", e.message or str(e)) from e

    logger.info("projects.created", project_id=created.project_id)
    return created.project_id


async def list_billing_accounts(clients: GcpClients) -> list[BillingAccount]:
    pager = await asyncio.to_thread(clients.billing.list_billing_accounts)
    return await asyncio.to_thread(
        lambda: [
            BillingAccount(
                name=account.name,
                display_name=account.display_name,
                open=account.open_,
            )
            for account in pager
        ]
    )


async def attach_billing(clients: GcpClients, project_id: str, account_name: str) -> bool:
    """Link ``project_id`` to a billing account; return whether billing is on."""
    info = await asyncio.to_thread(
        clients.billing.update_project_billing_info,
        name=f"projects/{project_id}",
        project_billing_info=billing_v1.ProjectBillingInfo(
            billing_account_name=account_name,
        ),
    )
    return bool(info.billing_enabled)


async def create_project_and_attach_billing(
    clients: GcpClients,
    project_id: str | None = None,
    progress: ProgressReporter | None = None,
) -> ProjectCreationResult:
    """Create a project, then link the first open billing account.

    Billing problems never fail the call; they are appended to the
    returned message. A project created here is never deleted, even when
    billing could not be attached.
    """
    progress = progress or ProgressReporter(logger=logger)
    project_id = await create_project(clients, project_id)
    await progress.info(f"Project {project_id} created.")

    message = f"Project {project_id} created."
    manual = f"Please link billing manually: {billing_console_url(project_id)}"
    billing_enabled = False

    try:
        accounts = await list_billing_accounts(clients)
        account = next((a for a in accounts if a.open), None)
        if account is not None:
            billing_enabled = await attach_billing(clients, project_id, account.name)
            if billing_enabled:
                message += f" Successfully attached to billing account {account.display_name}."
            else:
                message += (
                    f" Could not attach to billing account {account.display_name} or "
                    f"billing not enabled. {manual}"
                )
        elif accounts:
            available = ", ".join(f"{a.display_name} (Open: {a.open})" for a in accounts)
            message += f" No open billing accounts found. Available: {available}. {manual}"
        else:
            message += f" No billing accounts found. {manual}"
    except google_exceptions.GoogleAPICallError as e:
        logger.warning("projects.billing_failed", project_id=project_id, error=str(e))
        message += f" Error during billing operations: {e.message or e}. {manual}"

    if billing_enabled:
        await progress.info(message)
    else:
        await progress.warning(message)

    return ProjectCreationResult(
        project_id=project_id,
        billing_message=message,
        billing_enabled=billing_enabled,
        bootstrapped=True,
    )


async def ensure_project(
    clients: GcpClients,
    project_id: str | None,
    progress: ProgressReporter,
) -> ProjectCreationResult:
    """Resolve the target project, bootstrapping one when none is given.

    A supplied id is passed through untouched and never checked for
    existence; later steps fail naturally if it is wrong.
    """
    if project_id:
        return ProjectCreationResult(project_id=project_id)
    await progress.info("No project specified. Creating a new project...")
    return await create_project_and_attach_billing(clients, progress=progress)
