"""Project-level IAM role grants for service accounts."""

import asyncio

from google.api_core import exceptions as google_exceptions

from cloud_run_mcp.core.exceptions import ForbiddenRoleError, ProvisioningError
from cloud_run_mcp.services.clients import GcpClients
from cloud_run_mcp.utils.logging import get_logger

logger = get_logger(__name__)

# Roles too broad to hand to a service account from a tool call.
# Stored lowercase; lookups lowercase the candidate.
FORBIDDEN_ROLES = frozenset(
    role.lower()
    for role in (
        "roles/owner",
        "roles/editor",
        "roles/admin",
        "roles/cloudrun.admin",
        "roles/run.admin",
        "roles/iam.securityAdmin",
        "roles/resourcemanager.organizationAdmin",
        "roles/resourcemanager.projectIamAdmin",
        "roles/resourcemanager.folderIamAdmin",
        "roles/iam.serviceAccountAdmin",
        "roles/iam.serviceAccountKeyAdmin",
        "roles/compute.admin",
        "roles/appengine.appAdmin",
    )
)


def check_roles_allowed(roles: list[str]) -> None:
    """Refuse the whole batch if any role is on the denylist.

    Raises:
        ForbiddenRoleError: Naming every forbidden role, in input order.
    """
    forbidden = [role for role in roles if role.strip().lower() in FORBIDDEN_ROLES]
    if forbidden:
        logger.warning("iam.forbidden_roles", roles=forbidden)
        raise ForbiddenRoleError(forbidden)


async def add_iam_roles(
    clients: GcpClients,
    project_id: str,
    service_account: str,
    roles: list[str],
) -> None:
    """Bind ``roles`` to ``service_account`` on the project.

    The policy is read once and written once, so either every role is
    granted or none is.
    """
    check_roles_allowed(roles)

    resource = f"projects/{project_id}"
    member = f"serviceAccount:{service_account}"
    logger.info("iam.add_roles", project_id=project_id, member=member, roles=roles)

    try:
        policy = await asyncio.to_thread(clients.projects.get_iam_policy, resource=resource)

        for role in roles:
            binding = next(
                (
                    b
                    for b in policy.bindings
                    if b.role == role and not b.HasField("condition")
                ),
                None,
            )
            if binding is None:
                binding = policy.bindings.add(role=role)
            if member not in binding.members:
                binding.members.append(member)

        await asyncio.to_thread(
            clients.projects.set_iam_policy,
            request={"resource": resource, "policy": policy},
        )
    except google_exceptions.GoogleAPICallError as e:
        logger.error("iam.add_roles_failed", project_id=project_id, error=str(e))
        raise ProvisioningError(f"IAM policy of {resource}", e.message or str(e)) from e

    logger.info("iam.roles_added", project_id=project_id, member=member)
