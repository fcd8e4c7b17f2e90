"""Unit tests for IAM role grants."""

import pytest
from google.api_core import exceptions as google_exceptions

from cloud_run_mcp.core.exceptions import ForbiddenRoleError, ProvisioningError
from cloud_run_mcp.services.iam import FORBIDDEN_ROLES, add_iam_roles, check_roles_allowed

SERVICE_ACCOUNT = "runner@demo.iam.gserviceaccount.com"
MEMBER = f"serviceAccount:{SERVICE_ACCOUNT}"


def members_by_role(policy) -> dict[str, list[str]]:
    return {binding.role: list(binding.members) for binding in policy.bindings}


class TestDenylist:
    """Tests for check_roles_allowed."""

    def test_allowed_role(self):
        check_roles_allowed(["roles/run.invoker"])

    @pytest.mark.parametrize("role", ["roles/owner", "roles/OWNER", "Roles/Editor", "roles/iam.securityadmin"])
    def test_case_variants_are_forbidden(self, role):
        with pytest.raises(ForbiddenRoleError):
            check_roles_allowed([role])

    def test_message_names_every_forbidden_role(self):
        with pytest.raises(ForbiddenRoleError) as exc_info:
            check_roles_allowed(["roles/run.invoker", "roles/owner", "roles/compute.admin"])

        assert exc_info.value.roles == ["roles/owner", "roles/compute.admin"]
        assert '"roles/owner"' in exc_info.value.message
        assert "roles/run.invoker" not in exc_info.value.message

    def test_denylist_is_lowercase(self):
        assert all(role == role.lower() for role in FORBIDDEN_ROLES)
        assert "roles/resourcemanager.projectiamadmin" in FORBIDDEN_ROLES


class TestAddIamRoles:
    """Tests for add_iam_roles."""

    @pytest.mark.asyncio
    async def test_grants_roles_in_one_write(self, fake_clients):
        await add_iam_roles(
            fake_clients, "demo", SERVICE_ACCOUNT, ["roles/run.invoker", "roles/logging.viewer"]
        )

        assert len(fake_clients.projects.set_policy_calls) == 1
        assert members_by_role(fake_clients.projects.policy) == {
            "roles/run.invoker": [MEMBER],
            "roles/logging.viewer": [MEMBER],
        }

    @pytest.mark.asyncio
    async def test_extends_existing_binding(self, fake_clients):
        fake_clients.projects.policy.bindings.add(
            role="roles/run.invoker", members=["user:dev@example.com"]
        )

        await add_iam_roles(fake_clients, "demo", SERVICE_ACCOUNT, ["roles/run.invoker"])
        await add_iam_roles(fake_clients, "demo", SERVICE_ACCOUNT, ["roles/run.invoker"])

        assert members_by_role(fake_clients.projects.policy) == {
            "roles/run.invoker": ["user:dev@example.com", MEMBER],
        }

    @pytest.mark.asyncio
    async def test_forbidden_role_grants_nothing(self, fake_clients):
        with pytest.raises(ForbiddenRoleError, match="roles/owner"):
            await add_iam_roles(
                fake_clients, "demo", SERVICE_ACCOUNT, ["roles/run.invoker", "roles/owner"]
            )

        assert fake_clients.projects.set_policy_calls == []
        assert len(fake_clients.projects.policy.bindings) == 0

    @pytest.mark.asyncio
    async def test_api_error(self, fake_clients):
        fake_clients.projects.iam_error = google_exceptions.PermissionDenied("no getIamPolicy")

        with pytest.raises(ProvisioningError, match="no getIamPolicy"):
            await add_iam_roles(fake_clients, "demo", SERVICE_ACCOUNT, ["roles/run.invoker"])
