"""Project, billing and hosting environment models."""

from pydantic import BaseModel


class ProjectInfo(BaseModel):
    """A Google Cloud project visible to the caller."""

    id: str


class BillingAccount(BaseModel):
    """A Cloud Billing account."""

    name: str  # billingAccounts/XXXXXX-XXXXXX-XXXXXX
    display_name: str = ""
    open: bool = False


class ProjectCreationResult(BaseModel):
    """Result of creating a project and linking billing."""

    project_id: str
    billing_message: str = ""
    billing_enabled: bool = False
    bootstrapped: bool = False


class GcpEnvironment(BaseModel):
    """Project and region of the host when running on Google Cloud."""

    project: str
    region: str | None = None
