"""Cloud Run service read models."""

from pydantic import BaseModel


class ServiceSummary(BaseModel):
    """A service as shown in listings."""

    name: str
    uri: str = ""


class ServiceDetails(BaseModel):
    """Details of a single service."""

    name: str
    uri: str = ""
    last_modifier: str = ""
