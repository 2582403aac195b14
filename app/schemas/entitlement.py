"""Entitlement record read from the billing subsystem."""

from pydantic import BaseModel, ConfigDict, Field

UNLIMITED_TIER = "pro"


class EntitlementRecord(BaseModel):
    """Remaining scan credits and tier for one viewer."""

    model_config = ConfigDict(from_attributes=True)

    viewer_id: str = Field(..., min_length=1)
    credits_remaining: int = Field(default=0)
    tier: str = Field(default="free", description="'free' or 'pro' (unlimited).")


class CurrentViewer(BaseModel):
    """Viewer identity decoded from a bearer JWT."""

    id: str
