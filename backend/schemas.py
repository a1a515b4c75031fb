from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ContextParameter(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    description: str = ""


class GrantRecord(BaseModel):
    """One grant opportunity cut out of free-form research text."""
    model_config = ConfigDict(frozen=True)

    raw_section: str
    title: Optional[str] = None
    organization: Optional[str] = None
    amount: Optional[str] = None
    deadline: Optional[str] = None
    description: str

    def has_details(self) -> bool:
        return bool(self.organization or self.amount or self.deadline)


class _CamelBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    org_description: Optional[str] = Field(default=None, alias="orgDescription")
    context_parameters: List[ContextParameter] = Field(default_factory=list, alias="contextParameters")

    @field_validator("context_parameters", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return [] if value is None else value


class ReportRequest(_CamelBody):
    text: str = ""
    timestamp: datetime


class ResearchBody(_CamelBody):
    prompt: str = ""


class CombinedResearchBody(ResearchBody):
    use_candid: bool = Field(default=False, alias="useCandid")


class GrantSize(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None


class CandidSearchBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    focus_areas: Optional[List[str]] = Field(default=None, alias="focusAreas")
    geographic_scope: Optional[str] = Field(default=None, alias="geographicScope")
    grant_size: Optional[GrantSize] = Field(default=None, alias="grantSize")
    organization_type: Optional[str] = Field(default=None, alias="organizationType")
