from typing import Literal

from pydantic import BaseModel

SendRateValue = Literal["conservative", "moderate", "aggressive"]


class TemplateCreateRequest(BaseModel):
    name: str
    content: str
    spintaxVariations: int = 3
    sendRate: SendRateValue = "moderate"


class TemplateUpdateRequest(BaseModel):
    name: str | None = None
    content: str | None = None
    spintaxVariations: int | None = None
    sendRate: SendRateValue | None = None


class TemplateItem(BaseModel):
    templateId: str
    name: str
    content: str
    spintaxVariations: int
    sendRate: str


class TemplateListResponse(BaseModel):
    templates: list[TemplateItem]


class TemplateDeleteResponse(BaseModel):
    templateId: str
    deleted: bool = True
