from datetime import datetime

from pydantic import BaseModel


class InstagramAccountCreateRequest(BaseModel):
    username: str = ""
    sessionData: str | None = None


class InstagramAccountItem(BaseModel):
    accountId: str
    username: str
    isActive: bool
    lastUsed: datetime | None = None
    createdAt: datetime | None = None


class InstagramAccountListResponse(BaseModel):
    accounts: list[InstagramAccountItem]
