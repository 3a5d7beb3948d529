from datetime import date

from pydantic import BaseModel


class AccountResponse(BaseModel):
    userId: str
    email: str | None = None
    plan: str
    dailyExtractQuota: int
    extractsUsedToday: int
    dailyDmQuota: int
    dmsUsedToday: int
    lastQuotaReset: date | None = None
