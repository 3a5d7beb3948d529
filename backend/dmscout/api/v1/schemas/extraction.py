from datetime import datetime

from pydantic import BaseModel, Field


class ExtractionCreateRequest(BaseModel):
    domains: list[str] = Field(default_factory=list)
    filename: str | None = None


class ExtractionCreateResponse(BaseModel):
    uploadId: str
    jobId: str
    status: str


class JobDetailResponse(BaseModel):
    jobId: str
    kind: str
    status: str
    total: int
    completed: int
    failed: int
    createdAt: datetime | None = None
    updatedAt: datetime | None = None


class JobListResponse(BaseModel):
    jobs: list[JobDetailResponse]


class ResultItem(BaseModel):
    resultId: str
    jobId: str
    domain: str
    igHandle: str | None = None
    confidence: float | None = None
    sourceUrl: str | None = None
    status: str
    createdAt: datetime | None = None


class ResultListResponse(BaseModel):
    jobId: str | None = None
    results: list[ResultItem]
