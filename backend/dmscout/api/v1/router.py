from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from dmscout.api.v1.dependencies import (
    provide_account_service,
    provide_campaign_service,
    provide_extraction_service,
    provide_instagram_account_service,
    provide_template_service,
    provide_user_id,
)
from dmscout.api.v1.schemas.account import AccountResponse
from dmscout.api.v1.schemas.campaign import (
    CampaignCreateRequest,
    CampaignItem,
    CampaignListResponse,
    QueueItem,
    QueueListResponse,
)
from dmscout.api.v1.schemas.extraction import (
    ExtractionCreateRequest,
    ExtractionCreateResponse,
    JobDetailResponse,
    JobListResponse,
    ResultItem,
    ResultListResponse,
)
from dmscout.api.v1.schemas.instagram_account import (
    InstagramAccountCreateRequest,
    InstagramAccountItem,
    InstagramAccountListResponse,
)
from dmscout.api.v1.schemas.template import (
    TemplateCreateRequest,
    TemplateDeleteResponse,
    TemplateItem,
    TemplateListResponse,
    TemplateUpdateRequest,
)
from dmscout.application.errors import ConflictError, NotFoundError, QuotaExceededError
from dmscout.application.services import (
    AccountApplicationService,
    CampaignApplicationService,
    ExtractionApplicationService,
    InstagramAccountApplicationService,
    TemplateApplicationService,
)
from dmscout.domain.models import CampaignRecord, InstagramAccountRecord, JobRecord, ResultRecord, TemplateRecord

router = APIRouter(prefix="/v1", tags=["v1"])


def _job_response(row: JobRecord) -> JobDetailResponse:
    return JobDetailResponse(
        jobId=row.job_id,
        kind=row.kind,
        status=row.status,
        total=row.total,
        completed=row.completed_count,
        failed=row.failed_count,
        createdAt=row.created_at,
        updatedAt=row.updated_at,
    )


def _result_item(row: ResultRecord) -> ResultItem:
    return ResultItem(
        resultId=row.result_id,
        jobId=row.job_id,
        domain=row.domain,
        igHandle=row.detected_handle,
        confidence=row.confidence_score,
        sourceUrl=row.source_url,
        status=row.outcome,
        createdAt=row.created_at,
    )


def _template_item(row: TemplateRecord) -> TemplateItem:
    return TemplateItem(
        templateId=row.template_id,
        name=row.name,
        content=row.content,
        spintaxVariations=row.spintax_variations,
        sendRate=row.send_rate,
    )


def _campaign_item(row: CampaignRecord) -> CampaignItem:
    return CampaignItem(
        campaignId=row.campaign_id,
        templateId=row.template_id,
        name=row.name,
        status=row.status,
        sendRate=row.send_rate,
        totalTargets=row.total_targets,
        sent=row.sent_count,
        replied=row.replied_count,
        interested=row.interested_count,
        failed=row.failed_count,
        scheduledAt=row.scheduled_at,
        startedAt=row.started_at,
        completedAt=row.completed_at,
    )


def _instagram_account_item(row: InstagramAccountRecord) -> InstagramAccountItem:
    return InstagramAccountItem(
        accountId=row.account_id,
        username=row.username,
        isActive=row.is_active,
        lastUsed=row.last_used,
        createdAt=row.created_at,
    )


def _quota_exceeded(exc: QuotaExceededError) -> HTTPException:
    return HTTPException(
        status_code=429,
        detail={"message": str(exc), "required": exc.required, "remaining": exc.remaining},
    )


@router.get("/me", response_model=AccountResponse)
async def get_me(
    user_id: str = Depends(provide_user_id),
    service: AccountApplicationService = Depends(provide_account_service),
):
    user = service.get_account(user_id)
    return AccountResponse(
        userId=user.user_id,
        email=user.email,
        plan=user.plan,
        dailyExtractQuota=user.daily_extract_quota,
        extractsUsedToday=user.extracts_used_today,
        dailyDmQuota=user.daily_dm_quota,
        dmsUsedToday=user.dms_used_today,
        lastQuotaReset=user.last_quota_reset,
    )


@router.post("/extractions", response_model=ExtractionCreateResponse)
async def create_extraction(
    body: ExtractionCreateRequest,
    user_id: str = Depends(provide_user_id),
    service: ExtractionApplicationService = Depends(provide_extraction_service),
):
    try:
        data = service.submit_batch(user_id=user_id, domains=body.domains, filename=body.filename)
    except QuotaExceededError as exc:
        raise _quota_exceeded(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return ExtractionCreateResponse(**data)


@router.get("/extractions", response_model=JobListResponse)
async def list_extractions(
    user_id: str = Depends(provide_user_id),
    service: ExtractionApplicationService = Depends(provide_extraction_service),
):
    return JobListResponse(jobs=[_job_response(row) for row in service.list_jobs(user_id=user_id)])


@router.get("/extractions/{jobId}", response_model=JobDetailResponse)
async def get_extraction(
    jobId: str,
    user_id: str = Depends(provide_user_id),
    service: ExtractionApplicationService = Depends(provide_extraction_service),
):
    try:
        row = service.get_owned_job(user_id=user_id, job_id=jobId)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _job_response(row)


@router.get("/extractions/{jobId}/results", response_model=ResultListResponse)
async def list_extraction_results(
    jobId: str,
    user_id: str = Depends(provide_user_id),
    service: ExtractionApplicationService = Depends(provide_extraction_service),
):
    try:
        rows = service.list_results(user_id=user_id, job_id=jobId)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ResultListResponse(jobId=jobId, results=[_result_item(row) for row in rows])


@router.get("/results/recent", response_model=ResultListResponse)
async def list_recent_results(
    limit: int = Query(default=10, ge=1, le=100),
    user_id: str = Depends(provide_user_id),
    service: ExtractionApplicationService = Depends(provide_extraction_service),
):
    rows = service.recent_results(user_id=user_id, limit=limit)
    return ResultListResponse(results=[_result_item(row) for row in rows])


@router.post("/templates", response_model=TemplateItem)
async def create_template(
    body: TemplateCreateRequest,
    user_id: str = Depends(provide_user_id),
    accounts: AccountApplicationService = Depends(provide_account_service),
    service: TemplateApplicationService = Depends(provide_template_service),
):
    accounts.get_account(user_id)
    try:
        row = service.create_template(
            user_id=user_id,
            name=body.name,
            content=body.content,
            spintax_variations=body.spintaxVariations,
            send_rate=body.sendRate,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _template_item(row)


@router.get("/templates", response_model=TemplateListResponse)
async def list_templates(
    user_id: str = Depends(provide_user_id),
    service: TemplateApplicationService = Depends(provide_template_service),
):
    return TemplateListResponse(templates=[_template_item(row) for row in service.list_templates(user_id=user_id)])


@router.put("/templates/{templateId}", response_model=TemplateItem)
async def update_template(
    templateId: str,
    body: TemplateUpdateRequest,
    user_id: str = Depends(provide_user_id),
    service: TemplateApplicationService = Depends(provide_template_service),
):
    try:
        row = service.update_template(
            user_id=user_id,
            template_id=templateId,
            name=body.name,
            content=body.content,
            spintax_variations=body.spintaxVariations,
            send_rate=body.sendRate,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _template_item(row)


@router.delete("/templates/{templateId}", response_model=TemplateDeleteResponse)
async def delete_template(
    templateId: str,
    user_id: str = Depends(provide_user_id),
    service: TemplateApplicationService = Depends(provide_template_service),
):
    try:
        service.delete_template(user_id=user_id, template_id=templateId)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return TemplateDeleteResponse(templateId=templateId)


@router.post("/campaigns", response_model=CampaignItem)
async def create_campaign(
    body: CampaignCreateRequest,
    user_id: str = Depends(provide_user_id),
    service: CampaignApplicationService = Depends(provide_campaign_service),
):
    try:
        row = service.create_campaign(
            user_id=user_id,
            name=body.name,
            template_id=body.templateId,
            handles=body.handles,
            job_id=body.jobId,
            scheduled_at=body.scheduledAt,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _campaign_item(row)


@router.get("/campaigns", response_model=CampaignListResponse)
async def list_campaigns(
    user_id: str = Depends(provide_user_id),
    service: CampaignApplicationService = Depends(provide_campaign_service),
):
    return CampaignListResponse(campaigns=[_campaign_item(row) for row in service.list_campaigns(user_id=user_id)])


@router.get("/campaigns/{campaignId}", response_model=CampaignItem)
async def get_campaign(
    campaignId: str,
    user_id: str = Depends(provide_user_id),
    service: CampaignApplicationService = Depends(provide_campaign_service),
):
    try:
        row = service.get_owned_campaign(user_id=user_id, campaign_id=campaignId)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _campaign_item(row)


@router.get("/campaigns/{campaignId}/queue", response_model=QueueListResponse)
async def list_campaign_queue(
    campaignId: str,
    user_id: str = Depends(provide_user_id),
    service: CampaignApplicationService = Depends(provide_campaign_service),
):
    try:
        rows = service.list_queue(user_id=user_id, campaign_id=campaignId)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    return QueueListResponse(
        campaignId=campaignId,
        items=[
            QueueItem(
                itemId=row.item_id,
                igHandle=row.target_handle,
                message=row.rendered_message,
                status=row.status,
                errorMessage=row.error_message,
                sentAt=row.sent_at,
            )
            for row in rows
        ],
    )


@router.post("/campaigns/{campaignId}/start", response_model=CampaignItem)
async def start_campaign(
    campaignId: str,
    user_id: str = Depends(provide_user_id),
    service: CampaignApplicationService = Depends(provide_campaign_service),
):
    try:
        row = service.start_campaign(user_id=user_id, campaign_id=campaignId)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except QuotaExceededError as exc:
        raise _quota_exceeded(exc) from exc
    return _campaign_item(row)


@router.post("/campaigns/{campaignId}/pause", response_model=CampaignItem)
async def pause_campaign(
    campaignId: str,
    user_id: str = Depends(provide_user_id),
    service: CampaignApplicationService = Depends(provide_campaign_service),
):
    try:
        row = service.pause_campaign(user_id=user_id, campaign_id=campaignId)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _campaign_item(row)


@router.get("/instagram-accounts", response_model=InstagramAccountListResponse)
async def list_instagram_accounts(
    user_id: str = Depends(provide_user_id),
    service: InstagramAccountApplicationService = Depends(provide_instagram_account_service),
):
    rows = service.list_accounts(user_id=user_id)
    return InstagramAccountListResponse(accounts=[_instagram_account_item(row) for row in rows])


@router.post("/instagram-accounts", response_model=InstagramAccountItem)
async def create_instagram_account(
    body: InstagramAccountCreateRequest,
    user_id: str = Depends(provide_user_id),
    accounts: AccountApplicationService = Depends(provide_account_service),
    service: InstagramAccountApplicationService = Depends(provide_instagram_account_service),
):
    accounts.get_account(user_id)
    try:
        row = service.add_account(user_id=user_id, username=body.username, session_data=body.sessionData)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _instagram_account_item(row)
