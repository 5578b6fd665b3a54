from typing import List, Optional
from fastapi import APIRouter, HTTPException, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from dependency_injector.wiring import inject, Provide

from app.storage.database.db_connector import get_db
from app.app_containers import ApplicationContainer
from app.core.logger import logger
from app.core.settings import settings

from app.v1_0.schemas import LoanCreate, LoanUpdate
from app.v1_0.entities import LoanDTO, LoanPageDTO, LoanStatsDTO
from app.v1_0.models import LoanStatus
from app.v1_0.services import LoanService

router = APIRouter(prefix="/loans", tags=["Loans"])


@router.post(
    "/create",
    response_model=LoanDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Create loan",
)
@inject
async def create_loan(
    request: LoanCreate,
    db: AsyncSession = Depends(get_db),
    service: LoanService = Depends(
        Provide[ApplicationContainer.api_container.loan_service]
    ),
) -> LoanDTO:
    logger.info(
        "[LoanRouter] create person_id=%s amount=%s",
        request.person_id,
        request.total_amount,
    )
    try:
        return await service.create(request, db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[LoanRouter] create error: %s", e, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="Failed to create loan",
        )


@router.get(
    "/page",
    response_model=LoanPageDTO,
    summary="List loans paginated",
)
@inject
async def list_loans_paginated(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    person_id: Optional[int] = Query(None, ge=1),
    loan_status: Optional[LoanStatus] = Query(None, alias="status"),
    completed: Optional[bool] = Query(None),
    sort_by: str = Query("created_at"),
    order: str = Query("desc"),
    db: AsyncSession = Depends(get_db),
    service: LoanService = Depends(
        Provide[ApplicationContainer.api_container.loan_service]
    ),
):
    logger.debug("[LoanRouter] list_paginated page=%s sort=%s %s", page, sort_by, order)
    try:
        return await service.list_paginated(
            page,
            db,
            limit=limit,
            person_id=person_id,
            status=loan_status.value if loan_status else None,
            completed=completed,
            sort_by=sort_by,
            order=order,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[LoanRouter] list_paginated error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list loans")


@router.get(
    "/statistics",
    response_model=LoanStatsDTO,
    summary="Loan portfolio statistics",
)
@inject
async def loan_statistics(
    db: AsyncSession = Depends(get_db),
    service: LoanService = Depends(
        Provide[ApplicationContainer.api_container.loan_service]
    ),
):
    logger.debug("[LoanRouter] statistics")
    try:
        return await service.statistics(db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[LoanRouter] statistics error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to compute loan statistics")


@router.get(
    "/upcoming-due",
    response_model=List[LoanDTO],
    summary="Open loans due soon",
)
@inject
async def upcoming_due(
    days: int = Query(settings.UPCOMING_DUE_DAYS, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
    service: LoanService = Depends(
        Provide[ApplicationContainer.api_container.loan_service]
    ),
):
    logger.debug("[LoanRouter] upcoming_due days=%s", days)
    try:
        return await service.upcoming_due(db, days=days)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[LoanRouter] upcoming_due error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list upcoming due loans")


@router.get(
    "/by-id/{loan_id}",
    response_model=LoanDTO,
    summary="Get loan by ID",
)
@inject
async def get_loan(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    service: LoanService = Depends(
        Provide[ApplicationContainer.api_container.loan_service]
    ),
):
    logger.debug("[LoanRouter] get id=%s", loan_id)
    try:
        return await service.get(loan_id, db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[LoanRouter] get error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch loan")


@router.patch(
    "/by-id/{loan_id}",
    response_model=LoanDTO,
    summary="Update loan",
)
@inject
async def update_loan(
    loan_id: int,
    request: LoanUpdate,
    db: AsyncSession = Depends(get_db),
    service: LoanService = Depends(
        Provide[ApplicationContainer.api_container.loan_service]
    ),
) -> LoanDTO:
    logger.info(
        "[LoanRouter] update id=%s fields=%s",
        loan_id,
        sorted(request.model_fields_set),
    )
    try:
        return await service.update(loan_id, request, db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[LoanRouter] update error: %s", e, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="Failed to update loan",
        )


@router.post(
    "/by-id/{loan_id}/recalculate",
    response_model=LoanDTO,
    summary="Rebuild loan balances from its payments",
)
@inject
async def recalculate_loan(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    service: LoanService = Depends(
        Provide[ApplicationContainer.api_container.loan_service]
    ),
) -> LoanDTO:
    logger.info("[LoanRouter] recalculate id=%s", loan_id)
    try:
        return await service.recalculate_totals(loan_id, db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[LoanRouter] recalculate error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to recalculate loan")


@router.delete(
    "/by-id/{loan_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete loan",
)
@inject
async def delete_loan(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    service: LoanService = Depends(
        Provide[ApplicationContainer.api_container.loan_service]
    ),
):
    logger.warning("[LoanRouter] delete id=%s", loan_id)
    try:
        await service.delete(loan_id, db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[LoanRouter] delete error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete loan")
