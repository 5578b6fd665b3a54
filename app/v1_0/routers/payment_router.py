from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, HTTPException, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from dependency_injector.wiring import inject, Provide

from app.storage.database.db_connector import get_db
from app.app_containers import ApplicationContainer
from app.core.logger import logger
from app.core.settings import settings

from app.v1_0.schemas import PaymentCreate, PaymentUpdate
from app.v1_0.entities import (
    PaymentCreatedDTO,
    PaymentDTO,
    PaymentMethodStatsDTO,
    PaymentPageDTO,
    PaymentPeriodDTO,
)
from app.v1_0.models import PaymentMethod
from app.v1_0.services import PaymentService

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post(
    "/create",
    response_model=PaymentCreatedDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Register a payment against a loan",
)
@inject
async def create_payment(
    request: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(
        Provide[ApplicationContainer.api_container.payment_service]
    ),
) -> PaymentCreatedDTO:
    logger.info(
        "[PaymentRouter] create loan_id=%s amount=%s",
        request.loan_id,
        request.amount,
    )
    try:
        return await service.create(request, db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[PaymentRouter] create error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create payment")


@router.get(
    "/page",
    response_model=PaymentPageDTO,
    summary="List payments paginated",
)
@inject
async def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    loan_id: Optional[int] = Query(None, ge=1),
    person_id: Optional[int] = Query(None, ge=1),
    method: Optional[PaymentMethod] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    sort_by: str = Query("paid_at"),
    order: str = Query("desc"),
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(
        Provide[ApplicationContainer.api_container.payment_service]
    ),
):
    logger.debug("[PaymentRouter] list page=%s loan_id=%s", page, loan_id)
    try:
        return await service.list_paginated(
            page,
            db,
            limit=limit,
            loan_id=loan_id,
            person_id=person_id,
            method=method.value if method else None,
            date_from=date_from,
            date_to=date_to,
            sort_by=sort_by,
            order=order,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[PaymentRouter] list error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list payments")


@router.get(
    "/statistics/methods",
    response_model=List[PaymentMethodStatsDTO],
    summary="Totals per payment method",
)
@inject
async def payment_method_statistics(
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(
        Provide[ApplicationContainer.api_container.payment_service]
    ),
):
    logger.debug("[PaymentRouter] statistics by method")
    try:
        return await service.statistics_by_method(db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[PaymentRouter] statistics error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to compute payment statistics")


@router.get(
    "/period",
    response_model=PaymentPeriodDTO,
    summary="Payments within a date range",
)
@inject
async def payments_by_period(
    date_from: datetime = Query(...),
    date_to: datetime = Query(...),
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(
        Provide[ApplicationContainer.api_container.payment_service]
    ),
):
    logger.debug("[PaymentRouter] period %s..%s", date_from, date_to)
    try:
        return await service.by_period(date_from, date_to, db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[PaymentRouter] period error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch payments for period")


@router.get(
    "/by-person/{person_id}/history",
    response_model=List[PaymentDTO],
    summary="Latest payments of a person",
)
@inject
async def person_payment_history(
    person_id: int,
    limit: int = Query(10, ge=1, le=settings.MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(
        Provide[ApplicationContainer.api_container.payment_service]
    ),
):
    logger.debug("[PaymentRouter] history person_id=%s", person_id)
    try:
        return await service.person_history(person_id, db, limit=limit)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[PaymentRouter] history error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch payment history")


@router.get(
    "/by-id/{payment_id}",
    response_model=PaymentDTO,
    summary="Get payment by ID",
)
@inject
async def get_payment(
    payment_id: int,
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(
        Provide[ApplicationContainer.api_container.payment_service]
    ),
):
    logger.debug("[PaymentRouter] get id=%s", payment_id)
    try:
        return await service.get(payment_id, db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[PaymentRouter] get error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch payment")


@router.patch(
    "/by-id/{payment_id}",
    response_model=PaymentDTO,
    summary="Update payment",
)
@inject
async def update_payment(
    payment_id: int,
    request: PaymentUpdate,
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(
        Provide[ApplicationContainer.api_container.payment_service]
    ),
) -> PaymentDTO:
    logger.info(
        "[PaymentRouter] update id=%s fields=%s",
        payment_id,
        sorted(request.model_fields_set),
    )
    try:
        return await service.update(payment_id, request, db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[PaymentRouter] update error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update payment")


@router.delete(
    "/by-id/{payment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete payment",
)
@inject
async def delete_payment(
    payment_id: int,
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(
        Provide[ApplicationContainer.api_container.payment_service]
    ),
):
    logger.warning("[PaymentRouter] delete id=%s", payment_id)
    try:
        await service.delete(payment_id, db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[PaymentRouter] delete error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete payment")
