from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from dependency_injector.wiring import inject, Provide

from app.storage.database.db_connector import get_db
from app.app_containers import ApplicationContainer
from app.core.logger import logger
from app.core.settings import settings

from app.v1_0.schemas import PersonCreate, PersonUpdate
from app.v1_0.entities import PersonDTO, PersonPageDTO, PersonStatsDTO
from app.v1_0.services import PersonService

router = APIRouter(prefix="/persons", tags=["Persons"])


@router.post(
    "/create",
    response_model=PersonDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Create person",
)
@inject
async def create_person(
    request: PersonCreate,
    db: AsyncSession = Depends(get_db),
    service: PersonService = Depends(
        Provide[ApplicationContainer.api_container.person_service]
    ),
) -> PersonDTO:
    logger.info("[PersonRouter] create name=%s", request.name)
    try:
        return await service.create(request, db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[PersonRouter] create error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create person")


@router.get(
    "/page",
    response_model=PersonPageDTO,
    summary="List persons paginated",
)
@inject
async def list_persons(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    search: Optional[str] = Query(None, max_length=100),
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    service: PersonService = Depends(
        Provide[ApplicationContainer.api_container.person_service]
    ),
):
    logger.debug("[PersonRouter] list page=%s search=%s", page, search)
    try:
        return await service.list_paginated(
            page,
            db,
            limit=limit,
            search=search,
            include_inactive=include_inactive,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[PersonRouter] list error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list persons")


@router.get(
    "/by-id/{person_id}",
    response_model=PersonDTO,
    summary="Get person by ID",
)
@inject
async def get_person(
    person_id: int,
    db: AsyncSession = Depends(get_db),
    service: PersonService = Depends(
        Provide[ApplicationContainer.api_container.person_service]
    ),
):
    logger.debug("[PersonRouter] get id=%s", person_id)
    try:
        return await service.get(person_id, db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[PersonRouter] get error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch person")


@router.get(
    "/by-id/{person_id}/statistics",
    response_model=PersonStatsDTO,
    summary="Loan statistics for a person",
)
@inject
async def person_statistics(
    person_id: int,
    db: AsyncSession = Depends(get_db),
    service: PersonService = Depends(
        Provide[ApplicationContainer.api_container.person_service]
    ),
):
    logger.debug("[PersonRouter] statistics id=%s", person_id)
    try:
        return await service.statistics(person_id, db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[PersonRouter] statistics error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to compute person statistics")


@router.patch(
    "/by-id/{person_id}",
    response_model=PersonDTO,
    summary="Update person",
)
@inject
async def update_person(
    person_id: int,
    request: PersonUpdate,
    db: AsyncSession = Depends(get_db),
    service: PersonService = Depends(
        Provide[ApplicationContainer.api_container.person_service]
    ),
) -> PersonDTO:
    logger.info(
        "[PersonRouter] update id=%s fields=%s",
        person_id,
        sorted(request.model_fields_set),
    )
    try:
        return await service.update(person_id, request, db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[PersonRouter] update error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update person")


@router.delete(
    "/by-id/{person_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Deactivate person",
)
@inject
async def delete_person(
    person_id: int,
    db: AsyncSession = Depends(get_db),
    service: PersonService = Depends(
        Provide[ApplicationContainer.api_container.person_service]
    ),
):
    logger.warning("[PersonRouter] delete id=%s", person_id)
    try:
        await service.delete(person_id, db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("[PersonRouter] delete error: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete person")
