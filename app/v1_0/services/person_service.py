from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, InvalidStateError, NotFoundError
from app.core.logger import logger
from app.core.settings import settings
from app.utils.tx import maybe_begin
from app.v1_0.entities import PersonDTO, PersonPageDTO, PersonStatsDTO
from app.v1_0.helper.mappers import person_to_dto
from app.v1_0.helper.money import to_money
from app.v1_0.models import Person
from app.v1_0.repositories import PersonRepository
from app.v1_0.schemas import PersonCreate, PersonUpdate


class PersonService:
    def __init__(self, person_repository: PersonRepository) -> None:
        self.person_repository = person_repository
        self.PAGE_SIZE = settings.PAGE_SIZE

    async def require(self, person_id: int, db: AsyncSession) -> Person:
        p = await self.person_repository.get_by_id(person_id, db)
        if not p:
            raise NotFoundError("Person not found.")
        return p

    async def _ensure_unique(
        self,
        db: AsyncSession,
        *,
        national_id: Optional[str],
        email: Optional[str],
        active: bool,
        exclude_id: Optional[int] = None,
    ) -> None:
        """
        Raises:
            ConflictError: National ID already registered, or email used by
                another active person.
        """
        if national_id and await self.person_repository.get_by_national_id(
            national_id, db, exclude_id=exclude_id
        ):
            raise ConflictError("A person with this national ID already exists.")
        if email and active and await self.person_repository.get_active_by_email(
            email, db, exclude_id=exclude_id
        ):
            raise ConflictError("An active person with this email already exists.")

    async def register(self, payload: PersonCreate, db: AsyncSession) -> Person:
        """
        Validate uniqueness and insert a person inside the caller's transaction.
        No commit here.
        """
        await self._ensure_unique(
            db,
            national_id=payload.national_id,
            email=payload.email,
            active=payload.active,
        )
        p = await self.person_repository.create_person(payload, db)
        logger.info("[PersonService] Person created ID=%s", p.id)
        return p

    async def create(self, payload: PersonCreate, db: AsyncSession) -> PersonDTO:
        """
        Create a borrower.

        Raises:
            ConflictError: Duplicate national ID or active email.
            HTTPException: 500 if creation fails.
        """
        logger.info("[PersonService] Creating person name=%s", payload.name)

        if not db.in_transaction():
            await db.begin()
        try:
            dto = person_to_dto(await self.register(payload, db))
            await db.commit()
        except HTTPException:
            await db.rollback()
            raise
        except IntegrityError as e:
            await db.rollback()
            logger.warning("[PersonService] Create conflict: %s", e.orig)
            raise ConflictError("Person violates a uniqueness rule.")
        except Exception as e:
            await db.rollback()
            logger.error("[PersonService] Create failed: %s", e, exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to create person")
        return dto

    async def get(self, person_id: int, db: AsyncSession) -> PersonDTO:
        logger.debug("[PersonService] Get person ID=%s", person_id)
        try:
            async with maybe_begin(db):
                p = await self.require(person_id, db)
            return person_to_dto(p)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(
                "[PersonService] Get failed ID=%s: %s",
                person_id,
                e,
                exc_info=True,
            )
            raise HTTPException(status_code=500, detail="Failed to fetch person")

    async def list_paginated(
        self,
        page: int,
        db: AsyncSession,
        *,
        limit: Optional[int] = None,
        search: Optional[str] = None,
        include_inactive: bool = False,
    ) -> PersonPageDTO:
        """
        Page through borrowers, active ones first, then by name.

        ``search`` matches name, surname, email or phone, case-insensitively.
        """
        page = max(1, int(page or 1))
        page_size = min(int(limit or self.PAGE_SIZE), settings.MAX_PAGE_SIZE)
        offset = (page - 1) * page_size
        logger.debug(
            "[PersonService] List persons page=%s size=%s search=%s",
            page,
            page_size,
            search,
        )
        try:
            async with maybe_begin(db):
                items, total = await self.person_repository.list_paginated(
                    offset,
                    page_size,
                    db,
                    search=search,
                    include_inactive=include_inactive,
                )
            return PersonPageDTO.build(
                [person_to_dto(p) for p in items], page, page_size, total
            )
        except Exception as e:
            logger.error("[PersonService] List failed: %s", e, exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to list persons")

    async def update(
        self,
        person_id: int,
        payload: PersonUpdate,
        db: AsyncSession,
    ) -> PersonDTO:
        """
        Partial update of a borrower.

        Raises:
            NotFoundError: Person does not exist.
            ConflictError: Duplicate national ID or active email.
        """
        logger.info("[PersonService] Updating person ID=%s", person_id)

        async def _run() -> PersonDTO:
            p = await self.require(person_id, db)
            data = payload.model_dump(exclude_unset=True)
            # email is re-checked when it changes or the person is reactivated
            touches_email = "email" in data or "active" in data
            await self._ensure_unique(
                db,
                national_id=data.get("national_id"),
                email=data.get("email", p.email) if touches_email else None,
                active=bool(data.get("active", p.active)),
                exclude_id=person_id,
            )
            p = await self.person_repository.update_person(p, payload, db)
            return person_to_dto(p)

        if not db.in_transaction():
            await db.begin()
        try:
            dto = await _run()
            await db.commit()
        except HTTPException:
            await db.rollback()
            raise
        except IntegrityError as e:
            await db.rollback()
            logger.warning("[PersonService] Update conflict ID=%s: %s", person_id, e.orig)
            raise ConflictError("Person violates a uniqueness rule.")
        except Exception as e:
            await db.rollback()
            logger.error(
                "[PersonService] Update failed ID=%s: %s",
                person_id,
                e,
                exc_info=True,
            )
            raise HTTPException(status_code=500, detail="Failed to update person")

        logger.info("[PersonService] Person updated ID=%s", person_id)
        return dto

    async def delete(self, person_id: int, db: AsyncSession) -> None:
        """
        Soft delete: the person is marked inactive and keeps its loan history.

        Raises:
            NotFoundError: Person does not exist.
            InvalidStateError: Person still has loans that are not completed.
        """
        logger.warning("[PersonService] Deleting person ID=%s", person_id)

        async def _run() -> None:
            p = await self.require(person_id, db)
            open_loans = await self.person_repository.count_open_loans(person_id, db)
            if open_loans:
                raise InvalidStateError(
                    f"Person has {open_loans} loan(s) that are not completed."
                )
            await self.person_repository.deactivate(p, db)

        if not db.in_transaction():
            await db.begin()
        try:
            await _run()
            await db.commit()
        except HTTPException:
            await db.rollback()
            raise
        except Exception as e:
            await db.rollback()
            logger.error(
                "[PersonService] Delete failed ID=%s: %s",
                person_id,
                e,
                exc_info=True,
            )
            raise HTTPException(status_code=500, detail="Failed to delete person")

        logger.warning("[PersonService] Person deactivated ID=%s", person_id)

    async def statistics(self, person_id: int, db: AsyncSession) -> PersonStatsDTO:
        logger.debug("[PersonService] Statistics person ID=%s", person_id)
        try:
            async with maybe_begin(db):
                p = await self.require(person_id, db)
                row = await self.person_repository.loan_summary(person_id, db)
            total_loans = int(row.total_loans or 0)
            completed_loans = int(row.completed_loans or 0)
            return PersonStatsDTO(
                person=person_to_dto(p),
                total_loans=total_loans,
                completed_loans=completed_loans,
                active_loans=total_loans - completed_loans,
                total_lent=to_money(row.total_lent),
                total_outstanding=to_money(row.total_outstanding),
            )
        except HTTPException:
            raise
        except Exception as e:
            logger.error(
                "[PersonService] Statistics failed ID=%s: %s",
                person_id,
                e,
                exc_info=True,
            )
            raise HTTPException(status_code=500, detail="Failed to compute person statistics")
