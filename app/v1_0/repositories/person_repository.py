from typing import Optional, List, Tuple
from sqlalchemy import select, func, or_, case
from sqlalchemy.ext.asyncio import AsyncSession

from app.v1_0.models import Person, Loan
from app.v1_0.schemas import PersonCreate, PersonUpdate
from .base_repository import BaseRepository

class PersonRepository(BaseRepository[Person]):
    def __init__(self) -> None:
        super().__init__(Person)

    async def create_person(self, payload: PersonCreate, session: AsyncSession) -> Person:
        p = Person(
            name=payload.name,
            surname=payload.surname,
            national_id=payload.national_id,
            phone=payload.phone,
            email=payload.email,
            address=payload.address,
            notes=payload.notes,
            active=payload.active,
        )
        await self.add(p, session)
        return p

    async def get_by_national_id(
        self,
        national_id: str,
        session: AsyncSession,
        *,
        exclude_id: Optional[int] = None,
    ) -> Optional[Person]:
        stmt = select(Person).where(Person.national_id == national_id)
        if exclude_id is not None:
            stmt = stmt.where(Person.id != exclude_id)
        return (await session.execute(stmt)).scalars().first()

    async def get_active_by_email(
        self,
        email: str,
        session: AsyncSession,
        *,
        exclude_id: Optional[int] = None,
    ) -> Optional[Person]:
        stmt = select(Person).where(
            func.lower(Person.email) == email.lower(),
            Person.active.is_(True),
        )
        if exclude_id is not None:
            stmt = stmt.where(Person.id != exclude_id)
        return (await session.execute(stmt)).scalars().first()

    async def update_person(
        self,
        person: Person,
        payload: PersonUpdate,
        session: AsyncSession,
    ) -> Person:
        allowed_fields = {"name", "surname", "national_id", "phone", "email", "address", "notes", "active"}
        data = {
            k: v
            for k, v in payload.model_dump(exclude_unset=True).items()
            if v is not None or k not in ("name", "active")
        }
        return await self.update_fields(person, data, session, allow=allowed_fields)

    async def deactivate(self, person: Person, session: AsyncSession) -> Person:
        return await self.update_fields(person, {"active": False}, session)

    async def list_paginated(
        self,
        offset: int,
        limit: int,
        session: AsyncSession,
        *,
        search: Optional[str] = None,
        include_inactive: bool = False,
    ) -> Tuple[List[Person], int]:
        filters = []
        if search:
            term = f"%{search.strip()}%"
            filters.append(
                or_(
                    Person.name.ilike(term),
                    Person.surname.ilike(term),
                    Person.email.ilike(term),
                    Person.phone.like(term),
                )
            )
        if not include_inactive:
            filters.append(Person.active.is_(True))

        return await self.list_filtered(
            session,
            filters=filters,
            order_by=(Person.active.desc(), Person.name.asc(), Person.id.asc()),
            offset=offset,
            limit=limit,
        )

    async def count_open_loans(self, person_id: int, session: AsyncSession) -> int:
        stmt = select(func.count(Loan.id)).where(
            Loan.person_id == person_id,
            Loan.completed.is_(False),
        )
        return int(await session.scalar(stmt) or 0)

    async def loan_summary(self, person_id: int, session: AsyncSession):
        """
        Aggregate the person's loans: count, completed count,
        sum of principal and sum of outstanding balance.
        """
        stmt = select(
            func.count(Loan.id).label("total_loans"),
            func.coalesce(func.sum(case((Loan.completed.is_(True), 1), else_=0)), 0).label("completed_loans"),
            func.coalesce(func.sum(Loan.total_amount), 0).label("total_lent"),
            func.coalesce(func.sum(Loan.remaining_amount), 0).label("total_outstanding"),
        ).where(Loan.person_id == person_id)
        return (await session.execute(stmt)).one()
