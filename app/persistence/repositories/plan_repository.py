"""Plan repository."""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.persistence.models.plan import Plan
from app.persistence.repositories.base import BaseRepository


class PlanRepository(BaseRepository[Plan]):
    """Repository for Plan entities."""

    def __init__(self, session: AsyncSession):
        """Initialize plan repository."""
        super().__init__(Plan, session)

    async def list_active(
        self, name_query: str | None = None, segment: str | None = None
    ) -> list[Plan]:
        """List active plans ordered by price ascending.

        Args:
            name_query: Optional case-insensitive substring to match on name
            segment: Optional exact segment to match

        Returns:
            List of active plans, cheapest first
        """
        stmt = select(Plan).where(Plan.is_active.is_(True))
        if name_query:
            stmt = stmt.where(func.lower(Plan.name).contains(name_query.lower(), autoescape=True))
        if segment:
            stmt = stmt.where(Plan.segment == segment)
        stmt = stmt.order_by(Plan.price.asc(), Plan.id.asc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_advisor(self, advisor_id: int) -> list[Plan]:
        """List every plan owned by an advisor, newest first."""
        stmt = (
            select(Plan)
            .where(Plan.advisor_id == advisor_id)
            .order_by(Plan.created_at.desc(), Plan.id.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
