"""Contract repository."""

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.persistence.models.contract import OPEN_STATUSES, Contract, ContractStatus
from app.persistence.repositories.base import BaseRepository


class ContractRepository(BaseRepository[Contract]):
    """Repository for Contract entities."""

    def __init__(self, session: AsyncSession):
        """Initialize contract repository."""
        super().__init__(Contract, session)

    def _with_relations(self):
        return select(Contract).options(
            selectinload(Contract.plan),
            selectinload(Contract.customer),
            selectinload(Contract.advisor),
        )

    async def get_with_relations(self, contract_id: int) -> Contract | None:
        """Get a contract with plan, customer and advisor loaded.

        Always reloads from the database so that state written by a
        conditional update is visible.
        """
        stmt = (
            self._with_relations()
            .where(Contract.id == contract_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_customer(self, customer_id: int) -> list[Contract]:
        """List a customer's contracts, newest first."""
        stmt = (
            self._with_relations()
            .where(Contract.customer_id == customer_id)
            .order_by(Contract.created_at.desc(), Contract.id.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_pending(self) -> list[Contract]:
        """List pending contracts, oldest request first."""
        stmt = (
            self._with_relations()
            .where(Contract.status == ContractStatus.PENDING.value)
            .order_by(Contract.requested_at.asc(), Contract.id.asc())
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_advisor(self, advisor_id: int) -> list[Contract]:
        """List contracts decided by an advisor, newest first."""
        stmt = (
            self._with_relations()
            .where(Contract.advisor_id == advisor_id)
            .order_by(Contract.created_at.desc(), Contract.id.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def has_open_contract(self, customer_id: int) -> bool:
        """Whether the customer holds a pending or approved contract."""
        stmt = select(func.count(Contract.id)).where(
            Contract.customer_id == customer_id,
            Contract.status.in_(OPEN_STATUSES),
        )
        result = await self.session.execute(stmt)
        return (result.scalar_one() or 0) > 0

    async def transition(
        self, contract_id: int, from_status: ContractStatus, **values
    ) -> bool:
        """Atomically update a contract only if it is still in ``from_status``.

        Args:
            contract_id: Contract ID
            from_status: Status the contract must currently have
            **values: Column values to write (including the new status)

        Returns:
            True if exactly one row changed
        """
        stmt = (
            update(Contract)
            .where(Contract.id == contract_id, Contract.status == from_status.value)
            .values(updated_at=datetime.utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount == 1

    async def expire_overdue(
        self, now: datetime, customer_id: int | None = None
    ) -> tuple[int, list[tuple[int, int]]]:
        """Move approved contracts whose window has closed to expired.

        Args:
            now: Reference time; contracts with expires_at before it expire
            customer_id: Optionally restrict the sweep to one customer

        Returns:
            Tuple of (rows changed, [(contract_id, customer_id), ...] candidates)
        """
        conditions = [
            Contract.status == ContractStatus.APPROVED.value,
            Contract.expires_at.is_not(None),
            Contract.expires_at < now,
        ]
        if customer_id is not None:
            conditions.append(Contract.customer_id == customer_id)

        result = await self.session.execute(
            select(Contract.id, Contract.customer_id).where(*conditions)
        )
        candidates = [(row.id, row.customer_id) for row in result.all()]
        if not candidates:
            return 0, []

        stmt = (
            update(Contract)
            .where(Contract.id.in_([contract_id for contract_id, _ in candidates]), *conditions)
            .values(status=ContractStatus.EXPIRED.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount, candidates

    async def status_counts_for_advisor(self, advisor_id: int) -> dict[str, int]:
        """Count an advisor's contracts grouped by status."""
        stmt = (
            select(Contract.status, func.count(Contract.id))
            .where(Contract.advisor_id == advisor_id)
            .group_by(Contract.status)
        )
        result = await self.session.execute(stmt)
        return {status: count for status, count in result.all()}

    async def count_pending(self) -> int:
        """Count contracts waiting for a decision."""
        stmt = select(func.count(Contract.id)).where(
            Contract.status == ContractStatus.PENDING.value
        )
        result = await self.session.execute(stmt)
        return result.scalar_one() or 0
