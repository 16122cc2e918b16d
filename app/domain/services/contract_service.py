"""Contract lifecycle service.

A contract moves ``pending -> approved | rejected | cancelled`` by actor
decision and ``approved -> expired`` once its active window has passed. Every
transition is a conditional update on the current status, so two advisors (or
an advisor and the expiry sweep) racing on the same contract cannot both win.
"""

import logging
from datetime import datetime, timedelta

from redis.exceptions import RedisError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.results import ErrorKind, ServiceResult
from app.infrastructure.realtime import (
    PENDING_CONTRACTS_CHANNEL,
    RealtimeBroker,
    customer_contracts_channel,
)
from app.persistence.models.contract import Contract, ContractStatus
from app.persistence.models.user import User
from app.persistence.repositories.contract_repository import ContractRepository
from app.persistence.repositories.plan_repository import PlanRepository
from app.settings import settings

logger = logging.getLogger(__name__)

CONTRACT_CHANGED_EVENT = "contract_changed"

_RETRY_MESSAGE = "The request could not be completed, please retry"


class ContractService:
    """Service for requesting, deciding and expiring contracts."""

    def __init__(
        self,
        session: AsyncSession,
        broker: RealtimeBroker | None = None,
        duration_minutes: int | None = None,
    ) -> None:
        """Initialize contract service.

        Args:
            session: Database session
            broker: Realtime broker for contract change events (optional)
            duration_minutes: Active window granted on approval
        """
        self.session = session
        self.broker = broker
        self.duration_minutes = duration_minutes or settings.contract_duration_minutes
        self.contract_repo = ContractRepository(session)
        self.plan_repo = PlanRepository(session)

    async def request_contract(
        self, customer: User, plan_id: int, customer_notes: str | None = None
    ) -> ServiceResult[Contract]:
        """Request a contract for an active plan.

        Refused while the customer still holds a pending or unexpired
        approved contract.
        """
        if not customer.is_customer:
            return ServiceResult.fail(ErrorKind.FORBIDDEN, "Only customers can request plans")

        try:
            plan = await self.plan_repo.get_by_id(plan_id)
            if plan is None or not plan.is_active:
                return ServiceResult.fail(ErrorKind.NOT_FOUND, f"Plan {plan_id} not found")

            await self.expire_overdue(customer_id=customer.id)
            if await self.contract_repo.has_open_contract(customer.id):
                return ServiceResult.fail(
                    ErrorKind.INVALID_STATE,
                    "You already have a plan request in progress or an active plan",
                )

            now = datetime.utcnow()
            contract = await self.contract_repo.create(
                customer_id=customer.id,
                plan_id=plan_id,
                status=ContractStatus.PENDING.value,
                requested_at=now,
                customer_notes=(customer_notes or "").strip() or None,
            )
        except IntegrityError:
            # Lost a race with a concurrent request from the same customer
            await self.session.rollback()
            return ServiceResult.fail(
                ErrorKind.INVALID_STATE,
                "You already have a plan request in progress or an active plan",
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to request contract for customer {customer.id}: {e}")
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, _RETRY_MESSAGE)

        logger.info(
            f"Contract requested: contract_id={contract.id}, customer_id={customer.id}, plan_id={plan_id}"
        )
        await self._publish_change(contract.id, customer.id, ContractStatus.PENDING, pending_queue=True)
        return ServiceResult.ok(await self._reload(contract.id) or contract)

    async def approve_contract(
        self, contract_id: int, advisor: User, advisor_notes: str | None = None
    ) -> ServiceResult[Contract]:
        """Approve a pending contract and open its active window."""
        if not advisor.is_advisor:
            return ServiceResult.fail(ErrorKind.FORBIDDEN, "Only advisors can approve contracts")

        now = datetime.utcnow()
        return await self._transition(
            contract_id,
            ContractStatus.PENDING,
            ContractStatus.APPROVED,
            advisor_id=advisor.id,
            decided_at=now,
            expires_at=now + timedelta(minutes=self.duration_minutes),
            duration_minutes=self.duration_minutes,
            advisor_notes=(advisor_notes or "").strip() or None,
        )

    async def reject_contract(
        self, contract_id: int, advisor: User, advisor_notes: str | None
    ) -> ServiceResult[Contract]:
        """Reject a pending contract; a reason is mandatory."""
        if not advisor.is_advisor:
            return ServiceResult.fail(ErrorKind.FORBIDDEN, "Only advisors can reject contracts")

        reason = (advisor_notes or "").strip()
        if not reason:
            return ServiceResult.fail(ErrorKind.VALIDATION, "A rejection reason is required")

        return await self._transition(
            contract_id,
            ContractStatus.PENDING,
            ContractStatus.REJECTED,
            advisor_id=advisor.id,
            decided_at=datetime.utcnow(),
            advisor_notes=reason,
        )

    async def cancel_contract(self, contract_id: int, customer: User) -> ServiceResult[Contract]:
        """Cancel a pending contract on behalf of its owner."""
        try:
            contract = await self.contract_repo.get_by_id(contract_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load contract {contract_id}: {e}")
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, _RETRY_MESSAGE)

        if contract is None:
            return ServiceResult.fail(ErrorKind.NOT_FOUND, f"Contract {contract_id} not found")
        if contract.customer_id != customer.id:
            return ServiceResult.fail(ErrorKind.FORBIDDEN, "Not authorized to cancel this contract")

        return await self._transition(
            contract_id, ContractStatus.PENDING, ContractStatus.CANCELLED
        )

    async def expire_overdue(
        self, now: datetime | None = None, customer_id: int | None = None
    ) -> int:
        """Expire approved contracts whose window has closed.

        Idempotent: already-expired contracts are untouched and a second run
        changes nothing.

        Returns:
            Number of contracts moved to expired
        """
        now = now or datetime.utcnow()
        try:
            changed, candidates = await self.contract_repo.expire_overdue(now, customer_id)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.warning(f"Contract expiry sweep failed: {e}")
            return 0
        if changed:
            logger.info(f"Expired {changed} contract(s)")
            for contract_id, owner_id in candidates:
                await self._publish_change(contract_id, owner_id, ContractStatus.EXPIRED)
        return changed

    async def get_contract(self, contract_id: int) -> Contract | None:
        """Get a contract with plan, customer and advisor joined.

        An approved contract whose window has closed is expired before it is
        returned.
        """
        try:
            contract = await self.contract_repo.get_with_relations(contract_id)
            if contract is not None and self._is_overdue(contract):
                await self.expire_overdue(customer_id=contract.customer_id)
                contract = await self.contract_repo.get_with_relations(contract_id)
            return contract
        except SQLAlchemyError as e:
            logger.warning(f"Failed to load contract {contract_id}: {e}")
            return None

    async def list_customer_contracts(self, customer_id: int) -> list[Contract]:
        """List a customer's contracts, expiring overdue ones first."""
        try:
            await self.expire_overdue(customer_id=customer_id)
            return await self.contract_repo.list_for_customer(customer_id)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.warning(f"Failed to list contracts for customer {customer_id}: {e}")
            return []

    async def list_pending_contracts(self) -> list[Contract]:
        """Advisor work queue, oldest request first."""
        try:
            return await self.contract_repo.list_pending()
        except SQLAlchemyError as e:
            logger.warning(f"Failed to list pending contracts: {e}")
            return []

    async def list_advisor_contracts(self, advisor_id: int) -> list[Contract]:
        """Contracts decided by an advisor, newest first."""
        try:
            await self.expire_overdue()
            return await self.contract_repo.list_for_advisor(advisor_id)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to list contracts for advisor {advisor_id}: {e}")
            return []

    async def get_advisor_stats(self, advisor_id: int) -> ServiceResult[dict[str, int]]:
        """Decision counts for an advisor plus the global pending queue size."""
        try:
            await self.expire_overdue()
            counts = await self.contract_repo.status_counts_for_advisor(advisor_id)
            pending = await self.contract_repo.count_pending()
        except SQLAlchemyError as e:
            logger.error(f"Failed to compute stats for advisor {advisor_id}: {e}")
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, _RETRY_MESSAGE)

        return ServiceResult.ok({
            "total": sum(counts.values()),
            "approved": counts.get(ContractStatus.APPROVED.value, 0),
            "rejected": counts.get(ContractStatus.REJECTED.value, 0),
            "expired": counts.get(ContractStatus.EXPIRED.value, 0),
            "pending": pending,
        })

    async def _transition(
        self,
        contract_id: int,
        from_status: ContractStatus,
        to_status: ContractStatus,
        **values,
    ) -> ServiceResult[Contract]:
        try:
            changed = await self.contract_repo.transition(
                contract_id, from_status, status=to_status.value, **values
            )
            contract = await self.contract_repo.get_with_relations(contract_id)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to move contract {contract_id} to {to_status.value}: {e}")
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, _RETRY_MESSAGE)

        if contract is None:
            return ServiceResult.fail(ErrorKind.NOT_FOUND, f"Contract {contract_id} not found")
        if not changed:
            return ServiceResult.fail(
                ErrorKind.INVALID_STATE,
                f"Contract {contract_id} is {contract.status}, expected {from_status.value}",
            )

        logger.info(f"Contract {contract_id} moved {from_status.value} -> {to_status.value}")
        await self._publish_change(contract_id, contract.customer_id, to_status, pending_queue=True)
        return ServiceResult.ok(contract)

    @staticmethod
    def _is_overdue(contract: Contract) -> bool:
        return (
            contract.status == ContractStatus.APPROVED.value
            and contract.expires_at is not None
            and contract.expires_at < datetime.utcnow()
        )

    async def _reload(self, contract_id: int) -> Contract | None:
        try:
            return await self.contract_repo.get_with_relations(contract_id)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to reload contract {contract_id}: {e}")
            return None

    async def _publish_change(
        self,
        contract_id: int,
        customer_id: int,
        status: ContractStatus,
        pending_queue: bool = False,
    ) -> None:
        """Best-effort notification of a contract change to live subscribers."""
        if self.broker is None:
            return
        payload = {"contract_id": contract_id, "customer_id": customer_id, "status": status.value}
        try:
            await self.broker.publish(customer_contracts_channel(customer_id), CONTRACT_CHANGED_EVENT, payload)
            if pending_queue:
                await self.broker.publish(PENDING_CONTRACTS_CHANNEL, CONTRACT_CHANGED_EVENT, payload)
        except RedisError as e:
            logger.warning(f"Failed to publish change of contract {contract_id}: {e}")
