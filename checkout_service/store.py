import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from checkout_service import transitions
from checkout_service.errors import ConflictError, NotFoundError
from checkout_service.models import Purchase, PurchaseStatus, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    purchase: Purchase
    changed: bool


class PurchaseStore:
    """Persistent purchase records, one short-lived session per operation."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def create(
        self,
        *,
        identifier: str,
        customer_name: str,
        customer_email: str,
        customer_phone: Optional[str],
        amount: Decimal,
        currency: str,
        products: List[dict],
    ) -> Purchase:
        now = utcnow()
        purchase = Purchase(
            identifier=identifier,
            customer_name=customer_name,
            customer_email=customer_email,
            customer_phone=customer_phone,
            amount=amount,
            currency=currency,
            products=products,
            status=PurchaseStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        async with self._session_factory() as session:
            session.add(purchase)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ConflictError(f"A purchase with identifier {identifier} already exists") from e
            await session.refresh(purchase)
        logger.info("Purchase %s created with status %s", identifier, purchase.status.value)
        return purchase

    async def get(self, identifier: str) -> Optional[Purchase]:
        async with self._session_factory() as session:
            return await self._load(session, identifier)

    async def transition(self, identifier: str, target: PurchaseStatus) -> TransitionResult:
        """Move a pending purchase to ``target``.

        The write is a single ``UPDATE ... WHERE status = 'pending'`` so two
        concurrent callers cannot both win; the loser re-reads the row and
        gets either a duplicate (same target) or a TransitionConflictError.
        """
        async with self._session_factory() as session:
            purchase = await self._load(session, identifier)
            if purchase is None:
                raise NotFoundError(f"No purchase with identifier {identifier}")

            outcome = transitions.apply(identifier, purchase.status, target)
            if outcome is transitions.TransitionOutcome.DUPLICATE:
                return TransitionResult(purchase=purchase, changed=False)

            result = await session.execute(
                update(Purchase)
                .where(Purchase.identifier == identifier, Purchase.status == PurchaseStatus.PENDING)
                .values(status=target, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            changed = result.rowcount == 1
            await session.commit()
            purchase = await self._load(session, identifier)

        if changed:
            logger.info("Purchase %s transitioned pending -> %s", identifier, target.value)
            return TransitionResult(purchase=purchase, changed=True)

        # lost the race: another writer moved the row out of pending first
        transitions.apply(identifier, purchase.status, target)
        return TransitionResult(purchase=purchase, changed=False)

    @staticmethod
    async def _load(session: AsyncSession, identifier: str) -> Optional[Purchase]:
        result = await session.execute(
            select(Purchase)
            .where(Purchase.identifier == identifier)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
