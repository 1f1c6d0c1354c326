"""
LedgerService -- append-only movement ledger.

Responsibility:
    Records movements (payments, sales, purchases, returns, adjustments)
    for a series and key, computes aggregates by folding the movement log,
    voids movements with a compensating ``anulacion`` entry, and keeps the
    registry of product keys.

Architecture position:
    Kernel > Services -- imperative shell.  Reads through LedgerSelector,
    folds with ``domain.ledger``, and asks ClosingService whether the target
    day is locked before every write.

Invariants enforced:
    - Movements are never updated or deleted; a void is a new movement
      with the negated amount.
    - Amounts are non-zero Decimals whose sign matches the kind's rule in
      the series configuration.
    - A movement is voided at most once (unique ``voids_movement_id``).
    - Series with ``allow_negative_balance: false`` never fold to a
      negative category total; the product row is locked while checking.

Failure modes:
    - InvalidAmountError, UnknownKeyError, InvalidMovementKindError,
      InvalidCategoryError, PeriodClosedError, InsufficientBalanceError,
      ForbiddenError, JustificationRequiredError, MovementNotFoundError,
      MovementAlreadyVoidedError.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from closing_config.schema import LedgerConfiguration, SeriesConfig
from closing_kernel.db.types import normalize_amount, to_decimal
from closing_kernel.domain.authorization import ensure_role
from closing_kernel.domain.clock import Clock
from closing_kernel.domain.dtos import Actor, LedgerAggregate, MovementInfo, ResourceInfo
from closing_kernel.domain.ledger import ZERO, balance_after, fold_movements, sign_violation
from closing_kernel.domain.variance import validate_justification
from closing_kernel.exceptions import (
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidCategoryError,
    InvalidMovementKindError,
    MovementAlreadyVoidedError,
    MovementNotFoundError,
    UnknownKeyError,
)
from closing_kernel.logging_config import get_logger
from closing_kernel.models.alert import AlertSeverity, AlertType
from closing_kernel.models.ledger_resource import LedgerResource
from closing_kernel.models.movement import Movement, MovementKind
from closing_kernel.selectors.ledger_selector import (
    DEFAULT_LIMIT,
    LedgerSelector,
    movement_to_info,
)
from closing_kernel.services.alert_service import AlertService
from closing_kernel.services.auditor_service import MOVEMENT_ENTITY, AuditorService
from closing_kernel.services.base import BaseService
from closing_kernel.services.closing_service import ClosingService, to_period_key

logger = get_logger("services.ledger")


def _resource_to_info(resource: LedgerResource) -> ResourceInfo:
    return ResourceInfo(
        id=resource.id,
        series=resource.series,
        key=resource.key,
        name=resource.name,
        is_active=resource.is_active,
    )


class LedgerService(BaseService[Movement]):
    """
    Write side of the movement ledger.

    Usage:
        with session_scope() as session:
            ledger = LedgerService(session, config, clock)
            ledger.record_movement("clinic_cash", "2026-01-29", "entrada",
                                   Decimal("50000"), actor, category="efectivo")
    """

    def __init__(
        self,
        session: Session,
        config: LedgerConfiguration,
        clock: Clock | None = None,
    ):
        super().__init__(session, config=config, clock=clock)
        self._selector = LedgerSelector(session)
        self._closings = ClosingService(session, config, self.clock)
        self._auditor = AuditorService(session, self.clock)
        self._alerts = AlertService(session, self.clock)

    # Validation helpers

    def _validate_key(
        self,
        series: SeriesConfig,
        key: str | date,
        *,
        lock: bool = False,
        require_active: bool = False,
    ) -> str:
        """
        Date series take any ISO date; product series a registered product.

        With ``lock`` the product row is locked so balance checks on the
        same product are serialized.

        Returns:
            The key as stored (ISO string for dates).
        """
        if series.is_date_keyed:
            return to_period_key(series.name, key).isoformat()

        stmt = select(LedgerResource).where(
            LedgerResource.series == series.name,
            LedgerResource.key == key,
        )
        if lock:
            stmt = stmt.with_for_update()
        resource = self.session.execute(stmt).scalar_one_or_none()
        if resource is None:
            raise UnknownKeyError(series=series.name, key=key, reason="not registered")
        if require_active and not resource.is_active:
            raise UnknownKeyError(series=series.name, key=key, reason="inactive")
        return key

    def _ensure_open(self, series: SeriesConfig, key: str) -> None:
        """Reject writes into a locked day."""
        if series.is_date_keyed:
            if series.closes:
                self._closings.validate_period_open(series.name, key)
        elif series.lock_series is not None:
            self._closings.validate_period_open(series.lock_series, self._today())

    def _ensure_balance(
        self,
        series: SeriesConfig,
        key: str,
        category: str,
        amount: Decimal,
    ) -> None:
        if series.allow_negative_balance or amount >= ZERO:
            return
        aggregate = self._fold(series.name, key)
        resulting = balance_after(aggregate, category, amount)
        if resulting < ZERO:
            raise InsufficientBalanceError(
                series=series.name,
                key=key,
                category=category,
                balance=str(aggregate.category_total(category)),
                amount=str(amount),
            )

    def _fold(self, series: str, key: str, as_of: datetime | None = None) -> LedgerAggregate:
        movements = self._selector.movements_for_key(series, key, as_of=as_of)
        return fold_movements(series, key, movements, as_of=as_of)

    def _append(
        self,
        series: str,
        key: str,
        kind: MovementKind,
        category: str,
        amount: Decimal,
        actor: Actor,
        reference: str | None = None,
        justification: str | None = None,
        voids_movement_id: UUID | None = None,
    ) -> Movement:
        movement = Movement(
            series=series,
            key=key,
            kind=kind.value,
            category=category,
            amount=amount,
            reference=reference,
            justification=justification,
            voids_movement_id=voids_movement_id,
            created_at=self._now(),
            created_by_id=actor.id,
        )
        self.session.add(movement)
        self.session.flush()
        return movement

    # Operations

    def record_movement(
        self,
        series: str,
        key: str | date,
        kind: str | MovementKind,
        amount: Decimal | int | str,
        actor: Actor,
        category: str,
        reference: str | None = None,
        justification: str | None = None,
    ) -> MovementInfo:
        """
        Append an immutable movement.

        Raises:
            UnknownKeyError: Unknown series, unregistered or inactive
                product, or a malformed date key.
            ForbiddenError: Role not in the series ``record`` grant.
            InvalidMovementKindError: Kind not enabled for the series.
            InvalidCategoryError: Category not configured.
            InvalidAmountError: Zero, not a number, or the wrong sign.
            JustificationRequiredError: The kind needs a reason of at least
                10 characters.
            PeriodClosedError: The target day is locked.
            InsufficientBalanceError: The category would go negative on a
                series that forbids it.
        """
        config = self._series(series)
        ensure_role(config.grants, "record", actor)

        kind_value = getattr(kind, "value", kind)
        if config.sign_rule(kind_value) is None:
            raise InvalidMovementKindError(series, str(kind_value))
        if category not in config.categories:
            raise InvalidCategoryError(series, category)

        try:
            value = to_decimal(amount)
        except (TypeError, ValueError) as exc:
            raise InvalidAmountError(amount=str(amount), reason=str(exc), kind=kind_value)
        reason = sign_violation(value, config.sign_rule(kind_value))
        if reason is not None:
            raise InvalidAmountError(amount=str(value), reason=reason, kind=kind_value)

        if kind_value in config.justified_kinds:
            justification = validate_justification(justification)
        elif justification is not None:
            justification = validate_justification(justification, min_length=0) or None

        key = self._validate_key(config, key, lock=True, require_active=True)
        self._ensure_open(config, key)
        self._ensure_balance(config, key, category, value)

        movement = self._append(
            series=series,
            key=key,
            kind=MovementKind(kind_value),
            category=category,
            amount=value,
            actor=actor,
            reference=reference,
            justification=justification,
        )

        logger.info(
            "movement_recorded",
            extra={
                "movement_id": str(movement.id),
                "series": series,
                "key": key,
                "kind": kind_value,
                "category": category,
                "amount": value,
            },
        )
        return movement_to_info(movement)

    def compute_aggregate(
        self,
        series: str,
        key: str | date,
        as_of: datetime | None = None,
    ) -> LedgerAggregate:
        """
        Fold every movement of (series, key) recorded at or before ``as_of``.

        The result depends only on the set of movements, never on the
        order they were appended.

        Raises:
            UnknownKeyError: Unknown series or key.
        """
        config = self._series(series)
        key = self._validate_key(config, key)
        return self._fold(series, key, as_of=as_of)

    def void_movement(
        self,
        movement_id: UUID,
        justification: str,
        actor: Actor,
    ) -> MovementInfo:
        """
        Void a movement by appending its negation.

        Postconditions:
            - An ``anulacion`` movement with the negated amount references
              the original; the original is untouched.
            - A ``payment_voided`` audit event and a ``pago_anulado`` alert
              are recorded.

        Raises:
            JustificationRequiredError: Justification under 10 characters.
            MovementNotFoundError: No movement with this id.
            ForbiddenError: Role not in the series ``void`` grant.
            MovementAlreadyVoidedError: Already voided, or itself a void.
            PeriodClosedError: The movement's day is locked.
            InsufficientBalanceError: The void would take stock negative.
        """
        justification = validate_justification(justification)

        original = self.session.get(Movement, movement_id)
        if original is None:
            raise MovementNotFoundError(str(movement_id))

        config = self._series(original.series)
        ensure_role(config.grants, "void", actor)

        if original.is_void or self._selector.find_void_of(original.id) is not None:
            raise MovementAlreadyVoidedError(str(movement_id))

        if not config.is_date_keyed:
            self._validate_key(config, original.key, lock=True)
        self._ensure_open(config, original.key)
        negated = -normalize_amount(original.amount)
        self._ensure_balance(config, original.key, original.category, negated)

        # The unique voids_movement_id settles concurrent voids
        savepoint = self.session.begin_nested()
        try:
            void = self._append(
                series=original.series,
                key=original.key,
                kind=MovementKind.ANULACION,
                category=original.category,
                amount=negated,
                actor=actor,
                reference=original.reference,
                justification=justification,
                voids_movement_id=original.id,
            )
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise MovementAlreadyVoidedError(str(movement_id))

        self._auditor.record_payment_voided(original, void, actor.id, justification)
        self._alerts.create(
            alert_type=AlertType.PAYMENT_VOIDED,
            severity=AlertSeverity.WARNING,
            title=f"Pago anulado en {original.series} {original.key}",
            description=(
                f"{original.kind} {original.category} por {normalize_amount(original.amount)} "
                f"anulado: {justification}"
            ),
            reference_type=MOVEMENT_ENTITY,
            reference_id=original.id,
        )

        logger.info(
            "movement_voided",
            extra={
                "movement_id": str(original.id),
                "void_movement_id": str(void.id),
                "series": original.series,
                "key": original.key,
                "amount": negated,
            },
        )
        return movement_to_info(void)

    def list_movements(
        self,
        series: str,
        key: str | None = None,
        kind: str | None = None,
        from_at: datetime | None = None,
        to_at: datetime | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[MovementInfo]:
        """Movement history of a series, newest first."""
        self._series(series)
        return self._selector.list_movements(
            series,
            key=key,
            kind=getattr(kind, "value", kind),
            from_at=from_at,
            to_at=to_at,
            limit=limit,
        )

    def get_movement(self, movement_id: UUID) -> MovementInfo:
        info = self._selector.get_movement(movement_id)
        if info is None:
            raise MovementNotFoundError(str(movement_id))
        return info

    # Product registry

    def register_resource(
        self,
        series: str,
        key: str,
        name: str,
        actor: Actor,
    ) -> ResourceInfo:
        """
        Register (or reactivate) a product key.

        Raises:
            UnknownKeyError: Series unknown or not product-keyed.
            ForbiddenError: Role not in the series ``record`` grant.
        """
        config = self._series(series)
        if config.is_date_keyed:
            raise UnknownKeyError(series=series, key=key, reason="series is keyed by date")
        ensure_role(config.grants, "record", actor)

        resource = self._selector.get_resource(series, key)
        if resource is None:
            resource = LedgerResource(
                series=series,
                key=key,
                name=name,
                is_active=True,
                created_by_id=actor.id,
            )
            self.session.add(resource)
        elif not resource.is_active:
            resource.is_active = True
            resource.updated_by_id = actor.id
        self.session.flush()

        logger.info(
            "resource_registered",
            extra={"series": series, "key": key},
        )
        return _resource_to_info(resource)

    def deactivate_resource(self, series: str, key: str, actor: Actor) -> ResourceInfo:
        """
        Stop accepting movements for a product.  Its history stays foldable.

        Raises:
            UnknownKeyError: Series unknown or product not registered.
            ForbiddenError: Role not in the series ``record`` grant.
        """
        config = self._series(series)
        ensure_role(config.grants, "record", actor)
        resource = self._selector.get_resource(series, key)
        if resource is None:
            raise UnknownKeyError(series=series, key=key, reason="not registered")

        resource.is_active = False
        resource.updated_by_id = actor.id
        self.session.flush()

        logger.info(
            "resource_deactivated",
            extra={"series": series, "key": key},
        )
        return _resource_to_info(resource)
