"""
Concurrent close of the same day.

Two operators pressing "cerrar caja" at once must produce exactly one
closed row; the loser gets AlreadyClosedError.  On SQLite the race is
simulated by hiding the first closing from the pre-check so the partial
unique index has to settle it.  Writes and closes into one day share a
locked `business_days` row; the threaded variants need PostgreSQL.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, date, datetime
from decimal import Decimal
from threading import Barrier

import pytest
from sqlalchemy import func, select

from closing_kernel.db.engine import session_scope
from closing_kernel.domain.clock import DeterministicClock
from closing_kernel.exceptions import AlreadyClosedError, PeriodClosedError
from closing_kernel.models.business_day import BusinessDay
from closing_kernel.models.closing import Closing, ClosingStatus
from closing_kernel.selectors.closing_selector import ClosingSelector
from closing_kernel.services.closing_service import ClosingService
from closing_kernel.services.ledger_service import LedgerService

DAY = "2026-01-29"


def _day_rows(session, series: str) -> list[str]:
    return [
        row.period_key.isoformat()
        for row in session.execute(
            select(BusinessDay).where(BusinessDay.series == series)
        ).scalars()
    ]


def _closed_rows(session) -> int:
    return session.execute(
        select(func.count()).select_from(Closing).where(
            Closing.series == "clinic_cash",
            Closing.status == ClosingStatus.CLOSED.value,
        )
    ).scalar_one()


class TestUniqueActiveClosing:

    def test_index_settles_lost_precheck(self, closing_service, session, record_payment, secretaria, admin, monkeypatch, captured_logs):
        record_payment(80000)
        winner = closing_service.close("clinic_cash", DAY, Decimal("80000"), secretaria)

        real_active_closing = ClosingSelector.active_closing
        calls = []

        def stale_first_read(self, series, period_key):
            calls.append(period_key)
            if len(calls) == 1:
                return None
            return real_active_closing(self, series, period_key)

        monkeypatch.setattr(ClosingSelector, "active_closing", stale_first_read)

        with pytest.raises(AlreadyClosedError):
            closing_service.close("clinic_cash", DAY, Decimal("80000"), admin)

        monkeypatch.undo()
        assert _closed_rows(session) == 1
        assert closing_service.get_closing(winner.id).closing_number == winner.closing_number
        assert any(r["message"] == "concurrent_closing_conflict" for r in captured_logs())

    def test_session_usable_after_conflict(self, closing_service, session, record_payment, secretaria, admin, monkeypatch):
        record_payment(80000)
        closing_service.close("clinic_cash", DAY, Decimal("80000"), secretaria)

        real_active_closing = ClosingSelector.active_closing
        state = {"hidden": False}

        def stale_once(self, series, period_key):
            if not state["hidden"]:
                state["hidden"] = True
                return None
            return real_active_closing(self, series, period_key)

        monkeypatch.setattr(ClosingSelector, "active_closing", stale_once)
        with pytest.raises(AlreadyClosedError):
            closing_service.close("clinic_cash", DAY, Decimal("80000"), admin)
        monkeypatch.undo()

        # the savepoint was rolled back; other days still close
        other = closing_service.close("clinic_cash", "2026-01-28", 0, secretaria)
        assert other.period_key.isoformat() == "2026-01-28"


class TestDayLock:

    def test_write_and_close_share_one_row(self, closing_service, session, record_payment, secretaria):
        record_payment(50000)
        record_payment(30000, "tarjeta")
        closing_service.close("clinic_cash", DAY, Decimal("80000"), secretaria)
        assert _day_rows(session, "clinic_cash") == [DAY]

    def test_rejected_write_still_takes_the_lock(self, closing_service, session, record_payment, secretaria):
        closing_service.close("clinic_cash", "2026-01-28", 0, secretaria)
        with pytest.raises(PeriodClosedError):
            record_payment(1000, key="2026-01-28")
        assert _day_rows(session, "clinic_cash") == ["2026-01-28"]

    def test_stock_write_locks_the_medias_cash_day(self, stock_product, session):
        stock_product(units=3)
        assert _day_rows(session, "medias_cash") == [DAY]
        assert _day_rows(session, "medias_stock") == []


@pytest.mark.postgres
class TestThreadedClose:

    WORKERS = 4

    def test_exactly_one_close_wins(self, committing_session_factory, ledger_config, make_actor):
        clock = DeterministicClock(datetime(2026, 1, 29, 18, 0, tzinfo=UTC))
        actor = make_actor("secretaria")

        with session_scope(committing_session_factory) as session:
            LedgerService(session, ledger_config, clock).record_movement(
                "clinic_cash", DAY, "entrada", Decimal("80000"), actor, category="efectivo"
            )

        barrier = Barrier(self.WORKERS)

        def attempt(_):
            barrier.wait()
            try:
                with session_scope(committing_session_factory) as session:
                    ClosingService(session, ledger_config, clock).close(
                        "clinic_cash", DAY, Decimal("80000"), actor
                    )
                return "closed"
            except AlreadyClosedError:
                return "rejected"

        with ThreadPoolExecutor(max_workers=self.WORKERS) as pool:
            outcomes = list(pool.map(attempt, range(self.WORKERS)))

        assert outcomes.count("closed") == 1
        assert outcomes.count("rejected") == self.WORKERS - 1

        with session_scope(committing_session_factory) as session:
            assert _closed_rows(session) == 1


@pytest.mark.postgres
class TestWriteCloseRace:
    """A payment racing the close of its day is either in the snapshot or rejected."""

    ROUNDS = 10

    def test_snapshot_matches_committed_writes(self, committing_session_factory, ledger_config, make_actor):
        clock = DeterministicClock(datetime(2026, 1, 29, 18, 0, tzinfo=UTC))
        actor = make_actor("secretaria")

        def write(day: str, barrier: Barrier) -> bool:
            barrier.wait()
            try:
                with session_scope(committing_session_factory) as session:
                    LedgerService(session, ledger_config, clock).record_movement(
                        "clinic_cash", day, "entrada", Decimal("1000"), actor, category="efectivo"
                    )
                return True
            except PeriodClosedError:
                return False

        def close(day: str, barrier: Barrier):
            barrier.wait()
            with session_scope(committing_session_factory) as session:
                return ClosingService(session, ledger_config, clock).close("clinic_cash", day, 0, actor)

        with ThreadPoolExecutor(max_workers=2) as pool:
            for n in range(1, self.ROUNDS + 1):
                day = date(2026, 1, n).isoformat()
                barrier = Barrier(2)
                written = pool.submit(write, day, barrier)
                closed = pool.submit(close, day, barrier)

                expected = Decimal("1000") if written.result() else Decimal("0")
                assert closed.result().computed_total == expected

                with session_scope(committing_session_factory) as session:
                    aggregate = LedgerService(session, ledger_config, clock).compute_aggregate(
                        "clinic_cash", day
                    )
                assert aggregate.grand_total == expected
