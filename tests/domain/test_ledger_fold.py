"""
Tests for the pure ledger fold (``closing_kernel.domain.ledger``).

Covers:
- Totals by category and by kind, grand total, movement count.
- Order independence of the fold (property-based).
- Sign rules per kind, zero amounts.
- LedgerAggregate is read-only.
"""

from dataclasses import dataclass
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from closing_kernel.domain.dtos import LedgerAggregate
from closing_kernel.domain.ledger import ZERO, balance_after, fold_movements, sign_violation


@dataclass(frozen=True)
class FakeMovement:
    kind: str
    category: str
    amount: Decimal


def _mv(kind, category, amount):
    return FakeMovement(kind=kind, category=category, amount=Decimal(amount))


# =========================================================================
# fold_movements
# =========================================================================


class TestFoldMovements:

    def test_empty_fold_is_zero(self):
        agg = fold_movements("clinic_cash", "2026-01-29", [])
        assert agg.grand_total == ZERO
        assert agg.movement_count == 0
        assert dict(agg.totals_by_category) == {}
        assert agg.category_total("efectivo") == ZERO

    def test_payments_by_category(self):
        """Two payments on a day fold into per-category totals."""
        agg = fold_movements(
            "clinic_cash",
            "2026-01-29",
            [_mv("entrada", "efectivo", "50000"), _mv("entrada", "tarjeta", "30000")],
        )
        assert agg.as_dict() == {
            "efectivo": Decimal("50000"),
            "tarjeta": Decimal("30000"),
            "grand_total": Decimal("80000"),
        }
        assert agg.movement_count == 2

    def test_void_cancels_original(self):
        agg = fold_movements(
            "clinic_cash",
            "2026-01-29",
            [_mv("entrada", "efectivo", "50000"), _mv("anulacion", "efectivo", "-50000")],
        )
        assert agg.category_total("efectivo") == ZERO
        assert agg.totals_by_kind["entrada"] == Decimal("50000")
        assert agg.totals_by_kind["anulacion"] == Decimal("-50000")
        assert agg.movement_count == 2

    def test_stock_fold(self):
        agg = fold_movements(
            "medias_stock",
            "MED-20-30-M",
            [
                _mv("compra", "normal", "10"),
                _mv("venta", "normal", "-3"),
                _mv("devolucion", "devoluciones", "1"),
            ],
        )
        assert agg.category_total("normal") == Decimal("7")
        assert agg.category_total("devoluciones") == Decimal("1")
        assert agg.grand_total == Decimal("8")

    def test_enum_kinds_are_folded_by_value(self):
        from closing_kernel.models.movement import MovementKind

        agg = fold_movements(
            "clinic_cash", "2026-01-29", [_mv(MovementKind.ENTRADA, "efectivo", "100")]
        )
        assert dict(agg.totals_by_kind) == {"entrada": Decimal("100")}

    def test_as_of_is_recorded(self, deterministic_clock):
        now = deterministic_clock.now()
        agg = fold_movements("clinic_cash", "2026-01-29", [], as_of=now)
        assert agg.as_of == now

    def test_aggregate_mappings_are_read_only(self):
        agg = fold_movements("clinic_cash", "2026-01-29", [_mv("entrada", "efectivo", "1")])
        with pytest.raises(TypeError):
            agg.totals_by_category["efectivo"] = Decimal("999")

    def test_balance_after(self):
        agg = fold_movements("medias_stock", "X", [_mv("compra", "normal", "2")])
        assert balance_after(agg, "normal", Decimal("-3")) == Decimal("-1")
        assert balance_after(agg, "devoluciones", Decimal("1")) == Decimal("1")


# =========================================================================
# Properties
# =========================================================================

_amounts = st.decimals(
    min_value=Decimal("-1000000"),
    max_value=Decimal("1000000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
).filter(lambda d: d != 0)

_movements = st.lists(
    st.builds(
        FakeMovement,
        kind=st.sampled_from(["entrada", "salida", "devolucion", "ajuste", "anulacion"]),
        category=st.sampled_from(["efectivo", "tarjeta", "transferencia", "nequi"]),
        amount=_amounts,
    ),
    max_size=40,
)


class TestFoldProperties:

    @given(movements=_movements, data=st.data())
    @settings(max_examples=100)
    def test_fold_is_order_independent(self, movements, data):
        shuffled = data.draw(st.permutations(movements))
        a = fold_movements("clinic_cash", "2026-01-29", movements)
        b = fold_movements("clinic_cash", "2026-01-29", shuffled)
        assert a == b

    @given(movements=_movements)
    @settings(max_examples=100)
    def test_grand_total_matches_category_and_kind_sums(self, movements):
        agg = fold_movements("clinic_cash", "2026-01-29", movements)
        assert agg.grand_total == sum(agg.totals_by_category.values(), ZERO)
        assert agg.grand_total == sum(agg.totals_by_kind.values(), ZERO)
        assert agg.movement_count == len(movements)


# =========================================================================
# sign_violation
# =========================================================================


class TestSignViolation:

    @pytest.mark.parametrize("rule", ["positive", "negative", "any"])
    def test_zero_is_never_allowed(self, rule):
        assert sign_violation(Decimal("0"), rule) == "amount must not be zero"

    def test_positive_rule(self):
        assert sign_violation(Decimal("5"), "positive") is None
        assert sign_violation(Decimal("-5"), "positive") == "amount must be positive"

    def test_negative_rule(self):
        assert sign_violation(Decimal("-5"), "negative") is None
        assert sign_violation(Decimal("5"), "negative") == "amount must be negative"

    def test_any_rule(self):
        assert sign_violation(Decimal("-5"), "any") is None
        assert sign_violation(Decimal("5"), "any") is None

    def test_accepts_enum_rules(self):
        from closing_config.schema import SignRule

        assert sign_violation(Decimal("-1"), SignRule.POSITIVE) == "amount must be positive"


def test_aggregate_default_is_empty():
    agg = LedgerAggregate(series="clinic_cash", key="2026-01-29", as_of=None)
    assert agg.as_dict() == {"grand_total": ZERO}
