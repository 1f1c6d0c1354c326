"""
Tests for the ledger configuration package (``closing_config``).

Covers loading the shipped set, YAML parsing rules, structural validation,
and set selection by config_id.
"""

from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from closing_config import ConfigValidationError, get_active_config
from closing_config.loader import (
    compute_checksum,
    load_configuration_set,
    parse_decimal,
    parse_series,
)
from closing_config.schema import (
    ClosingPolicy,
    KeyType,
    LedgerConfiguration,
    RoleGrants,
    SeriesConfig,
    SignRule,
)
from closing_config.validator import validate_configuration


def _write_set(root: Path, config_id: str, series: list[dict]) -> Path:
    set_dir = root / config_id
    (set_dir / "series").mkdir(parents=True)
    (set_dir / "root.yaml").write_text(yaml.safe_dump({"config_id": config_id, "version": 2}))
    for fragment in series:
        path = set_dir / "series" / f"{fragment['name']}.yaml"
        path.write_text(yaml.safe_dump(fragment))
    return set_dir


def _cash_fragment(**overrides) -> dict:
    fragment = {
        "name": "caja",
        "key_type": "date",
        "categories": ["efectivo"],
        "kinds": {"entrada": "positive"},
        "grants": {"record": ["admin"], "close": ["admin"]},
        "closing": {"prefix": "CAJ", "tolerance": "0"},
    }
    fragment.update(overrides)
    return fragment


# =========================================================================
# Shipped configuration
# =========================================================================


class TestShippedConfiguration:

    def test_loads_and_validates(self, ledger_config):
        assert ledger_config.config_id == "clinica_medias"
        assert set(ledger_config.series_names) == {"clinic_cash", "medias_cash", "medias_stock"}
        assert len(ledger_config.checksum) == 64

    def test_business_timezone(self, ledger_config):
        assert ledger_config.timezone == "America/Bogota"
        assert ledger_config.zone.key == "America/Bogota"

    def test_clinic_policy(self, ledger_config):
        clinic = ledger_config.get_series("clinic_cash")
        assert clinic.is_date_keyed
        assert clinic.closing.prefix == "CIE"
        assert clinic.closing.tolerance == Decimal("10000")
        assert clinic.closing.photo_required is False
        assert clinic.categories == ("efectivo", "tarjeta", "transferencia", "nequi")
        assert clinic.sign_rule("salida") == SignRule.NEGATIVE

    def test_medias_policy(self, ledger_config):
        medias = ledger_config.get_series("medias_cash")
        assert medias.closing.prefix == "CIM"
        assert medias.closing.tolerance == Decimal("0")
        assert medias.closing.photo_required is False

    def test_stock_series(self, ledger_config):
        stock = ledger_config.get_series("medias_stock")
        assert stock.key_type == KeyType.PRODUCT
        assert stock.closes is False
        assert stock.allow_negative_balance is False
        assert stock.lock_series == "medias_cash"
        assert stock.justified_kinds == ("ajuste",)

    def test_anulacion_is_never_configured(self, ledger_config):
        for series in ledger_config.series:
            assert "anulacion" not in series.kind_names

    def test_unknown_series(self, ledger_config):
        assert ledger_config.get_series("nope") is None

    def test_checksum_is_stable(self):
        assert get_active_config().checksum == get_active_config().checksum

    def test_emits_config_trace(self, captured_logs):
        get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "LEDGER_CONFIG_TRACE"]
        assert traces
        assert traces[-1]["config_set_id"] == "clinica_medias"


# =========================================================================
# Parsing
# =========================================================================


class TestParsing:

    def test_parse_decimal_rejects_floats(self):
        with pytest.raises(ValueError):
            parse_decimal(0.1)

    def test_parse_decimal_rejects_bool(self):
        with pytest.raises(ValueError):
            parse_decimal(True)

    def test_parse_decimal_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_decimal("diez mil")

    def test_parse_decimal_accepts_strings_and_ints(self):
        assert parse_decimal("10000") == Decimal("10000")
        assert parse_decimal(5) == Decimal("5")

    def test_parse_series(self):
        series = parse_series(_cash_fragment(kinds={"salida": "negative", "entrada": "positive"}))
        assert series.kinds == (("entrada", SignRule.POSITIVE), ("salida", SignRule.NEGATIVE))
        assert series.closing == ClosingPolicy(prefix="CAJ", tolerance=Decimal("0"))
        assert series.grants.roles_for("record") == ("admin",)
        assert series.grants.roles_for("void") == ()

    def test_format_number(self):
        policy = ClosingPolicy(prefix="CIE", tolerance=Decimal("0"))
        assert policy.format_number(1) == "CIE-000001"
        assert ClosingPolicy(prefix="X", tolerance=Decimal("0"), number_width=3).format_number(42) == "X-042"

    def test_checksum_depends_on_content(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_load_set_from_directory(self, tmp_path):
        set_dir = _write_set(tmp_path, "prueba", [_cash_fragment()])
        config = load_configuration_set(set_dir)
        assert config.config_id == "prueba"
        assert config.version == 2
        assert config.series_names == ("caja",)
        assert config.timezone == "UTC"


# =========================================================================
# Validation
# =========================================================================


def _config(*series: SeriesConfig) -> LedgerConfiguration:
    return LedgerConfiguration(config_id="t", version=1, series=tuple(series))


def _series(**overrides) -> SeriesConfig:
    values = dict(
        name="caja",
        key_type=KeyType.DATE,
        categories=("efectivo",),
        kinds=(("entrada", SignRule.POSITIVE),),
        grants=RoleGrants(record=("admin",), close=("admin",)),
        closing=ClosingPolicy(prefix="CAJ", tolerance=Decimal("0")),
    )
    values.update(overrides)
    return SeriesConfig(**values)


class TestValidation:

    def test_valid_configuration(self):
        result = validate_configuration(_config(_series()))
        assert result.is_valid, result.errors

    def test_empty_configuration(self):
        assert not validate_configuration(_config()).is_valid

    def test_duplicate_series(self):
        result = validate_configuration(_config(_series(), _series()))
        assert "Duplicate series: caja" in result.errors

    def test_unknown_kind(self):
        result = validate_configuration(_config(_series(kinds=(("regalo", SignRule.ANY),))))
        assert any("unknown movement kind 'regalo'" in e for e in result.errors)

    def test_anulacion_cannot_be_configured(self):
        result = validate_configuration(_config(_series(kinds=(("anulacion", SignRule.ANY),))))
        assert not result.is_valid

    def test_unknown_role(self):
        result = validate_configuration(
            _config(_series(grants=RoleGrants(record=("cajero",))))
        )
        assert any("unknown role 'cajero'" in e for e in result.errors)

    def test_negative_tolerance(self):
        policy = ClosingPolicy(prefix="CAJ", tolerance=Decimal("-1"))
        result = validate_configuration(_config(_series(closing=policy)))
        assert any("tolerance must be non-negative" in e for e in result.errors)

    def test_product_series_cannot_close(self):
        result = validate_configuration(_config(_series(key_type=KeyType.PRODUCT)))
        assert any("only date-keyed" in e for e in result.errors)

    def test_counted_category_must_exist(self):
        policy = ClosingPolicy(prefix="CAJ", tolerance=Decimal("0"), counted_category="nequi")
        result = validate_configuration(_config(_series(closing=policy)))
        assert any("counted_category" in e for e in result.errors)

    def test_justified_kind_must_be_enabled(self):
        result = validate_configuration(_config(_series(justified_kinds=("ajuste",))))
        assert any("justified kind 'ajuste'" in e for e in result.errors)

    def test_lock_series_must_close(self):
        stock = _series(
            name="stock",
            key_type=KeyType.PRODUCT,
            closing=None,
            grants=RoleGrants(record=("admin",)),
            lock_series="missing",
        )
        result = validate_configuration(_config(_series(), stock))
        assert any("lock_series 'missing'" in e for e in result.errors)

    def test_closing_grants_without_policy_warn(self):
        result = validate_configuration(_config(_series(closing=None)))
        assert result.is_valid
        assert result.warnings

    def test_unknown_timezone(self):
        config = LedgerConfiguration(config_id="t", version=1, series=(_series(),), timezone="Mars/Olympus_Mons")
        result = validate_configuration(config)
        assert "Unknown timezone: 'Mars/Olympus_Mons'" in result.errors

    def test_raise_if_invalid(self):
        result = validate_configuration(_config())
        with pytest.raises(ConfigValidationError) as exc_info:
            result.raise_if_invalid()
        assert exc_info.value.errors == result.errors


# =========================================================================
# Set selection
# =========================================================================


class TestGetActiveConfig:

    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(config_dir=tmp_path / "nope")

    def test_single_set_directory(self, tmp_path):
        set_dir = _write_set(tmp_path, "prueba", [_cash_fragment()])
        assert get_active_config(config_dir=set_dir).config_id == "prueba"

    def test_several_sets_need_config_id(self, tmp_path):
        _write_set(tmp_path, "uno", [_cash_fragment()])
        _write_set(tmp_path, "dos", [_cash_fragment()])
        with pytest.raises(ValueError, match="pass config_id"):
            get_active_config(config_dir=tmp_path)
        assert get_active_config(config_dir=tmp_path, config_id="dos").config_id == "dos"

    def test_unknown_config_id(self, tmp_path):
        _write_set(tmp_path, "uno", [_cash_fragment()])
        with pytest.raises(FileNotFoundError):
            get_active_config(config_dir=tmp_path, config_id="otro")

    def test_invalid_set_is_rejected(self, tmp_path):
        _write_set(tmp_path, "malo", [_cash_fragment(grants={"record": ["cajero"]})])
        with pytest.raises(ConfigValidationError):
            get_active_config(config_dir=tmp_path)
