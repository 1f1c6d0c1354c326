"""Tests for AlertService: raising, listing and resolving alerts."""

from uuid import uuid4

import pytest

from closing_kernel.exceptions import (
    AlertAlreadyResolvedError,
    AlertNotFoundError,
    NotesRequiredError,
)
from closing_kernel.models.alert import AlertSeverity, AlertType


def _raise(alert_service, title="Pago anulado", reference_id=None):
    return alert_service.create(
        alert_type=AlertType.PAYMENT_VOIDED,
        severity=AlertSeverity.WARNING,
        title=title,
        description="efectivo por 50000 anulado",
        reference_type="Movement",
        reference_id=reference_id,
    )


class TestCreate:

    def test_create_is_unresolved(self, alert_service, deterministic_clock):
        alert = _raise(alert_service)
        assert alert.alert_type == "pago_anulado"
        assert alert.severity == "advertencia"
        assert alert.is_resolved is False
        assert alert.created_at == deterministic_clock.now()

    def test_create_logs_warning(self, alert_service, captured_logs):
        alert = _raise(alert_service)
        raised = [r for r in captured_logs() if r["message"] == "alert_raised"]
        assert raised[-1]["level"] == "WARNING"
        assert raised[-1]["alert_id"] == str(alert.id)

    def test_long_title_is_truncated(self, alert_service):
        assert len(_raise(alert_service, title="x" * 300).title) == 200


class TestList:

    def test_newest_first(self, alert_service, deterministic_clock):
        older = _raise(alert_service)
        deterministic_clock.advance(60)
        newer = _raise(alert_service)
        listed = [a.id for a in alert_service.list_unresolved()]
        assert listed.index(newer.id) < listed.index(older.id)

    def test_resolved_are_hidden(self, alert_service, admin):
        alert = _raise(alert_service)
        alert_service.resolve(alert.id, "revisado con la secretaria", admin)
        assert alert.id not in {a.id for a in alert_service.list_unresolved()}

    def test_list_for_reference(self, alert_service):
        ref = uuid4()
        alert = _raise(alert_service, reference_id=ref)
        _raise(alert_service, reference_id=uuid4())
        assert [a.id for a in alert_service.list_for_reference("Movement", ref)] == [alert.id]


class TestResolve:

    def test_resolve(self, alert_service, admin, deterministic_clock):
        alert = _raise(alert_service)
        resolved = alert_service.resolve(alert.id, "  revisado con la secretaria  ", admin)
        assert resolved.is_resolved is True
        assert resolved.resolved_by_id == admin.id
        assert resolved.resolved_at == deterministic_clock.now()
        assert resolved.resolution_notes == "revisado con la secretaria"

    def test_resolve_twice(self, alert_service, admin):
        alert = _raise(alert_service)
        alert_service.resolve(alert.id, "revisado", admin)
        with pytest.raises(AlertAlreadyResolvedError):
            alert_service.resolve(alert.id, "otra vez", admin)

    def test_notes_required(self, alert_service, admin):
        alert = _raise(alert_service)
        with pytest.raises(NotesRequiredError):
            alert_service.resolve(alert.id, "", admin)

    def test_unknown_alert(self, alert_service, admin):
        with pytest.raises(AlertNotFoundError):
            alert_service.resolve(uuid4(), "revisado", admin)
