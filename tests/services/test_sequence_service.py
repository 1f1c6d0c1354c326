"""Tests for the named sequence counters behind closing numbers and audit seq."""

from closing_kernel.services.sequence_service import SequenceService


class TestSequenceService:

    def test_first_value_is_one(self, session):
        sequences = SequenceService(session)
        assert sequences.current_value(SequenceService.closing("clinic_cash")) is None
        assert sequences.next_value(SequenceService.closing("clinic_cash")) == 1
        assert sequences.current_value(SequenceService.closing("clinic_cash")) == 1

    def test_values_are_monotonic(self, session):
        sequences = SequenceService(session)
        values = [sequences.next_value("closing:medias_cash") for _ in range(5)]
        assert values == [1, 2, 3, 4, 5]

    def test_counters_are_independent(self, session):
        sequences = SequenceService(session)
        sequences.next_value(SequenceService.closing("clinic_cash"))
        sequences.next_value(SequenceService.closing("clinic_cash"))
        assert sequences.next_value(SequenceService.closing("medias_cash")) == 1

    def test_closing_counter_name(self):
        assert SequenceService.closing("clinic_cash") == "closing:clinic_cash"

    def test_reset(self, session):
        sequences = SequenceService(session)
        sequences.reset(SequenceService.closing("clinic_cash"), 41)
        assert sequences.next_value(SequenceService.closing("clinic_cash")) == 42
