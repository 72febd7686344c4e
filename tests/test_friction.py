"""
Testes para os detectores de fricção
"""
import pytest
import sys
from pathlib import Path
from datetime import datetime, timedelta

sys.path.insert(0, str(Path(__file__).parent.parent))

from behavioral.friction import (
    FrictionCounters,
    FrictionType,
    create_default_counters,
    detect_complex_budget_setup,
    detect_email_opportunity,
    detect_financial_question,
    detect_health_curiosity,
    detect_manual_entry_fatigue,
    detect_missed_transaction_hint,
    detect_repeat_category_entry,
    detect_session_friction,
    detect_time_spent_tracking,
    detect_trial_expiry_approaching,
    start_new_session,
    track_budget_edit,
    track_health_view,
    track_manual_entry,
    track_screen_time,
)


class TestDetectors:
    """Testes para cada detector de fricção"""

    def setup_method(self):
        self.now = datetime(2024, 3, 15, 12, 0)
        self.counters = create_default_counters(self.now)

    def test_manual_entry_fatigue(self):
        assert detect_manual_entry_fatigue(self.counters, self.now) is None

        three = FrictionCounters(self.now, manual_entries=3)
        assert detect_manual_entry_fatigue(three, self.now).confidence == pytest.approx(0.6)

        five = FrictionCounters(self.now, manual_entries=5)
        assert detect_manual_entry_fatigue(five, self.now).confidence == pytest.approx(0.74)

    def test_manual_entry_fatigue_is_capped(self):
        many = FrictionCounters(self.now, manual_entries=50)
        assert detect_manual_entry_fatigue(many, self.now).confidence == pytest.approx(0.95)

    def test_email_opportunity(self):
        result = detect_email_opportunity("Uber Eats", self.now)

        assert result.friction_type == FrictionType.EMAIL_OPPORTUNITY
        assert result.metadata['merchant_name'] == "Uber Eats"
        assert detect_email_opportunity("Padaria do Bairro", self.now) is None
        assert detect_email_opportunity(None, self.now) is None

    def test_repeat_category(self):
        counters = FrictionCounters(self.now, category_repeat_map={'coffee': 4})
        result = detect_repeat_category_entry(counters, 'coffee', self.now)

        assert result.confidence == pytest.approx(0.7)
        assert result.metadata['repeat_count'] == 4
        assert detect_repeat_category_entry(counters, 'mercado', self.now) is None

    def test_simple_thresholds(self):
        assert detect_health_curiosity(2, self.now) is None
        assert detect_health_curiosity(3, self.now).friction_type == FrictionType.HEALTH_CURIOSITY
        assert detect_time_spent_tracking(299_999, self.now) is None
        assert detect_time_spent_tracking(360_000, self.now).metadata['screen_time_minutes'] == 6
        assert detect_missed_transaction_hint(3, self.now).confidence == pytest.approx(0.65)
        assert detect_complex_budget_setup(2, self.now) is None
        assert detect_financial_question(self.now).confidence == pytest.approx(0.9)

    def test_trial_expiry(self):
        """Só dispara nas últimas 24 horas do teste"""
        result = detect_trial_expiry_approaching(self.now + timedelta(hours=10), self.now)
        assert result.confidence == pytest.approx(0.95)
        assert result.metadata['hours_remaining'] == 10

        assert detect_trial_expiry_approaching(self.now + timedelta(hours=30), self.now) is None
        assert detect_trial_expiry_approaching(self.now - timedelta(hours=1), self.now) is None
        assert detect_trial_expiry_approaching(None, self.now) is None


class TestSessionFriction:
    """Testes para a execução conjunta dos detectores"""

    def test_sorted_by_confidence(self):
        now = datetime(2024, 3, 15, 12, 0)
        counters = create_default_counters(now)
        for _ in range(3):
            counters = track_manual_entry(counters, "iFood", "coffee")

        detected = detect_session_friction(counters, category_id="coffee", now=now)
        types = [item.friction_type for item in detected]

        assert types[0] == FrictionType.EMAIL_OPPORTUNITY
        assert set(types) == {
            FrictionType.EMAIL_OPPORTUNITY,
            FrictionType.RECEIPT_MOMENT,
            FrictionType.MANUAL_ENTRY_FATIGUE,
            FrictionType.REPEAT_CATEGORY_ENTRY,
        }
        confidences = [item.confidence for item in detected]
        assert confidences == sorted(confidences, reverse=True)

    def test_empty_session(self):
        now = datetime(2024, 3, 15, 12, 0)
        assert detect_session_friction(create_default_counters(now), now=now) == []


class TestCounters:
    """Testes para os helpers de contadores"""

    def setup_method(self):
        self.now = datetime(2024, 3, 15, 12, 0)
        self.counters = create_default_counters(self.now)

    def test_track_manual_entry(self):
        updated = track_manual_entry(self.counters, "Amazon", "shopping")
        updated = track_manual_entry(updated, None, "shopping")

        assert updated.manual_entries == 2
        assert updated.category_repeat_map == {'shopping': 2}
        assert updated.last_merchant_name is None
        assert self.counters.manual_entries == 0

    def test_other_trackers(self):
        updated = track_screen_time(self.counters, 1000)
        updated = track_health_view(updated)
        updated = track_budget_edit(updated)

        assert updated.screen_time_ms == 1000
        assert updated.health_view_count == 1
        assert updated.budget_edit_count == 1

    def test_new_session(self):
        later = self.now + timedelta(hours=3)
        fresh = start_new_session(track_manual_entry(self.counters), later)

        assert fresh.manual_entries == 0
        assert fresh.session_started_at == later


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
