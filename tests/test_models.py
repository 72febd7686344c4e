"""
Testes para o modelo de dados comportamental
"""
import pytest
import sys
from pathlib import Path
from datetime import datetime, timedelta

sys.path.insert(0, str(Path(__file__).parent.parent))

from behavioral.models import (
    BehaviorType,
    ConfidenceSnapshot,
    SeasonalFactors,
    Transaction,
    UserBehavioralProfile,
    UserState,
)


class TestBehaviorType:
    """Testes para o enum de comportamentos"""

    def test_parse_string(self):
        assert BehaviorType.parse("small_recurring") == BehaviorType.SMALL_RECURRING
        assert BehaviorType.parse("STRESS_SPENDING") == BehaviorType.STRESS_SPENDING

    def test_parse_enum(self):
        assert BehaviorType.parse(BehaviorType.END_OF_MONTH) == BehaviorType.END_OF_MONTH

    def test_parse_unknown(self):
        """Testa id fora do conjunto fechado"""
        with pytest.raises(ValueError):
            BehaviorType.parse("gambling")


class TestTransaction:
    """Testes para Transaction"""

    def test_expense_and_category(self):
        txn = Transaction("t1", -12.5, datetime(2024, 3, 1, 8), None)
        assert txn.is_expense is True
        assert txn.category == "uncategorized"

    def test_from_dict(self):
        """Testa criação a partir do formato da API"""
        txn = Transaction.from_dict({
            'id': 7,
            'amount': '-9.90',
            'date': '2024-03-01T08:30:00',
            'category': 'coffee',
        })
        assert txn.id == "7"
        assert txn.amount == -9.9
        assert txn.timestamp == datetime(2024, 3, 1, 8, 30)
        assert txn.category_id == "coffee"


class TestUserBehavioralProfile:
    """Testes para o perfil comportamental"""

    def setup_method(self):
        self.now = datetime(2024, 3, 15, 12, 0)

    def test_defaults(self):
        profile = UserBehavioralProfile(user_id="u1")
        assert profile.user_state == UserState.OBSERVING
        assert profile.active_behavior is None
        assert profile.check_invariants(self.now) == []

    def test_string_coercion(self):
        """Testa conversão de strings vindas do banco"""
        profile = UserBehavioralProfile(user_id="u1", user_state="focused", active_behavior="small_recurring")
        assert profile.user_state == UserState.FOCUSED
        assert profile.active_behavior == BehaviorType.SMALL_RECURRING

    def test_confidence_for(self):
        profile = UserBehavioralProfile(user_id="u1", confidence_stress_spending=0.6)
        assert profile.confidence_for(BehaviorType.STRESS_SPENDING) == 0.6
        assert profile.confidence_for(None) == 0.0

    def test_with_confidences_returns_new_snapshot(self):
        profile = UserBehavioralProfile(user_id="u1")
        updated = profile.with_confidences({BehaviorType.SMALL_RECURRING: 0.8})
        assert updated.confidence_small_recurring == 0.8
        assert profile.confidence_small_recurring == 0.0

    def test_invariant_behavior_without_focus(self):
        """Testa comportamento ativo em OBSERVING"""
        profile = UserBehavioralProfile(user_id="u1", active_behavior=BehaviorType.SMALL_RECURRING)
        assert len(profile.check_invariants(self.now)) == 1

    def test_invariant_both_timers(self):
        """Testa cooldown e retirada ativos ao mesmo tempo"""
        profile = UserBehavioralProfile(
            user_id="u1",
            user_state=UserState.WITHDRAWN,
            cooldown_ends_at=self.now + timedelta(hours=2),
            withdrawal_ends_at=self.now + timedelta(days=2),
        )
        problems = profile.check_invariants(self.now)
        assert any("cooldown" in problem for problem in problems)

    def test_dict_round_trip(self):
        """Testa serialização preservando datas e histórico"""
        profile = UserBehavioralProfile(
            user_id="u1",
            user_state=UserState.FOCUSED,
            active_behavior=BehaviorType.STRESS_SPENDING,
            confidence_stress_spending=0.82,
            state_changed_at=self.now,
            seasonal_factors=SeasonalFactors(last_calibrated_at=self.now),
            confidence_history=(ConfidenceSnapshot(self.now, 0.1, 0.82, 0.0),),
            version=3,
        )
        assert UserBehavioralProfile.from_dict(profile.to_dict()) == profile


class TestSeasonalFactors:

    def test_invalid_lengths(self):
        with pytest.raises(ValueError):
            SeasonalFactors(monthly=(1.0,) * 11)

    def test_from_empty_dict(self):
        assert SeasonalFactors.from_dict(None) == SeasonalFactors()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
