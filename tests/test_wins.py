"""
Testes para o detector de vitórias e recaídas
"""
import pytest
import sys
from pathlib import Path
from datetime import datetime, timedelta

sys.path.insert(0, str(Path(__file__).parent.parent))

from behavioral.messages import DEFAULT_WIN_MESSAGE, STREAK_BREAK_MESSAGES
from behavioral.models import (
    BehaviorType,
    RelapseSeverity,
    Transaction,
    UserBehavioralProfile,
    UserState,
    WinType,
)
from behavioral.wins import (
    check_streak_break,
    detect_relapse,
    detect_win,
    detect_win_with_streak_check,
    weekly_counts,
)

SR = BehaviorType.SMALL_RECURRING
NOW = datetime(2024, 3, 15, 12, 0)


def week_of_coffee(this_week: int, last_week: int, fillers: int = 0):
    """
    Cafés de R$10 nas duas últimas semanas e compras grandes de mercado
    que não contam para o comportamento.
    """
    transactions = []
    for i in range(this_week):
        transactions.append(Transaction(f"a{i}", -10.0, NOW - timedelta(days=1, hours=i), "coffee"))
    for i in range(last_week):
        transactions.append(Transaction(f"b{i}", -10.0, NOW - timedelta(days=9, hours=i), "coffee"))
    for i in range(fillers):
        transactions.append(Transaction(f"f{i}", -100.0, NOW - timedelta(days=3, hours=i), "groceries"))
    return transactions


def focused_profile(**changes) -> UserBehavioralProfile:
    values = dict(user_id="u1", user_state=UserState.FOCUSED, active_behavior=SR, confidence_small_recurring=0.85)
    values.update(changes)
    return UserBehavioralProfile(**values)


class TestWeeklyCounts:
    """Testes para a contagem semanal por comportamento"""

    def test_counts_split_by_week(self):
        assert weekly_counts(week_of_coffee(2, 6, fillers=4), SR, NOW) == (2, 6)

    def test_income_never_counts(self):
        transactions = [Transaction("s1", 10.0, NOW - timedelta(days=1), "coffee")]
        assert weekly_counts(transactions, SR, NOW) == (0, 0)


class TestDetectWin:
    """Testes para detecção de vitórias"""

    def test_pattern_break(self):
        """Seis cafés na semana passada, dois nesta"""
        result = detect_win("u1", focused_profile(), week_of_coffee(2, 6, fillers=6), NOW)

        assert result.has_win is True
        assert result.win_type == WinType.PATTERN_BREAK
        assert result.should_celebrate is True
        assert result.metadata['reduction_percent'] == 67

    def test_pattern_break_needs_history(self):
        """Com menos de 14 transações a mesma redução vira melhora"""
        result = detect_win("u1", focused_profile(), week_of_coffee(2, 6), NOW)
        assert result.win_type == WinType.IMPROVEMENT

    def test_streak_milestone(self):
        profile = focused_profile(current_streak=7)
        result = detect_win("u1", profile, week_of_coffee(3, 3, fillers=8), NOW)

        assert result.win_type == WinType.STREAK_MILESTONE
        assert result.message.startswith("7 dias")
        assert result.metadata['streak'] == 7

    def test_pattern_break_wins_over_milestone(self):
        profile = focused_profile(current_streak=14)
        result = detect_win("u1", profile, week_of_coffee(2, 6, fillers=6), NOW)
        assert result.win_type == WinType.PATTERN_BREAK

    def test_improvement(self):
        result = detect_win("u1", focused_profile(), week_of_coffee(3, 5), NOW)

        assert result.win_type == WinType.IMPROVEMENT
        assert result.metadata['reduction_percent'] == 40

    def test_silent_win(self):
        """Redução pequena não é celebrada"""
        result = detect_win("u1", focused_profile(), week_of_coffee(4, 5), NOW)

        assert result.has_win is True
        assert result.win_type == WinType.SILENT_WIN
        assert result.should_celebrate is False
        assert result.message == DEFAULT_WIN_MESSAGE

    def test_no_win_without_behavior(self):
        profile = UserBehavioralProfile(user_id="u1")
        assert detect_win("u1", profile, week_of_coffee(2, 6), NOW).has_win is False

    def test_no_win_without_transactions(self):
        assert detect_win("u1", focused_profile(), [], NOW).has_win is False

    def test_no_win_on_increase(self):
        assert detect_win("u1", focused_profile(), week_of_coffee(6, 3), NOW).has_win is False


class TestDetectRelapse:
    """Testes para detecção de recaídas"""

    def setup_method(self):
        self.profile = focused_profile(last_win_at=NOW - timedelta(days=5))

    @pytest.mark.parametrize("this_week,last_week,severity", [
        (5, 2, RelapseSeverity.SEVERE),
        (3, 2, RelapseSeverity.MODERATE),
        (4, 3, RelapseSeverity.MILD),
    ])
    def test_severity_buckets(self, this_week, last_week, severity):
        transactions = week_of_coffee(this_week, last_week, fillers=14)
        result = detect_relapse(self.profile, SR, transactions, NOW)

        assert result.is_relapse is True
        assert result.severity == severity
        assert result.message

    def test_small_increase_is_not_relapse(self):
        transactions = week_of_coffee(11, 10, fillers=14)
        assert detect_relapse(self.profile, SR, transactions, NOW).is_relapse is False

    def test_old_win_is_ignored(self):
        profile = self.profile.with_updates(last_win_at=NOW - timedelta(days=40))
        transactions = week_of_coffee(5, 2, fillers=14)
        assert detect_relapse(profile, SR, transactions, NOW).is_relapse is False

    def test_lookback_counts_whole_days(self):
        """Vitória há 30 dias e meio ainda está dentro da janela de 30 dias"""
        transactions = week_of_coffee(5, 2, fillers=14)

        recent = self.profile.with_updates(last_win_at=NOW - timedelta(days=30, hours=12))
        assert detect_relapse(recent, SR, transactions, NOW).is_relapse is True

        expired = self.profile.with_updates(last_win_at=NOW - timedelta(days=31, hours=1))
        assert detect_relapse(expired, SR, transactions, NOW).is_relapse is False

    def test_needs_history(self):
        assert detect_relapse(self.profile, SR, week_of_coffee(5, 2), NOW).is_relapse is False

    def test_accepts_string_behavior(self):
        transactions = week_of_coffee(5, 2, fillers=14)
        assert detect_relapse(self.profile, "SMALL_RECURRING", transactions, NOW).behavior == SR


class TestStreakBreak:
    """Testes para quebra de sequência"""

    def test_no_streak(self):
        assert check_streak_break(focused_profile(), week_of_coffee(3, 3), now=NOW) is None

    def test_severe_regression(self):
        profile = focused_profile(current_streak=5, last_win_at=NOW - timedelta(days=5))
        transactions = week_of_coffee(5, 2, fillers=14)
        relapse = detect_relapse(profile, SR, transactions, NOW)
        result = check_streak_break(profile, transactions, relapse, NOW)

        assert result.reason == 'severe_regression'
        assert result.streak_length == 5
        assert result.message == STREAK_BREAK_MESSAGES['severe_regression']

    def test_inactivity(self):
        """Último café há 10 dias"""
        profile = focused_profile(current_streak=5)
        transactions = [Transaction("c1", -10.0, NOW - timedelta(days=10), "coffee")]
        result = check_streak_break(profile, transactions, now=NOW)

        assert result.reason == 'inactivity'
        assert result.metadata['days_since_last_behavior'] == 10

    def test_withdrawal(self):
        profile = UserBehavioralProfile(
            user_id="u1",
            user_state=UserState.WITHDRAWN,
            withdrawal_ends_at=NOW + timedelta(days=3),
            current_streak=3,
            ignored_interventions=2,
        )
        result = check_streak_break(profile, [], now=NOW)

        assert result.reason == 'withdrawal_triggered'
        assert result.metadata['ignored_count'] == 2

    def test_streak_continues(self):
        profile = focused_profile(current_streak=5)
        assert check_streak_break(profile, week_of_coffee(3, 3), now=NOW) is None

    def test_combined_check(self):
        profile = focused_profile(current_streak=5, last_win_at=NOW - timedelta(days=5))
        win, streak_break = detect_win_with_streak_check("u1", profile, week_of_coffee(5, 2, fillers=14), NOW)

        assert win.has_win is False
        assert streak_break.reason == 'severe_regression'


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
