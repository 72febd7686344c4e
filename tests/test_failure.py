"""
Testes para o tratador de falhas
"""
import pytest
import sys
from pathlib import Path
from datetime import datetime, timedelta

sys.path.insert(0, str(Path(__file__).parent.parent))

from behavioral.failure import (
    FailureAction,
    FailureMode,
    FailureResponse,
    calculate_new_state,
    detect_annoyance,
    handle_failure,
)
from behavioral.models import (
    BehaviorType,
    Intervention,
    InterventionType,
    UserBehavioralProfile,
    UserResponse,
    UserState,
)

SR = BehaviorType.SMALL_RECURRING


def dismissed_at(moment: datetime, index: int) -> Intervention:
    return Intervention(
        id=f"i{index}",
        user_id="u1",
        behavior=SR,
        intervention_type=InterventionType.IMMEDIATE_MIRROR,
        message_key="sr_mirror_adds_up",
        message_content="Pequeno, mas vai somando.",
        confidence_at_delivery=0.85,
        delivered_at=moment - timedelta(minutes=5),
        user_response=UserResponse.DISMISSED,
        response_at=moment,
    )


class TestHandleFailure:
    """Testes para o mapeamento modo -> ação"""

    def setup_method(self):
        self.profile = UserBehavioralProfile(
            user_id="u1", user_state=UserState.FOCUSED, active_behavior=SR, confidence_small_recurring=0.85
        )

    def test_first_ignore_extends_cooldown(self):
        response = handle_failure(FailureMode.USER_IGNORED, self.profile)
        assert response.action == FailureAction.EXTEND_COOLDOWN
        assert response.duration_hours == 24

    def test_second_ignore_withdraws(self):
        """O limiar compara o contador já incrementado"""
        profile = self.profile.with_updates(ignored_interventions=1)
        response = handle_failure(FailureMode.USER_IGNORED, profile)
        assert response.action == FailureAction.WITHDRAW
        assert response.duration_hours == 7 * 24

    def test_dismissals(self):
        assert handle_failure(FailureMode.USER_DISMISSED, self.profile).duration_hours == 12
        profile = self.profile.with_updates(dismissed_count=1)
        assert handle_failure(FailureMode.USER_DISMISSED, profile).action == FailureAction.EXTEND_COOLDOWN
        profile = self.profile.with_updates(dismissed_count=2)
        assert handle_failure(FailureMode.USER_DISMISSED, profile).action == FailureAction.WITHDRAW

    def test_annoyed(self):
        response = handle_failure(FailureMode.USER_ANNOYED, self.profile)
        assert response.action == FailureAction.WITHDRAW
        assert response.duration_hours == 14 * 24

    def test_churning_resets(self):
        assert handle_failure(FailureMode.USER_CHURNING, self.profile).action == FailureAction.RESET

    def test_confidence_dropped(self):
        response = handle_failure(FailureMode.CONFIDENCE_DROPPED, self.profile)
        assert response.action == FailureAction.REDUCE_FREQUENCY
        assert response.duration_hours == 24

    def test_string_mode(self):
        assert handle_failure("user_ignored", self.profile).action == FailureAction.EXTEND_COOLDOWN

    def test_unknown_mode(self):
        """Modo desconhecido reduz a frequência"""
        response = handle_failure("SOMETHING_ELSE", self.profile)
        assert response.action == FailureAction.REDUCE_FREQUENCY
        assert "desconhecido" in response.reason


class TestCalculateNewState:
    """Testes para a conversão da ação em atualizações do perfil"""

    def setup_method(self):
        self.now = datetime(2024, 3, 15, 12, 0)
        self.profile = UserBehavioralProfile(
            user_id="u1",
            user_state=UserState.FOCUSED,
            active_behavior=SR,
            confidence_small_recurring=0.85,
            cooldown_ends_at=self.now + timedelta(hours=2),
        )

    def test_withdraw(self):
        response = FailureResponse(FailureAction.WITHDRAW, "teste", 168)
        updated = self.profile.with_updates(**calculate_new_state(self.profile, response, self.now))

        assert updated.user_state == UserState.WITHDRAWN
        assert updated.active_behavior is None
        assert updated.cooldown_ends_at is None
        assert updated.withdrawal_ends_at == self.now + timedelta(hours=168)
        assert updated.check_invariants(self.now) == []

    def test_reset(self):
        profile = self.profile.with_updates(ignored_interventions=1, dismissed_count=2)
        response = FailureResponse(FailureAction.RESET, "teste")
        updated = profile.with_updates(**calculate_new_state(profile, response, self.now))

        assert updated.user_state == UserState.OBSERVING
        assert updated.confidences == {behavior: 0.0 for behavior in BehaviorType}
        assert updated.ignored_interventions == 0
        assert updated.dismissed_count == 0
        assert updated.cooldown_ends_at is None

    def test_extend_cooldown(self):
        response = FailureResponse(FailureAction.EXTEND_COOLDOWN, "teste", 24)
        updates = calculate_new_state(self.profile, response, self.now)

        assert updates['user_state'] == UserState.COOLDOWN
        assert updates['cooldown_ends_at'] == self.now + timedelta(hours=24)

    def test_extend_cooldown_while_withdrawn(self):
        """Retirada em vigor não é encurtada por cooldown"""
        profile = UserBehavioralProfile(
            user_id="u1", user_state=UserState.WITHDRAWN, withdrawal_ends_at=self.now + timedelta(days=3)
        )
        response = FailureResponse(FailureAction.EXTEND_COOLDOWN, "teste", 24)
        assert calculate_new_state(profile, response, self.now) == {}


class TestDetectAnnoyance:
    """Testes para detecção de irritação"""

    def setup_method(self):
        self.now = datetime(2024, 3, 15, 12, 0)
        self.profile = UserBehavioralProfile(user_id="u1")

    def test_rapid_dismiss(self):
        """Três dispensas em 10 horas"""
        recent = [dismissed_at(self.now - timedelta(hours=hours), i) for i, hours in enumerate((10, 5, 0))]
        signal = detect_annoyance(recent, self.profile, self.now)

        assert signal is not None
        assert signal.signal_type == 'rapid_dismiss'
        assert signal.dismiss_count == 3

    def test_spread_dismissals(self):
        """Dispensas espalhadas por mais de 24 horas não contam"""
        recent = [dismissed_at(self.now - timedelta(hours=hours), i) for i, hours in enumerate((30, 26, 1))]
        assert detect_annoyance(recent, self.profile, self.now) is None

    def test_settings_change(self):
        profile = self.profile.with_updates(intervention_enabled=False)
        signal = detect_annoyance([], profile, self.now)
        assert signal.signal_type == 'settings_change'


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
