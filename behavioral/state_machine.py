"""
Máquina de Estados Comportamental

OBSERVING -> FOCUSED -> COOLDOWN -> FOCUSED | OBSERVING
FOCUSED -> WITHDRAWN -> OBSERVING (timeout ou sinal positivo)

A função de transição é pura: não agenda timers. Quem chama reavalia no
próximo gatilho e os timestamps tornam a checagem idempotente.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from behavioral.models import (
    BEHAVIOR_PRIORITY,
    BehaviorType,
    TriggerEvent,
    UserBehavioralProfile,
    UserState,
)
from behavioral.settings import DEFAULT_CONFIG, EngineConfig
from utils.logger import get_logger, log_transition

logger = get_logger(__name__)


# Transições permitidas a partir de cada estado
ALLOWED_TRANSITIONS: Dict[UserState, Tuple[UserState, ...]] = {
    UserState.OBSERVING: (UserState.FOCUSED,),
    UserState.FOCUSED: (UserState.COOLDOWN, UserState.WITHDRAWN, UserState.OBSERVING),
    UserState.COOLDOWN: (UserState.FOCUSED, UserState.OBSERVING),
    UserState.WITHDRAWN: (UserState.OBSERVING,),
}


@dataclass(frozen=True)
class StateTransition:
    """Resultado de uma avaliação da máquina de estados"""
    new_state: UserState
    previous_state: UserState
    active_behavior: Optional[BehaviorType]
    reason: str
    cooldown_ends_at: Optional[datetime] = None
    withdrawal_ends_at: Optional[datetime] = None

    @property
    def changed(self) -> bool:
        return self.new_state != self.previous_state


def select_top_behavior(profile: UserBehavioralProfile) -> Tuple[Optional[BehaviorType], float]:
    """
    Comportamento com maior confiança.

    Empates seguem a prioridade fixa small_recurring > stress_spending >
    end_of_month.
    """
    best, best_confidence = None, -1.0
    for behavior in BEHAVIOR_PRIORITY:
        confidence = profile.confidence_for(behavior)
        if confidence > best_confidence:
            best, best_confidence = behavior, confidence
    return best, max(best_confidence, 0.0)


class BehavioralStateMachine:
    """Avalia o perfil + gatilho e decide o próximo estado"""

    def __init__(self, config: EngineConfig = DEFAULT_CONFIG):
        self.config = config

    def evaluate(
        self,
        profile: UserBehavioralProfile,
        trigger: TriggerEvent = TriggerEvent.TRANSACTION,
        now: Optional[datetime] = None
    ) -> StateTransition:
        """
        Calcula a transição para o gatilho recebido.

        Args:
            profile: Snapshot atual do perfil
            trigger: Evento que disparou a avaliação
            now: Momento da avaliação (padrão: agora)

        Returns:
            StateTransition com novo estado, comportamento ativo e timers
        """
        now = now or datetime.now()
        trigger = TriggerEvent(trigger)

        handlers = {
            UserState.OBSERVING: self._from_observing,
            UserState.FOCUSED: self._from_focused,
            UserState.COOLDOWN: self._from_cooldown,
            UserState.WITHDRAWN: self._from_withdrawn,
        }
        transition = handlers[profile.user_state](profile, trigger, now)
        log_transition(logger, profile.user_id, transition.previous_state, transition.new_state, transition.reason)
        return transition

    # === Helpers ===

    def _stay(self, profile: UserBehavioralProfile, reason: str) -> StateTransition:
        return StateTransition(
            new_state=profile.user_state,
            previous_state=profile.user_state,
            active_behavior=profile.active_behavior,
            reason=reason,
            cooldown_ends_at=profile.cooldown_ends_at,
            withdrawal_ends_at=profile.withdrawal_ends_at,
        )

    def _to(
        self,
        profile: UserBehavioralProfile,
        new_state: UserState,
        active_behavior: Optional[BehaviorType],
        reason: str,
        cooldown_ends_at: Optional[datetime] = None,
        withdrawal_ends_at: Optional[datetime] = None
    ) -> StateTransition:
        if new_state not in ALLOWED_TRANSITIONS[profile.user_state]:
            raise ValueError(f"Transição inválida: {profile.user_state.value} -> {new_state.value}")
        return StateTransition(
            new_state=new_state,
            previous_state=profile.user_state,
            active_behavior=active_behavior,
            reason=reason,
            cooldown_ends_at=cooldown_ends_at,
            withdrawal_ends_at=withdrawal_ends_at,
        )

    # === Estados ===

    def _from_observing(self, profile, trigger, now) -> StateTransition:
        if not profile.intervention_enabled:
            return self._stay(profile, "Intervenções desativadas pelo usuário")

        behavior, confidence = select_top_behavior(profile)
        if behavior is not None and confidence >= self.config.thresholds.activation:
            return self._to(
                profile, UserState.FOCUSED, behavior,
                f"Confiança {confidence:.2f} em {behavior.value} atingiu o limiar de ativação"
            )
        return self._stay(profile, "Confiança muito baixa")

    def _from_focused(self, profile, trigger, now) -> StateTransition:
        limits = self.config.limits

        if (profile.ignored_interventions >= limits.ignored_threshold
                or profile.dismissed_count >= limits.dismissed_threshold):
            return self._to(
                profile, UserState.WITHDRAWN, None,
                "Muitas intervenções ignoradas ou dispensadas",
                withdrawal_ends_at=now + timedelta(days=limits.withdrawal_days),
            )

        if trigger == TriggerEvent.INTERVENTION_DELIVERED:
            return self._to(
                profile, UserState.COOLDOWN, profile.active_behavior,
                "Intervenção entregue, iniciando cooldown",
                cooldown_ends_at=now + timedelta(hours=limits.cooldown_hours),
            )

        confidence = profile.confidence_for(profile.active_behavior)
        if confidence < self.config.thresholds.deactivation:
            return self._to(
                profile, UserState.OBSERVING, None,
                f"Confiança caiu para {confidence:.2f}, abaixo do limiar de desativação"
            )

        return self._stay(profile, "Comportamento ainda ativo")

    def _from_cooldown(self, profile, trigger, now) -> StateTransition:
        if profile.cooldown_ends_at is not None and now < profile.cooldown_ends_at:
            return self._stay(profile, "Cooldown em andamento")

        behavior = profile.active_behavior
        confidence = profile.confidence_for(behavior)
        if behavior is not None and confidence >= self.config.thresholds.activation:
            return self._to(
                profile, UserState.FOCUSED, behavior,
                f"Cooldown encerrado, confiança {confidence:.2f} ainda alta"
            )
        return self._to(profile, UserState.OBSERVING, None, "Cooldown encerrado, confiança baixa")

    def _from_withdrawn(self, profile, trigger, now) -> StateTransition:
        if trigger == TriggerEvent.POSITIVE_SIGNAL:
            return self._to(profile, UserState.OBSERVING, None, "Sinal positivo encerrou a retirada")

        # Sem timer registrado não há retirada em vigor
        if profile.withdrawal_ends_at is None or now >= profile.withdrawal_ends_at:
            return self._to(profile, UserState.OBSERVING, None, "Período de retirada encerrado")

        return self._stay(profile, "Retirada em andamento")


def apply_transition(
    profile: UserBehavioralProfile,
    transition: StateTransition,
    now: Optional[datetime] = None
) -> UserBehavioralProfile:
    """
    Aplica a transição ao perfil, devolvendo um novo snapshot.

    Ao mudar de estado, os timers que não pertencem ao novo estado são
    limpos; permanências não mexem nos timers.
    """
    now = now or datetime.now()
    if not transition.changed:
        return profile

    updates = {
        'user_state': transition.new_state,
        'active_behavior': transition.active_behavior,
        'state_changed_at': now,
    }
    if transition.new_state == UserState.COOLDOWN:
        updates['cooldown_ends_at'] = transition.cooldown_ends_at
        updates['withdrawal_ends_at'] = None
    elif transition.new_state == UserState.WITHDRAWN:
        updates['withdrawal_ends_at'] = transition.withdrawal_ends_at
        updates['cooldown_ends_at'] = None
    elif transition.new_state == UserState.OBSERVING:
        updates['cooldown_ends_at'] = None
        updates['withdrawal_ends_at'] = None

    return profile.with_updates(**updates)


# === Funções de conveniência ===

_state_machine = None


def get_state_machine() -> BehavioralStateMachine:
    """Retorna instância global da máquina de estados"""
    global _state_machine
    if _state_machine is None:
        _state_machine = BehavioralStateMachine()
    return _state_machine


def evaluate_state(
    profile: UserBehavioralProfile,
    trigger: TriggerEvent = TriggerEvent.TRANSACTION,
    now: Optional[datetime] = None
) -> StateTransition:
    """Avalia transição com a configuração padrão (função de conveniência)"""
    return get_state_machine().evaluate(profile, trigger, now)
