"""
Motor de Decisão de Intervenção

Cadeia de portões avaliada em ordem fixa; o primeiro que falhar bloqueia
a intervenção e é reportado em blocked_by.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Optional, Sequence

from behavioral.models import (
    BehavioralMoment,
    Intervention,
    InterventionDecision,
    InterventionType,
    MomentType,
    UserBehavioralProfile,
    UserState,
)
from behavioral.settings import DEFAULT_CONFIG, EngineConfig
from utils.logger import get_logger, log_decision

logger = get_logger(__name__)


class DecisionGate(Enum):
    """Portões na ordem de avaliação"""
    STATE = "STATE"
    DISABLED = "DISABLED"
    COOLDOWN = "COOLDOWN"
    DAILY_LIMIT = "DAILY_LIMIT"
    WEEKLY_LIMIT = "WEEKLY_LIMIT"
    NO_ACTIVE_BEHAVIOR = "NO_ACTIVE_BEHAVIOR"
    LOW_CONFIDENCE = "LOW_CONFIDENCE"
    NOT_BEHAVIORAL_MOMENT = "NOT_BEHAVIORAL_MOMENT"


# Momentos que pedem reflexão sobre o padrão (os demais espelham a compra)
PATTERN_MOMENTS = frozenset({
    MomentType.REPEAT_PURCHASE,
    MomentType.HABITUAL_TIME,
    MomentType.STRESS_CLUSTER,
    MomentType.COLLAPSE_START,
})

MOMENT_INTERVENTION_TYPES: Dict[MomentType, InterventionType] = {
    moment: (
        InterventionType.REINFORCEMENT if moment == MomentType.RELAPSE_AFTER_IMPROVEMENT
        else InterventionType.PATTERN_REFLECTION if moment in PATTERN_MOMENTS
        else InterventionType.IMMEDIATE_MIRROR
    )
    for moment in MomentType
}


@dataclass(frozen=True)
class DecisionContext:
    profile: UserBehavioralProfile
    behavioral_moment: Optional[BehavioralMoment]
    recent_interventions: Sequence[Intervention] = ()


def interventions_today(recent: Sequence[Intervention], now: datetime) -> int:
    """Intervenções entregues na data corrente"""
    return sum(1 for item in recent if item.delivered_at.date() == now.date())


def interventions_this_week(recent: Sequence[Intervention], now: datetime) -> int:
    """Intervenções entregues nos últimos 7 dias"""
    week_start = now - timedelta(days=7)
    return sum(1 for item in recent if week_start <= item.delivered_at <= now)


def select_intervention_type(
    moment_type: Optional[MomentType],
    recent_interventions: Sequence[Intervention] = ()
) -> InterventionType:
    """
    Escolhe o tipo de intervenção pelo tipo de momento.

    Momentos de padrão alternam com o espelho quando a última entrega já
    foi uma reflexão de padrão.
    """
    if moment_type is None:
        return InterventionType.IMMEDIATE_MIRROR

    selected = MOMENT_INTERVENTION_TYPES[moment_type]
    if selected == InterventionType.PATTERN_REFLECTION and recent_interventions:
        last = max(recent_interventions, key=lambda item: item.delivered_at)
        if last.intervention_type == InterventionType.PATTERN_REFLECTION:
            return InterventionType.IMMEDIATE_MIRROR
    return selected


def _blocked(gate: DecisionGate, reason: str, confidence: float = 0.0) -> InterventionDecision:
    return InterventionDecision(
        should_intervene=False,
        intervention_type=None,
        behavior=None,
        reason=reason,
        confidence=confidence,
        blocked_by=gate,
    )


def make_decision(
    context: DecisionContext,
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG
) -> InterventionDecision:
    """
    Decide se deve intervir agora.

    Args:
        context: Perfil, momento comportamental e intervenções recentes
        now: Momento da decisão
        config: Configuração do motor

    Returns:
        InterventionDecision (should_intervene + tipo, ou blocked_by)
    """
    now = now or datetime.now()
    decision = _evaluate_gates(context, now, config)
    log_decision(logger, context.profile.user_id, decision)
    return decision


def _evaluate_gates(context: DecisionContext, now: datetime, config: EngineConfig) -> InterventionDecision:
    profile = context.profile
    limits = config.limits
    recent = list(context.recent_interventions or ())

    if profile.user_state != UserState.FOCUSED:
        return _blocked(DecisionGate.STATE, f"Estado {profile.user_state.value} não permite intervenção")

    if not profile.intervention_enabled:
        return _blocked(DecisionGate.DISABLED, "Intervenções desativadas pelo usuário")

    if profile.cooldown_ends_at is not None and now < profile.cooldown_ends_at:
        return _blocked(DecisionGate.COOLDOWN, f"Cooldown até {profile.cooldown_ends_at.isoformat()}")

    today = interventions_today(recent, now)
    if today >= limits.max_interventions_per_day:
        return _blocked(DecisionGate.DAILY_LIMIT, f"Limite diário atingido ({today})")

    this_week = interventions_this_week(recent, now)
    if this_week >= limits.max_interventions_per_week:
        return _blocked(DecisionGate.WEEKLY_LIMIT, f"Limite semanal atingido ({this_week})")

    behavior = profile.active_behavior
    if behavior is None:
        return _blocked(DecisionGate.NO_ACTIVE_BEHAVIOR, "Nenhum comportamento ativo")

    confidence = profile.confidence_for(behavior)
    if confidence < config.thresholds.intervention:
        return _blocked(
            DecisionGate.LOW_CONFIDENCE,
            f"Confiança {confidence:.2f} abaixo de {config.thresholds.intervention:.2f}",
            confidence,
        )

    moment = context.behavioral_moment
    if moment is None or not moment.is_behavioral_moment:
        return _blocked(DecisionGate.NOT_BEHAVIORAL_MOMENT, "Transação não é um momento comportamental", confidence)

    intervention_type = select_intervention_type(moment.moment_type, recent)
    moment_label = moment.moment_type.value if moment.moment_type else "desconhecido"
    return InterventionDecision(
        should_intervene=True,
        intervention_type=intervention_type,
        behavior=behavior,
        reason=f"Momento comportamental: {moment_label}",
        confidence=confidence,
        blocked_by=None,
        moment_type=moment.moment_type,
    )
