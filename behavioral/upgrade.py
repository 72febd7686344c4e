"""
Decisão de Prompts de Upgrade

Portões em ordem fixa sobre uma fricção detectada e o estado do motor
de prompts. Os helpers de estado são puros e devolvem novos snapshots.
"""
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from behavioral.friction import FrictionContext, FrictionType
from behavioral.settings import DEFAULT_CONFIG, EngineConfig
from utils.logger import get_logger

logger = get_logger(__name__)


class UpgradeGate(Enum):
    NEW_USER_GRACE = "NEW_USER_GRACE"
    TIER_CHECK = "TIER_CHECK"
    COOLDOWN = "COOLDOWN"
    DAILY_LIMIT = "DAILY_LIMIT"
    WEEKLY_LIMIT = "WEEKLY_LIMIT"
    DISMISS_TRACKING = "DISMISS_TRACKING"
    CONFIDENCE_THRESHOLD = "CONFIDENCE_THRESHOLD"
    CONTEXT_RELEVANCE = "CONTEXT_RELEVANCE"


PREMIUM_TIER = "premium"


@dataclass(frozen=True)
class UpgradeEngineState:
    """Estado persistido do motor de prompts"""
    signup_at: Optional[datetime] = None
    last_prompt_shown_at: Optional[datetime] = None
    last_dismissed_at: Optional[datetime] = None
    dismiss_count: int = 0
    daily_count: int = 0
    daily_reset_date: Optional[str] = None
    weekly_count: int = 0
    weekly_reset_at: Optional[datetime] = None
    silence_until: Optional[datetime] = None
    permanently_silenced: bool = False
    lifetime_taps: int = 0


@dataclass(frozen=True)
class UpgradeDecision:
    should_show: bool
    reason: str
    blocked_by: Optional[UpgradeGate] = None
    friction_type: Optional[FrictionType] = None


def _blocked(gate: UpgradeGate, reason: str) -> UpgradeDecision:
    logger.debug(f"UPGRADE | blocked_by={gate.value} | reason={reason}")
    return UpgradeDecision(False, reason, gate)


def initialize_engine_state(signup_at: Optional[datetime] = None) -> UpgradeEngineState:
    return UpgradeEngineState(signup_at=signup_at)


def check_and_reset_counters(state: UpgradeEngineState, now: Optional[datetime] = None) -> UpgradeEngineState:
    """Zera contador diário na virada do dia e semanal a cada 7 dias"""
    now = now or datetime.now()
    today = now.date().isoformat()
    updated = state

    if updated.daily_reset_date != today:
        updated = replace(updated, daily_count=0, daily_reset_date=today)

    if updated.weekly_reset_at is None:
        updated = replace(updated, weekly_reset_at=now)
    elif now - updated.weekly_reset_at >= timedelta(days=7):
        updated = replace(updated, weekly_count=0, weekly_reset_at=now)

    return updated


def evaluate_upgrade_gates(
    friction: FrictionContext,
    state: UpgradeEngineState,
    user_tier: str,
    is_trialing: bool,
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG
) -> UpgradeDecision:
    """
    Decide se um prompt de upgrade pode ser exibido.

    Args:
        friction: Fricção detectada
        state: Estado do motor de prompts
        user_tier: Plano do usuário (free/premium)
        is_trialing: Se o usuário está em período de teste
        now: Momento da avaliação

    Returns:
        UpgradeDecision com should_show ou o portão que bloqueou
    """
    now = now or datetime.now()
    limits = config.upgrade

    if state.signup_at is not None:
        hours_since_signup = (now - state.signup_at).total_seconds() / 3600
        if hours_since_signup < limits.new_user_grace_hours:
            return _blocked(
                UpgradeGate.NEW_USER_GRACE,
                f"Usuário novo: {round(hours_since_signup)}h < {limits.new_user_grace_hours}h",
            )

    if user_tier == PREMIUM_TIER:
        return _blocked(UpgradeGate.TIER_CHECK, "Usuário já é premium")

    if state.permanently_silenced:
        return _blocked(UpgradeGate.DISMISS_TRACKING, "Prompts silenciados permanentemente")

    if state.silence_until is not None and now < state.silence_until:
        return _blocked(UpgradeGate.COOLDOWN, "Período de silêncio ativo")

    if state.last_prompt_shown_at is not None:
        hours_since_shown = (now - state.last_prompt_shown_at).total_seconds() / 3600
        cooldown = limits.cooldown_after_dismiss_hours if state.last_dismissed_at else limits.cooldown_hours
        if hours_since_shown < cooldown:
            return _blocked(UpgradeGate.COOLDOWN, f"Cooldown: {round(hours_since_shown)}h < {cooldown}h")

    current = check_and_reset_counters(state, now)
    if current.daily_count >= limits.max_per_day:
        return _blocked(UpgradeGate.DAILY_LIMIT, f"Limite diário: {current.daily_count}/{limits.max_per_day}")

    if current.weekly_count >= limits.max_per_week:
        return _blocked(UpgradeGate.WEEKLY_LIMIT, f"Limite semanal: {current.weekly_count}/{limits.max_per_week}")

    if current.dismiss_count >= limits.lifetime_dismiss_limit:
        return _blocked(UpgradeGate.DISMISS_TRACKING, "Limite de dispensas atingido")

    if friction.confidence < limits.min_confidence:
        return _blocked(
            UpgradeGate.CONFIDENCE_THRESHOLD,
            f"Confiança {friction.confidence:.2f} < {limits.min_confidence}",
        )

    if friction.friction_type == FrictionType.TRIAL_EXPIRY and not is_trialing:
        return _blocked(UpgradeGate.CONTEXT_RELEVANCE, "TRIAL_EXPIRY só vale para usuários em teste")

    logger.info(f"UPGRADE | show=true | friction={friction.friction_type.value}")
    return UpgradeDecision(True, f"Todos os portões liberados para {friction.friction_type.value}",
                           friction_type=friction.friction_type)


def record_prompt_shown(state: UpgradeEngineState, now: Optional[datetime] = None) -> UpgradeEngineState:
    now = now or datetime.now()
    current = check_and_reset_counters(state, now)
    return replace(
        current,
        last_prompt_shown_at=now,
        daily_count=current.daily_count + 1,
        weekly_count=current.weekly_count + 1,
    )


def record_prompt_dismissed(
    state: UpgradeEngineState,
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG
) -> UpgradeEngineState:
    """
    Registra uma dispensa.

    A partir de 5 dispensas cada nova dispensa silencia por 7 dias;
    com 20 o silêncio é permanente.
    """
    now = now or datetime.now()
    limits = config.upgrade
    dismiss_count = state.dismiss_count + 1
    silence_until = state.silence_until
    permanently_silenced = state.permanently_silenced

    if limits.dismiss_silence_threshold <= dismiss_count < limits.lifetime_dismiss_limit:
        silence_until = now + timedelta(days=limits.dismiss_silence_days)
    if dismiss_count >= limits.lifetime_dismiss_limit:
        permanently_silenced = True

    return replace(
        state,
        dismiss_count=dismiss_count,
        last_dismissed_at=now,
        silence_until=silence_until,
        permanently_silenced=permanently_silenced,
    )


def record_prompt_tapped(state: UpgradeEngineState) -> UpgradeEngineState:
    return replace(state, lifetime_taps=state.lifetime_taps + 1)
