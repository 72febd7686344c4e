"""
Tratador de Falhas
Traduz respostas negativas do usuário em ações corretivas no perfil
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from behavioral.models import (
    Intervention,
    UserBehavioralProfile,
    UserResponse,
    UserState,
)
from behavioral.settings import DEFAULT_CONFIG, EngineConfig
from utils.logger import get_logger, log_failure

logger = get_logger(__name__)


class FailureMode(Enum):
    USER_IGNORED = "USER_IGNORED"
    USER_DISMISSED = "USER_DISMISSED"
    USER_ANNOYED = "USER_ANNOYED"
    USER_CHURNING = "USER_CHURNING"
    CONFIDENCE_DROPPED = "CONFIDENCE_DROPPED"


class FailureAction(Enum):
    WITHDRAW = "withdraw"
    EXTEND_COOLDOWN = "extend_cooldown"
    RESET = "reset"
    REDUCE_FREQUENCY = "reduce_frequency"


@dataclass(frozen=True)
class FailureResponse:
    action: FailureAction
    reason: str
    duration_hours: Optional[float] = None


@dataclass(frozen=True)
class AnnoyanceSignal:
    signal_type: str      # rapid_dismiss | settings_change
    severity: str
    timestamp: datetime
    dismiss_count: int = 0


def _coerce_mode(mode: Any) -> Optional[FailureMode]:
    if isinstance(mode, FailureMode):
        return mode
    try:
        return FailureMode(str(mode).upper())
    except ValueError:
        return None


def handle_failure(
    mode: Any,
    profile: UserBehavioralProfile,
    config: EngineConfig = DEFAULT_CONFIG
) -> FailureResponse:
    """
    Mapeia um modo de falha para uma ação corretiva.

    Os contadores do perfil são lidos antes do incremento; a comparação
    com o limiar usa o valor já incrementado.

    Args:
        mode: FailureMode (ou string equivalente)
        profile: Perfil antes de registrar a resposta

    Returns:
        FailureResponse com ação, duração em horas e motivo
    """
    limits = config.limits
    failure_mode = _coerce_mode(mode)

    if failure_mode == FailureMode.USER_IGNORED:
        count = profile.ignored_interventions + 1
        if count >= limits.ignored_threshold:
            response = FailureResponse(
                FailureAction.WITHDRAW,
                f"Usuário ignorou {count} intervenções",
                limits.withdrawal_days * 24,
            )
        else:
            response = FailureResponse(
                FailureAction.EXTEND_COOLDOWN,
                f"Intervenção ignorada ({count}/{limits.ignored_threshold})",
                limits.ignore_cooldown_hours,
            )

    elif failure_mode == FailureMode.USER_DISMISSED:
        count = profile.dismissed_count + 1
        if count >= limits.dismissed_threshold:
            response = FailureResponse(
                FailureAction.WITHDRAW,
                f"Usuário dispensou {count} intervenções",
                limits.withdrawal_days * 24,
            )
        else:
            response = FailureResponse(
                FailureAction.EXTEND_COOLDOWN,
                f"Intervenção dispensada ({count}/{limits.dismissed_threshold})",
                limits.dismiss_cooldown_hours,
            )

    elif failure_mode == FailureMode.USER_ANNOYED:
        response = FailureResponse(
            FailureAction.WITHDRAW,
            "Irritação detectada: retirada prolongada",
            limits.annoyance_withdrawal_days * 24,
        )

    elif failure_mode == FailureMode.USER_CHURNING:
        response = FailureResponse(FailureAction.RESET, "Usuário inativo: reiniciando o perfil")

    elif failure_mode == FailureMode.CONFIDENCE_DROPPED:
        response = FailureResponse(
            FailureAction.REDUCE_FREQUENCY,
            "Confiança caiu: reduzindo frequência",
            limits.reduce_frequency_hours,
        )

    else:
        response = FailureResponse(
            FailureAction.REDUCE_FREQUENCY,
            f"Modo de falha desconhecido {mode!r}: reduzindo frequência",
            limits.reduce_frequency_hours,
        )

    log_failure(logger, profile.user_id, failure_mode or mode, response.action, response.reason)
    return response


def detect_annoyance(
    recent_interventions: Iterable[Intervention],
    profile: UserBehavioralProfile,
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG
) -> Optional[AnnoyanceSignal]:
    """
    Detecta sinais de irritação do usuário.

    - rapid_dismiss: 3+ dispensas nas últimas 24h
    - settings_change: intervenções desativadas nas configurações
    """
    now = now or datetime.now()
    limits = config.limits
    window_start = now - timedelta(hours=limits.annoyance_window_hours)

    dismissals = [
        item for item in recent_interventions
        if item.user_response == UserResponse.DISMISSED
        and window_start <= (item.response_at or item.delivered_at) <= now
    ]
    if len(dismissals) >= limits.annoyance_dismiss_count:
        return AnnoyanceSignal('rapid_dismiss', 'high', now, len(dismissals))

    if not profile.intervention_enabled:
        return AnnoyanceSignal('settings_change', 'high', now)

    return None


def calculate_new_state(
    profile: UserBehavioralProfile,
    response: FailureResponse,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Converte a ação em atualizações concretas do perfil.

    Returns:
        Dicionário de campos para UserBehavioralProfile.with_updates()
    """
    now = now or datetime.now()
    action = response.action

    if action == FailureAction.WITHDRAW:
        hours = response.duration_hours if response.duration_hours is not None else 168
        return {
            'user_state': UserState.WITHDRAWN,
            'withdrawal_ends_at': now + timedelta(hours=hours),
            'cooldown_ends_at': None,
            'active_behavior': None,
            'state_changed_at': now,
        }

    if action == FailureAction.RESET:
        return {
            'user_state': UserState.OBSERVING,
            'active_behavior': None,
            'confidence_small_recurring': 0.0,
            'confidence_stress_spending': 0.0,
            'confidence_end_of_month': 0.0,
            'ignored_interventions': 0,
            'dismissed_count': 0,
            'cooldown_ends_at': None,
            'withdrawal_ends_at': None,
            'state_changed_at': now,
        }

    # Uma retirada em vigor já é mais forte que qualquer cooldown
    if profile.user_state == UserState.WITHDRAWN:
        return {}

    if action == FailureAction.EXTEND_COOLDOWN:
        hours = response.duration_hours if response.duration_hours is not None else 48
        updates = {'cooldown_ends_at': now + timedelta(hours=hours)}
        # COOLDOWN exige comportamento ativo
        if profile.active_behavior is not None:
            updates['user_state'] = UserState.COOLDOWN
            if profile.user_state != UserState.COOLDOWN:
                updates['state_changed_at'] = now
        return updates

    # reduce_frequency
    hours = response.duration_hours if response.duration_hours is not None else 24
    return {'cooldown_ends_at': now + timedelta(hours=hours)}
