"""
Detector de Vitórias e Recaídas

Compara a semana atual com a anterior para o comportamento ativo:
- vitórias: quebra de padrão, melhora, marcos de sequência
- recaídas: aumento percentual após uma vitória recente
- quebra de sequência: recaída, inatividade ou retirada
"""
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Sequence, Tuple

from behavioral.detection import is_stress_hour
from behavioral.messages import (
    get_streak_break_message,
    select_relapse_message,
    select_win_message,
)
from behavioral.models import (
    BehaviorType,
    RelapseSeverity,
    Transaction,
    UserBehavioralProfile,
    UserState,
    WinType,
)
from behavioral.settings import DEFAULT_CONFIG, EngineConfig
from utils.logger import get_logger, log_win

logger = get_logger(__name__)


@dataclass(frozen=True)
class WinResult:
    has_win: bool
    win_type: Optional[WinType] = None
    message: str = ""
    should_celebrate: bool = False
    behavior: Optional[BehaviorType] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RelapseResult:
    is_relapse: bool
    severity: Optional[RelapseSeverity] = None
    increase_percent: int = 0
    message: str = ""
    behavior: Optional[BehaviorType] = None


@dataclass(frozen=True)
class StreakBreak:
    """Evento de quebra de sequência"""
    reason: str
    streak_length: int
    broken_at: datetime
    behavior: Optional[BehaviorType] = None
    message: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


NO_WIN = WinResult(has_win=False)
NO_RELAPSE = RelapseResult(is_relapse=False)


def matches_behavior(txn: Transaction, behavior: BehaviorType, config: EngineConfig = DEFAULT_CONFIG) -> bool:
    """Verifica se a transação é evidência do comportamento"""
    if not txn.is_expense:
        return False
    if behavior == BehaviorType.SMALL_RECURRING:
        return abs(txn.amount) <= config.thresholds.small_transaction_max
    if behavior == BehaviorType.STRESS_SPENDING:
        return is_stress_hour(txn.timestamp.hour, config) and config.is_comfort_category(txn.category_id)
    if behavior == BehaviorType.END_OF_MONTH:
        return txn.timestamp.day >= config.thresholds.end_of_month_start_day
    return False


def weekly_counts(
    transactions: Sequence[Transaction],
    behavior: BehaviorType,
    now: datetime,
    config: EngineConfig = DEFAULT_CONFIG
) -> Tuple[int, int]:
    """
    Conta transações do comportamento na semana atual e na anterior.

    Returns:
        (semana atual, semana anterior)
    """
    week_ago = now - timedelta(days=7)
    two_weeks_ago = now - timedelta(days=14)
    this_week = last_week = 0
    for txn in transactions:
        if not matches_behavior(txn, behavior, config):
            continue
        if week_ago <= txn.timestamp <= now:
            this_week += 1
        elif two_weeks_ago <= txn.timestamp < week_ago:
            last_week += 1
    return this_week, last_week


def detect_win(
    user_id: str,
    profile: UserBehavioralProfile,
    transactions: Sequence[Transaction],
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG,
    rng: Optional[random.Random] = None
) -> WinResult:
    """
    Detecta vitória comportamental para o comportamento ativo.

    Ordem: quebra de padrão, marco de sequência, melhora.

    Args:
        user_id: Usuário avaliado
        profile: Perfil atual
        transactions: Histórico recente (ao menos duas semanas)
        now: Momento da avaliação

    Returns:
        WinResult (has_win=False quando não há comportamento ativo ou transações)
    """
    now = now or datetime.now()
    t = config.thresholds
    behavior = profile.active_behavior
    if behavior is None or not transactions:
        return NO_WIN

    this_week, last_week = weekly_counts(transactions, behavior, now, config)
    reduction = (last_week - this_week) / last_week if last_week > 0 else 0.0
    metadata = {
        'this_week_count': this_week,
        'last_week_count': last_week,
        'reduction_percent': round(reduction * 100),
    }

    # Quebra de padrão
    if len(transactions) >= t.win_min_transactions and last_week >= 3:
        if reduction >= t.win_pattern_break_reduction:
            log_win(logger, user_id, WinType.PATTERN_BREAK, behavior)
            return WinResult(
                has_win=True,
                win_type=WinType.PATTERN_BREAK,
                message=select_win_message(WinType.PATTERN_BREAK, rng),
                should_celebrate=True,
                behavior=behavior,
                metadata=metadata,
            )
        if reduction >= t.win_improvement_threshold:
            return WinResult(
                has_win=True,
                win_type=WinType.SILENT_WIN,
                message=select_win_message(WinType.SILENT_WIN, rng),
                should_celebrate=False,
                behavior=behavior,
                metadata=metadata,
            )

    # Marco de sequência
    if profile.current_streak in t.win_streak_milestones:
        log_win(logger, user_id, WinType.STREAK_MILESTONE, behavior)
        return WinResult(
            has_win=True,
            win_type=WinType.STREAK_MILESTONE,
            message=select_win_message(WinType.STREAK_MILESTONE, rng, {'streak': profile.current_streak}),
            should_celebrate=True,
            behavior=behavior,
            metadata={**metadata, 'streak': profile.current_streak},
        )

    # Melhora
    if last_week >= 3:
        if reduction >= t.win_improvement_threshold:
            log_win(logger, user_id, WinType.IMPROVEMENT, behavior)
            return WinResult(
                has_win=True,
                win_type=WinType.IMPROVEMENT,
                message=select_win_message(WinType.IMPROVEMENT, rng),
                should_celebrate=True,
                behavior=behavior,
                metadata=metadata,
            )
        if reduction >= t.win_silent_reduction:
            return WinResult(
                has_win=True,
                win_type=WinType.SILENT_WIN,
                message=select_win_message(WinType.SILENT_WIN, rng),
                should_celebrate=False,
                behavior=behavior,
                metadata=metadata,
            )

    return NO_WIN


def detect_relapse(
    profile: UserBehavioralProfile,
    behavior: BehaviorType,
    transactions: Sequence[Transaction],
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG,
    rng: Optional[random.Random] = None
) -> RelapseResult:
    """
    Detecta recaída após uma vitória recente.

    Severidade pelo aumento percentual semana a semana:
    >= 100% severe, >= 50% moderate, >= 30% mild.
    """
    now = now or datetime.now()
    t = config.thresholds
    if len(transactions) < t.win_min_transactions:
        return NO_RELAPSE
    if profile.last_win_at is None or (now - profile.last_win_at).days > t.relapse_lookback_days:
        return NO_RELAPSE

    behavior = BehaviorType.parse(behavior)
    this_week, last_week = weekly_counts(transactions, behavior, now, config)

    if last_week > 0:
        increase = round((this_week - last_week) / last_week * 100)
    elif this_week >= 3:
        increase = 100
    else:
        increase = 0

    if increase >= 100:
        severity = RelapseSeverity.SEVERE
    elif increase >= 50:
        severity = RelapseSeverity.MODERATE
    elif increase >= 30:
        severity = RelapseSeverity.MILD
    else:
        return NO_RELAPSE

    logger.info(
        f"RELAPSE | user={profile.user_id} | behavior={behavior.value} | "
        f"severity={severity.value} | increase={increase}%"
    )

    return RelapseResult(
        is_relapse=True,
        severity=severity,
        increase_percent=increase,
        message=select_relapse_message(severity, rng),
        behavior=behavior,
    )


def check_streak_break(
    profile: UserBehavioralProfile,
    transactions: Sequence[Transaction],
    relapse: Optional[RelapseResult] = None,
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG
) -> Optional[StreakBreak]:
    """
    Verifica se a sequência atual deve ser quebrada.

    Returns:
        StreakBreak ou None se a sequência continua
    """
    now = now or datetime.now()
    if profile.current_streak == 0:
        return None

    behavior = profile.active_behavior

    def _break(reason: str, **metadata) -> StreakBreak:
        return StreakBreak(
            reason=reason,
            streak_length=profile.current_streak,
            broken_at=now,
            behavior=behavior,
            message=get_streak_break_message(reason),
            metadata=metadata,
        )

    if relapse is not None and relapse.is_relapse:
        if relapse.severity == RelapseSeverity.SEVERE:
            return _break('severe_regression', increase_percent=relapse.increase_percent)
        if relapse.severity == RelapseSeverity.MODERATE:
            return _break('behavior_relapse', increase_percent=relapse.increase_percent)

    if behavior is not None and transactions:
        matching = [txn.timestamp for txn in transactions if matches_behavior(txn, behavior, config)]
        if matching:
            days_since = (now - max(matching)).days
            if days_since >= config.thresholds.streak_break_inactivity_days:
                return _break('inactivity', days_since_last_behavior=days_since)

    if profile.user_state == UserState.WITHDRAWN:
        return _break(
            'withdrawal_triggered',
            ignored_count=profile.ignored_interventions,
            dismissed_count=profile.dismissed_count,
        )

    return None


def detect_win_with_streak_check(
    user_id: str,
    profile: UserBehavioralProfile,
    transactions: Sequence[Transaction],
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG,
    rng: Optional[random.Random] = None
) -> Tuple[WinResult, Optional[StreakBreak]]:
    """Checa quebra de sequência e depois vitórias"""
    now = now or datetime.now()
    relapse = NO_RELAPSE
    if profile.active_behavior is not None:
        relapse = detect_relapse(profile, profile.active_behavior, transactions, now, config, rng)
    streak_break = check_streak_break(profile, transactions, relapse, now, config)
    win = detect_win(user_id, profile, transactions, now, config, rng)
    return win, streak_break
