"""
Detector de Fricção
Detectores puros sobre contadores da sessão (não sobre transações) que
alimentam o caminho de decisão dos prompts de upgrade.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from behavioral.settings import DEFAULT_CONFIG, EngineConfig


class FrictionType(Enum):
    """Padrões de fricção detectados"""
    MANUAL_ENTRY_FATIGUE = "MANUAL_ENTRY_FATIGUE"
    RECEIPT_MOMENT = "RECEIPT_MOMENT"
    EMAIL_OPPORTUNITY = "EMAIL_OPPORTUNITY"
    HEALTH_CURIOSITY = "HEALTH_CURIOSITY"
    REPEAT_CATEGORY_ENTRY = "REPEAT_CATEGORY_ENTRY"
    TIME_SPENT_TRACKING = "TIME_SPENT_TRACKING"
    MISSED_TRANSACTION = "MISSED_TRANSACTION"
    FINANCIAL_QUESTION = "FINANCIAL_QUESTION"
    COMPLEX_BUDGET_SETUP = "COMPLEX_BUDGET_SETUP"
    TRIAL_EXPIRY = "TRIAL_EXPIRY"


@dataclass(frozen=True)
class FrictionContext:
    """Fricção detectada"""
    friction_type: FrictionType
    confidence: float
    timestamp: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FrictionCounters:
    """Contadores da sessão atual"""
    session_started_at: datetime
    manual_entries: int = 0
    screen_time_ms: int = 0
    category_repeat_map: Dict[str, int] = field(default_factory=dict)
    last_merchant_name: Optional[str] = None
    health_view_count: int = 0
    budget_edit_count: int = 0


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now()


# === Detectores ===

def detect_manual_entry_fatigue(
    counters: FrictionCounters,
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG
) -> Optional[FrictionContext]:
    """Muitas entradas manuais na sessão"""
    minimum = config.friction.manual_entry_min
    if counters.manual_entries < minimum:
        return None
    confidence = min(0.95, 0.6 + (counters.manual_entries - minimum) * 0.07)
    return FrictionContext(
        FrictionType.MANUAL_ENTRY_FATIGUE, confidence, _now(now),
        {'manual_entries': counters.manual_entries},
    )


def detect_receipt_moment(
    counters: FrictionCounters,
    now: Optional[datetime] = None
) -> Optional[FrictionContext]:
    """Logo após uma entrada manual (momento de oferecer leitura de recibo)"""
    if counters.manual_entries < 1:
        return None
    return FrictionContext(
        FrictionType.RECEIPT_MOMENT, 0.7, _now(now),
        {'manual_entries': counters.manual_entries},
    )


def detect_email_opportunity(
    merchant_name: Optional[str],
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG
) -> Optional[FrictionContext]:
    """Comerciante conhecido por enviar recibo por e-mail"""
    if not merchant_name:
        return None
    lowered = merchant_name.lower()
    if not any(merchant in lowered for merchant in config.email_receipt_merchants):
        return None
    return FrictionContext(
        FrictionType.EMAIL_OPPORTUNITY, 0.85, _now(now),
        {'merchant_name': merchant_name},
    )


def detect_health_curiosity(
    view_count: int,
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG
) -> Optional[FrictionContext]:
    if view_count < config.friction.health_view_min:
        return None
    return FrictionContext(FrictionType.HEALTH_CURIOSITY, 0.7, _now(now), {'view_count': view_count})


def detect_repeat_category_entry(
    counters: FrictionCounters,
    category_id: Optional[str],
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG
) -> Optional[FrictionContext]:
    """Mesma categoria digitada várias vezes na sessão"""
    if not category_id:
        return None
    minimum = config.friction.repeat_category_min
    count = counters.category_repeat_map.get(category_id, 0)
    if count < minimum:
        return None
    confidence = min(0.9, 0.6 + (count - minimum) * 0.1)
    return FrictionContext(
        FrictionType.REPEAT_CATEGORY_ENTRY, confidence, _now(now),
        {'category_id': category_id, 'repeat_count': count},
    )


def detect_time_spent_tracking(
    screen_time_ms: int,
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG
) -> Optional[FrictionContext]:
    if screen_time_ms < config.friction.screen_time_ms:
        return None
    return FrictionContext(
        FrictionType.TIME_SPENT_TRACKING, 0.75, _now(now),
        {'screen_time_ms': screen_time_ms, 'screen_time_minutes': round(screen_time_ms / 60000)},
    )


def detect_missed_transaction_hint(
    days_since_last_entry: int,
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG
) -> Optional[FrictionContext]:
    if days_since_last_entry < config.friction.missed_days_min:
        return None
    return FrictionContext(
        FrictionType.MISSED_TRANSACTION, 0.65, _now(now),
        {'days_since_last_entry': days_since_last_entry},
    )


def detect_financial_question(now: Optional[datetime] = None) -> FrictionContext:
    """Usuário fez uma pergunta financeira (sempre relevante)"""
    return FrictionContext(FrictionType.FINANCIAL_QUESTION, 0.9, _now(now))


def detect_complex_budget_setup(
    edit_count: int,
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG
) -> Optional[FrictionContext]:
    if edit_count < config.friction.budget_edit_min:
        return None
    return FrictionContext(FrictionType.COMPLEX_BUDGET_SETUP, 0.6, _now(now), {'edit_count': edit_count})


def detect_trial_expiry_approaching(
    trial_ends_at: Optional[datetime],
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG
) -> Optional[FrictionContext]:
    """Teste gratuito termina nas próximas horas (0 a 24h)"""
    if trial_ends_at is None:
        return None
    now = _now(now)
    hours_remaining = (trial_ends_at - now).total_seconds() / 3600
    if hours_remaining < 0 or hours_remaining > config.friction.trial_expiry_hours:
        return None
    return FrictionContext(
        FrictionType.TRIAL_EXPIRY, 0.95, now,
        {'hours_remaining': round(hours_remaining)},
    )


def detect_session_friction(
    counters: FrictionCounters,
    category_id: Optional[str] = None,
    days_since_last_entry: int = 0,
    trial_ends_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG
) -> List[FrictionContext]:
    """
    Roda os detectores baseados em contadores.

    Returns:
        Fricções detectadas, da maior para a menor confiança
    """
    now = _now(now)
    detected = [
        detect_manual_entry_fatigue(counters, now, config),
        detect_receipt_moment(counters, now),
        detect_email_opportunity(counters.last_merchant_name, now, config),
        detect_health_curiosity(counters.health_view_count, now, config),
        detect_repeat_category_entry(counters, category_id, now, config),
        detect_time_spent_tracking(counters.screen_time_ms, now, config),
        detect_missed_transaction_hint(days_since_last_entry, now, config),
        detect_complex_budget_setup(counters.budget_edit_count, now, config),
        detect_trial_expiry_approaching(trial_ends_at, now, config),
    ]
    return sorted((item for item in detected if item), key=lambda item: item.confidence, reverse=True)


# === Contadores (puros, devolvem novos contadores) ===

def create_default_counters(now: Optional[datetime] = None) -> FrictionCounters:
    return FrictionCounters(session_started_at=_now(now))


def track_manual_entry(
    counters: FrictionCounters,
    merchant_name: Optional[str] = None,
    category_id: Optional[str] = None
) -> FrictionCounters:
    repeat_map = dict(counters.category_repeat_map)
    if category_id:
        repeat_map[category_id] = repeat_map.get(category_id, 0) + 1
    return replace(
        counters,
        manual_entries=counters.manual_entries + 1,
        last_merchant_name=merchant_name,
        category_repeat_map=repeat_map,
    )


def track_screen_time(counters: FrictionCounters, additional_ms: int) -> FrictionCounters:
    return replace(counters, screen_time_ms=counters.screen_time_ms + additional_ms)


def track_health_view(counters: FrictionCounters) -> FrictionCounters:
    return replace(counters, health_view_count=counters.health_view_count + 1)


def track_budget_edit(counters: FrictionCounters) -> FrictionCounters:
    return replace(counters, budget_edit_count=counters.budget_edit_count + 1)


def start_new_session(counters: FrictionCounters, now: Optional[datetime] = None) -> FrictionCounters:
    """Zera os contadores da sessão"""
    return create_default_counters(now)
