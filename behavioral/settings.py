"""
Configuração imutável do motor comportamental

Os limiares vêm de config.py e são agrupados em dataclasses congeladas,
injetadas em cada detector/motor. Testes criam variantes com
dataclasses.replace sem tocar em estado global.
"""
from dataclasses import dataclass, field
from typing import Tuple

from config import (
    THRESHOLDS,
    LIMITS,
    FRICTION_THRESHOLDS,
    UPGRADE_LIMITS,
    COMFORT_CATEGORIES,
    EMAIL_RECEIPT_MERCHANTS,
    MIN_TRANSACTIONS_FOR_EVALUATION,
)


def _check_ratio(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} deve estar entre 0 e 1 (recebido {value})")


def _check_non_negative(name: str, value: float) -> None:
    if value < 0:
        raise ValueError(f"{name} não pode ser negativo (recebido {value})")


@dataclass(frozen=True)
class Thresholds:
    """Limiares de confiança, detecção, vitórias e sazonalidade"""
    activation: float = THRESHOLDS["ACTIVATION"]
    intervention: float = THRESHOLDS["INTERVENTION"]
    deactivation: float = THRESHOLDS["DEACTIVATION"]

    small_transaction_max: float = THRESHOLDS["SMALL_TRANSACTION_MAX"]
    small_recurring_min_count: int = THRESHOLDS["SMALL_RECURRING_MIN_COUNT"]
    small_recurring_days: int = THRESHOLDS["SMALL_RECURRING_DAYS"]
    small_recurring_category_min: int = THRESHOLDS["SMALL_RECURRING_CATEGORY_MIN"]
    small_recurring_amount_cap: float = THRESHOLDS["SMALL_RECURRING_AMOUNT_CAP"]

    stress_late_night_start: int = THRESHOLDS["STRESS_LATE_NIGHT_START"]
    stress_late_night_end: int = THRESHOLDS["STRESS_LATE_NIGHT_END"]
    stress_post_work_start: int = THRESHOLDS["STRESS_POST_WORK_START"]
    stress_post_work_end: int = THRESHOLDS["STRESS_POST_WORK_END"]
    stress_min_occurrences: int = THRESHOLDS["STRESS_MIN_OCCURRENCES"]
    stress_cluster_window_hours: float = THRESHOLDS["STRESS_CLUSTER_WINDOW_HOURS"]
    stress_lookback_days: int = THRESHOLDS["STRESS_LOOKBACK_DAYS"]

    end_of_month_start_day: int = THRESHOLDS["END_OF_MONTH_START_DAY"]
    end_of_month_min_transactions: int = THRESHOLDS["END_OF_MONTH_MIN_TRANSACTIONS"]
    end_of_month_spike_ratio: float = THRESHOLDS["END_OF_MONTH_SPIKE_RATIO"]

    confidence_smoothing_factor: float = THRESHOLDS["CONFIDENCE_SMOOTHING_FACTOR"]
    confidence_decay_per_evaluation: float = THRESHOLDS["CONFIDENCE_DECAY_PER_EVALUATION"]
    confidence_min: float = THRESHOLDS["CONFIDENCE_DECAY_MIN"]
    confidence_ceiling: float = THRESHOLDS["CONFIDENCE_CEILING"]

    win_improvement_threshold: float = THRESHOLDS["WIN_IMPROVEMENT_THRESHOLD"]
    win_pattern_break_reduction: float = THRESHOLDS["WIN_PATTERN_BREAK_REDUCTION"]
    win_silent_reduction: float = THRESHOLDS["WIN_SILENT_REDUCTION"]
    win_min_transactions: int = THRESHOLDS["WIN_MIN_TRANSACTIONS"]
    win_streak_milestones: Tuple[int, ...] = tuple(THRESHOLDS["WIN_STREAK_MILESTONES"])
    relapse_lookback_days: int = THRESHOLDS["RELAPSE_LOOKBACK_DAYS"]
    streak_break_inactivity_days: int = THRESHOLDS["STREAK_BREAK_INACTIVITY_DAYS"]
    streak_break_relapse_threshold: float = THRESHOLDS["STREAK_BREAK_RELAPSE_THRESHOLD"]

    seasonal_calibration_days: int = THRESHOLDS["SEASONAL_CALIBRATION_DAYS"]
    seasonal_variance_threshold: float = THRESHOLDS["SEASONAL_VARIANCE_THRESHOLD"]

    confidence_history_max_entries: int = THRESHOLDS["CONFIDENCE_HISTORY_MAX_ENTRIES"]
    confidence_history_min_interval_hours: float = THRESHOLDS["CONFIDENCE_HISTORY_MIN_INTERVAL_HOURS"]

    def __post_init__(self):
        for name in ("activation", "intervention", "deactivation",
                     "confidence_smoothing_factor", "confidence_min", "confidence_ceiling"):
            _check_ratio(name, getattr(self, name))
        if self.deactivation >= self.activation:
            raise ValueError("deactivation deve ser menor que activation")
        if self.confidence_min > self.confidence_ceiling:
            raise ValueError("confidence_min deve ser menor ou igual a confidence_ceiling")
        _check_non_negative("confidence_decay_per_evaluation", self.confidence_decay_per_evaluation)
        _check_non_negative("small_transaction_max", self.small_transaction_max)


@dataclass(frozen=True)
class Limits:
    """Limites de frequência, cooldowns e retirada"""
    max_interventions_per_day: int = LIMITS["MAX_INTERVENTIONS_PER_DAY"]
    max_interventions_per_week: int = LIMITS["MAX_INTERVENTIONS_PER_WEEK"]
    cooldown_hours: float = LIMITS["COOLDOWN_HOURS"]
    extended_cooldown_hours: float = LIMITS["EXTENDED_COOLDOWN_HOURS"]
    ignore_cooldown_hours: float = LIMITS["IGNORE_COOLDOWN_HOURS"]
    dismiss_cooldown_hours: float = LIMITS["DISMISS_COOLDOWN_HOURS"]
    reduce_frequency_hours: float = LIMITS["REDUCE_FREQUENCY_HOURS"]
    ignored_threshold: int = LIMITS["IGNORED_THRESHOLD"]
    dismissed_threshold: int = LIMITS["DISMISSED_THRESHOLD"]
    withdrawal_days: int = LIMITS["WITHDRAWAL_DAYS"]
    annoyance_withdrawal_days: int = LIMITS["ANNOYANCE_WITHDRAWAL_DAYS"]
    annoyance_dismiss_count: int = LIMITS["ANNOYANCE_DISMISS_COUNT"]
    annoyance_window_hours: float = LIMITS["ANNOYANCE_WINDOW_HOURS"]
    message_max_words: int = LIMITS["MESSAGE_MAX_WORDS"]
    message_max_sentences: int = LIMITS["MESSAGE_MAX_SENTENCES"]
    message_recent_memory: int = LIMITS["MESSAGE_RECENT_MEMORY"]
    inactive_days_for_reengagement: int = LIMITS["INACTIVE_DAYS_FOR_REENGAGEMENT"]

    def __post_init__(self):
        for name, value in self.__dict__.items():
            _check_non_negative(name, value)


@dataclass(frozen=True)
class FrictionThresholds:
    """Limiares dos detectores de fricção"""
    manual_entry_min: int = FRICTION_THRESHOLDS["MANUAL_ENTRY_MIN"]
    repeat_category_min: int = FRICTION_THRESHOLDS["REPEAT_CATEGORY_MIN"]
    screen_time_ms: int = FRICTION_THRESHOLDS["SCREEN_TIME_MS"]
    health_view_min: int = FRICTION_THRESHOLDS["HEALTH_VIEW_MIN"]
    missed_days_min: int = FRICTION_THRESHOLDS["MISSED_DAYS_MIN"]
    budget_edit_min: int = FRICTION_THRESHOLDS["BUDGET_EDIT_MIN"]
    trial_expiry_hours: float = FRICTION_THRESHOLDS["TRIAL_EXPIRY_HOURS"]

    def __post_init__(self):
        for name, value in self.__dict__.items():
            _check_non_negative(name, value)


@dataclass(frozen=True)
class UpgradeLimits:
    """Limites do caminho de decisão de prompts de upgrade"""
    cooldown_hours: float = UPGRADE_LIMITS["COOLDOWN_HOURS"]
    cooldown_after_dismiss_hours: float = UPGRADE_LIMITS["COOLDOWN_AFTER_DISMISS_HOURS"]
    max_per_day: int = UPGRADE_LIMITS["MAX_PER_DAY"]
    max_per_week: int = UPGRADE_LIMITS["MAX_PER_WEEK"]
    dismiss_silence_threshold: int = UPGRADE_LIMITS["DISMISS_SILENCE_THRESHOLD"]
    dismiss_silence_days: int = UPGRADE_LIMITS["DISMISS_SILENCE_DAYS"]
    lifetime_dismiss_limit: int = UPGRADE_LIMITS["LIFETIME_DISMISS_LIMIT"]
    min_confidence: float = UPGRADE_LIMITS["MIN_CONFIDENCE"]
    new_user_grace_hours: float = UPGRADE_LIMITS["NEW_USER_GRACE_HOURS"]

    def __post_init__(self):
        _check_ratio("min_confidence", self.min_confidence)


@dataclass(frozen=True)
class EngineConfig:
    """Pacote imutável com todos os limiares usados pelo motor"""
    thresholds: Thresholds = field(default_factory=Thresholds)
    limits: Limits = field(default_factory=Limits)
    friction: FrictionThresholds = field(default_factory=FrictionThresholds)
    upgrade: UpgradeLimits = field(default_factory=UpgradeLimits)
    comfort_categories: Tuple[str, ...] = tuple(COMFORT_CATEGORIES)
    email_receipt_merchants: Tuple[str, ...] = tuple(EMAIL_RECEIPT_MERCHANTS)
    min_transactions_for_evaluation: int = MIN_TRANSACTIONS_FOR_EVALUATION

    def is_comfort_category(self, category_id) -> bool:
        return bool(category_id) and category_id.lower() in self.comfort_categories


DEFAULT_CONFIG = EngineConfig()
