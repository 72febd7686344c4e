"""
Calibrador de Confiança
Suavização exponencial, ajuste sazonal e limites de confiança
"""
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from behavioral.models import (
    BehaviorType,
    ConfidenceSnapshot,
    SeasonalFactors,
    Transaction,
)
from behavioral.settings import DEFAULT_CONFIG, EngineConfig
from utils.logger import get_logger

logger = get_logger(__name__)

HOLIDAY_MULTIPLIER = 1.2
MONTH_FACTOR_RANGE = (0.7, 1.5)
WEEKDAY_FACTOR_RANGE = (0.8, 1.4)


def clamp_confidence(value: float, config: EngineConfig = DEFAULT_CONFIG) -> float:
    """Limita a confiança a [MIN, CEILING]"""
    thresholds = config.thresholds
    return max(thresholds.confidence_min, min(thresholds.confidence_ceiling, float(value)))


def smooth_confidence(existing: float, raw: float, config: EngineConfig = DEFAULT_CONFIG) -> float:
    """
    Suavização exponencial contra a confiança existente.

    Sem histórico (existing <= 0) o valor bruto é usado diretamente.
    """
    if existing > 0:
        alpha = config.thresholds.confidence_smoothing_factor
        return existing * alpha + raw * (1 - alpha)
    return raw


def decay_confidence(existing: float, config: EngineConfig = DEFAULT_CONFIG) -> float:
    """Decaimento fixo por avaliação quando o comportamento não é detectado"""
    thresholds = config.thresholds
    return max(thresholds.confidence_min, existing - thresholds.confidence_decay_per_evaluation)


def is_holiday_period(now: datetime) -> bool:
    """Janela de festas: 15/nov até 5/jan"""
    if now.month == 11:
        return now.day >= 15
    if now.month == 12:
        return True
    return now.month == 1 and now.day <= 5


def get_seasonal_factor(factors: SeasonalFactors, now: Optional[datetime] = None) -> float:
    """Produto do fator do mês, do dia da semana e do período de festas"""
    now = now or datetime.now()
    factor = factors.monthly[now.month - 1] * factors.weekday[now.weekday()]
    if factors.is_holiday_period:
        factor *= HOLIDAY_MULTIPLIER
    return factor


def apply_seasonal_adjustment(
    raw: float,
    factors: SeasonalFactors,
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG
) -> float:
    """
    Desconta a confiança em períodos de gasto esperado.

    Fator maior que 1 reduz a confiança; o resultado é sempre limitado.
    """
    factor = get_seasonal_factor(factors, now)
    if factor <= 0:
        return clamp_confidence(raw, config)
    return clamp_confidence(raw / factor, config)


def history_span_days(transactions: Sequence[Transaction]) -> int:
    if not transactions:
        return 0
    timestamps = [txn.timestamp for txn in transactions]
    return (max(timestamps) - min(timestamps)).days


def calibrate_seasonal_factors(
    transactions: Sequence[Transaction],
    existing: SeasonalFactors,
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG
) -> SeasonalFactors:
    """
    Recalcula os fatores sazonais a partir do histórico do usuário.

    Cada fator é o gasto médio absoluto do período dividido pela média
    geral, limitado a [0.7, 1.5] para meses e [0.8, 1.4] para dias da
    semana. Períodos sem dados mantêm o fator existente.

    Args:
        transactions: Histórico de transações
        existing: Fatores atuais
        now: Momento da calibração (define a flag de festas)
        config: Configuração do motor

    Returns:
        Novos fatores, ou os existentes se o histórico for insuficiente
    """
    now = now or datetime.now()
    required_days = config.thresholds.seasonal_calibration_days

    span = history_span_days(transactions)
    if span < required_days:
        logger.debug(f"Calibração ignorada: histórico de {span} dias (< {required_days})")
        return existing

    expenses = [txn for txn in transactions if txn.is_expense]
    if not expenses:
        return existing

    df = pd.DataFrame({
        'timestamp': pd.to_datetime([txn.timestamp for txn in expenses]),
        'amount': [abs(txn.amount) for txn in expenses],
    })
    overall = df['amount'].mean()
    if overall <= 0:
        return existing

    monthly_avg = df.groupby(df['timestamp'].dt.month)['amount'].mean()
    weekday_avg = df.groupby(df['timestamp'].dt.dayofweek)['amount'].mean()

    monthly = list(existing.monthly)
    for month, avg in monthly_avg.items():
        monthly[int(month) - 1] = float(np.clip(avg / overall, *MONTH_FACTOR_RANGE))

    weekday = list(existing.weekday)
    for day, avg in weekday_avg.items():
        weekday[int(day)] = float(np.clip(avg / overall, *WEEKDAY_FACTOR_RANGE))

    logger.info(
        f"Fatores sazonais recalibrados | meses={len(monthly_avg)} | "
        f"dias={len(weekday_avg)} | transacoes={len(expenses)}"
    )

    return SeasonalFactors(
        monthly=tuple(monthly),
        weekday=tuple(weekday),
        is_holiday_period=is_holiday_period(now),
        last_calibrated_at=now,
    )


def needs_recalibration(
    factors: SeasonalFactors,
    transactions: Sequence[Transaction],
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG
) -> bool:
    """Verifica se já passou o intervalo de calibração e se há histórico suficiente"""
    now = now or datetime.now()
    interval = timedelta(days=config.thresholds.seasonal_calibration_days)
    if factors.last_calibrated_at is not None and now - factors.last_calibrated_at < interval:
        return False
    return history_span_days(transactions) >= config.thresholds.seasonal_calibration_days


def append_confidence_history(
    history: Iterable[ConfidenceSnapshot],
    snapshot: ConfidenceSnapshot,
    config: EngineConfig = DEFAULT_CONFIG
) -> Tuple[ConfidenceSnapshot, ...]:
    """
    Adiciona um snapshot ao histórico limitado.

    Snapshots mais próximos que o intervalo mínimo do último são
    descartados; apenas as últimas N entradas são mantidas.
    """
    entries = tuple(history)
    min_interval = timedelta(hours=config.thresholds.confidence_history_min_interval_hours)
    if entries and snapshot.timestamp - entries[-1].timestamp < min_interval:
        return entries
    max_entries = config.thresholds.confidence_history_max_entries
    return (entries + (snapshot,))[-max_entries:]


def confidence_trend(history: Sequence[ConfidenceSnapshot], behavior: BehaviorType) -> float:
    """
    Inclinação da confiança por dia (regressão linear sobre o histórico).

    Returns:
        Variação média diária; 0.0 com menos de dois pontos
    """
    if len(history) < 2:
        return 0.0
    start = history[0].timestamp
    days = np.array([(snap.timestamp - start).total_seconds() / 86400 for snap in history])
    if np.ptp(days) == 0:
        return 0.0
    values = np.array([getattr(snap, behavior.value) for snap in history])
    slope, _ = np.polyfit(days, values, 1)
    return float(slope)
