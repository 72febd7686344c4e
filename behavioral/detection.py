"""
Detector de Sinais Comportamentais
Varre a janela de transações e produz uma DetectionResult por padrão:
- small_recurring: pequenas compras repetidas na mesma categoria
- stress_spending: gasto em categorias de conforto à noite / pós-trabalho
- end_of_month: pico de gasto diário depois do dia 20
"""
from collections import Counter
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

import numpy as np

from behavioral.calibration import (
    apply_seasonal_adjustment,
    clamp_confidence,
    decay_confidence,
    smooth_confidence,
)
from behavioral.models import (
    BehaviorType,
    BehavioralSignal,
    DetectionResult,
    SeasonalFactors,
    SignalType,
    TimeContext,
    Transaction,
)
from behavioral.settings import DEFAULT_CONFIG, EngineConfig
from utils.logger import get_logger

logger = get_logger(__name__)

# Quantidade de sinais devolvidos como evidência
MAX_SIGNALS = 5


def is_late_night(hour: int, config: EngineConfig = DEFAULT_CONFIG) -> bool:
    """Faixa noturna atravessa a meia-noite (21h-2h)"""
    t = config.thresholds
    return hour >= t.stress_late_night_start or hour <= t.stress_late_night_end


def is_post_work(hour: int, config: EngineConfig = DEFAULT_CONFIG) -> bool:
    t = config.thresholds
    return t.stress_post_work_start <= hour <= t.stress_post_work_end


def is_stress_hour(hour: int, config: EngineConfig = DEFAULT_CONFIG) -> bool:
    return is_late_night(hour, config) or is_post_work(hour, config)


def time_context_for(timestamp: datetime, config: EngineConfig = DEFAULT_CONFIG) -> TimeContext:
    """Classifica o horário/dia de uma transação"""
    if is_late_night(timestamp.hour, config):
        return TimeContext.LATE_NIGHT
    if is_post_work(timestamp.hour, config):
        return TimeContext.POST_WORK
    if timestamp.day >= config.thresholds.end_of_month_start_day:
        return TimeContext.END_OF_MONTH
    return TimeContext.DAYTIME


class SignalDetector:
    """
    Detector de padrões de gasto.

    Funções puras sobre a janela de transações: nada é persistido aqui,
    apenas a confiança suavizada segue para o perfil.
    """

    def __init__(self, config: EngineConfig = DEFAULT_CONFIG):
        self.config = config

    # === Helpers ===

    def _no_detection(
        self,
        behavior: BehaviorType,
        existing_confidence: float,
        transactions_analyzed: int = 0,
        **metadata
    ) -> DetectionResult:
        """Resultado sem detecção: a confiança existente decai um passo"""
        return DetectionResult(
            behavior=behavior,
            detected=False,
            confidence=decay_confidence(existing_confidence, self.config),
            signals=(),
            metadata={'transactions_analyzed': transactions_analyzed, **metadata},
        )

    def _finalize(self, raw: float, existing_confidence: float) -> float:
        smoothed = smooth_confidence(existing_confidence, raw, self.config)
        return clamp_confidence(smoothed, self.config)

    # === Pequenas compras recorrentes ===

    def detect_small_recurring(
        self,
        transactions: Sequence[Transaction],
        existing_confidence: float = 0.0,
        now: Optional[datetime] = None
    ) -> DetectionResult:
        """
        Detecta pequenas compras repetidas na mesma categoria.

        Args:
            transactions: Janela de transações (despesas negativas)
            existing_confidence: Confiança atual do perfil
            now: Momento da avaliação

        Returns:
            DetectionResult com metadata dominant_category, count e total
        """
        now = now or datetime.now()
        t = self.config.thresholds
        behavior = BehaviorType.SMALL_RECURRING
        cutoff = now - timedelta(days=t.small_recurring_days)

        small = sorted(
            (
                txn for txn in transactions
                if txn.is_expense
                and abs(txn.amount) <= t.small_transaction_max
                and cutoff <= txn.timestamp <= now
            ),
            key=lambda txn: txn.timestamp,
        )

        if len(small) < t.small_recurring_min_count:
            return self._no_detection(behavior, existing_confidence, len(small))

        # Agrupa por categoria mantendo a ordem de aparição (desempate)
        by_category: Dict[str, List[Transaction]] = {}
        for txn in small:
            by_category.setdefault(txn.category, []).append(txn)

        dominant = None
        for category, items in by_category.items():
            if dominant is None or len(items) > len(by_category[dominant]):
                dominant = category

        dominant_txns = by_category[dominant]
        count = len(dominant_txns)
        if count < t.small_recurring_category_min:
            return self._no_detection(behavior, existing_confidence, len(small), dominant_category=dominant)

        total = sum(abs(txn.amount) for txn in dominant_txns)
        frequency_span = t.small_recurring_min_count - t.small_recurring_category_min
        frequency_score = min(1.0, max(0.0, (count - t.small_recurring_category_min) / frequency_span))
        amount_score = min(1.0, total / t.small_recurring_amount_cap)

        hour_counts = Counter(txn.timestamp.hour for txn in dominant_txns)
        habituality_score = min(1.0, max(hour_counts.values()) / 3)

        raw = 0.40 * frequency_score + 0.30 * amount_score + 0.30 * habituality_score
        confidence = self._finalize(raw, existing_confidence)

        signals = tuple(
            BehavioralSignal(
                signal_type=SignalType.SMALL_RECURRING_PURCHASE,
                strength=max(0.0, 1 - abs(txn.amount) / t.small_transaction_max) if t.small_transaction_max else 0.0,
                transaction_id=txn.id,
                time_context=time_context_for(txn.timestamp, self.config),
                category_id=txn.category_id,
                reason=f"R$ {abs(txn.amount):.2f} em {txn.category}",
                timestamp=txn.timestamp,
            )
            for txn in dominant_txns[-MAX_SIGNALS:]
        )

        logger.debug(
            f"small_recurring detectado | categoria={dominant} | count={count} | "
            f"raw={raw:.2f} | confidence={confidence:.2f}"
        )

        return DetectionResult(
            behavior=behavior,
            detected=True,
            confidence=confidence,
            signals=signals,
            metadata={
                'dominant_category': dominant,
                'count': count,
                'total': round(total, 2),
                'transactions_analyzed': len(small),
                'habitual_hour': hour_counts.most_common(1)[0][0],
            },
        )

    # === Gasto por estresse ===

    def detect_stress_spending(
        self,
        transactions: Sequence[Transaction],
        existing_confidence: float = 0.0,
        now: Optional[datetime] = None
    ) -> DetectionResult:
        """
        Detecta gasto emocional em categorias de conforto.

        Compras tarde da noite pesam 0.9, pós-trabalho 0.7. Pares de
        compras consecutivas dentro da janela de cluster aumentam a
        confiança.
        """
        now = now or datetime.now()
        t = self.config.thresholds
        behavior = BehaviorType.STRESS_SPENDING
        cutoff = now - timedelta(days=t.stress_lookback_days)

        comfort = sorted(
            (
                txn for txn in transactions
                if txn.is_expense
                and cutoff <= txn.timestamp <= now
                and self.config.is_comfort_category(txn.category_id)
            ),
            key=lambda txn: txn.timestamp,
        )

        signals: List[BehavioralSignal] = []
        for txn in comfort:
            hour = txn.timestamp.hour
            if is_late_night(hour, self.config):
                signals.append(BehavioralSignal(
                    signal_type=SignalType.LATE_NIGHT_COMFORT,
                    strength=0.9,
                    transaction_id=txn.id,
                    time_context=TimeContext.LATE_NIGHT,
                    category_id=txn.category_id,
                    reason=f"{txn.category} tarde da noite às {hour}h",
                    timestamp=txn.timestamp,
                ))
            elif is_post_work(hour, self.config):
                signals.append(BehavioralSignal(
                    signal_type=SignalType.POST_WORK_COMFORT,
                    strength=0.7,
                    transaction_id=txn.id,
                    time_context=TimeContext.POST_WORK,
                    category_id=txn.category_id,
                    reason=f"{txn.category} depois do trabalho às {hour}h",
                    timestamp=txn.timestamp,
                ))

        if len(signals) < t.stress_min_occurrences:
            return self._no_detection(behavior, existing_confidence, len(comfort), total_signals=len(signals))

        # Pares adjacentes dentro da janela de cluster
        start = signals[0].timestamp
        offsets_hours = np.array([(s.timestamp - start).total_seconds() / 3600 for s in signals])
        cluster_count = int(np.count_nonzero(np.diff(offsets_hours) <= t.stress_cluster_window_hours))

        strengths = np.array([s.strength for s in signals])
        frequency_score = min(1.0, len(signals) / 8)
        cluster_score = min(1.0, cluster_count / 3)
        intensity_score = float(strengths.mean())

        raw = 0.35 * frequency_score + 0.30 * cluster_score + 0.35 * intensity_score
        confidence = self._finalize(raw, existing_confidence)

        late_night_count = sum(1 for s in signals if s.signal_type == SignalType.LATE_NIGHT_COMFORT)

        logger.debug(
            f"stress_spending detectado | sinais={len(signals)} | clusters={cluster_count} | "
            f"confidence={confidence:.2f}"
        )

        return DetectionResult(
            behavior=behavior,
            detected=True,
            confidence=confidence,
            signals=tuple(signals[-MAX_SIGNALS:]),
            metadata={
                'total_signals': len(signals),
                'late_night_count': late_night_count,
                'post_work_count': len(signals) - late_night_count,
                'cluster_count': cluster_count,
                'transactions_analyzed': len(comfort),
            },
        )

    # === Colapso de fim de mês ===

    def detect_end_of_month(
        self,
        transactions: Sequence[Transaction],
        existing_confidence: float = 0.0,
        now: Optional[datetime] = None
    ) -> DetectionResult:
        """
        Compara a taxa diária de gasto do fim do mês com a do início.

        Só avalia a partir do dia de início do período final (21).
        """
        now = now or datetime.now()
        t = self.config.thresholds
        behavior = BehaviorType.END_OF_MONTH
        early_last_day = t.end_of_month_start_day - 1

        if now.day < t.end_of_month_start_day:
            return self._no_detection(behavior, existing_confidence, day_of_month=now.day)

        month_expenses = sorted(
            (
                txn for txn in transactions
                if txn.is_expense
                and txn.timestamp.year == now.year
                and txn.timestamp.month == now.month
                and txn.timestamp <= now
            ),
            key=lambda txn: txn.timestamp,
        )

        if len(month_expenses) < t.end_of_month_min_transactions:
            return self._no_detection(behavior, existing_confidence, len(month_expenses), day_of_month=now.day)

        early = [txn for txn in month_expenses if txn.timestamp.day <= early_last_day]
        late = [txn for txn in month_expenses if txn.timestamp.day >= t.end_of_month_start_day]

        if not late:
            return self._no_detection(behavior, existing_confidence, len(month_expenses), day_of_month=now.day)

        early_total = sum(abs(txn.amount) for txn in early)
        late_total = sum(abs(txn.amount) for txn in late)
        early_days = min(early_last_day, now.day)
        late_days = max(1, now.day - early_last_day)

        early_rate = early_total / early_days
        late_rate = late_total / late_days
        spike_ratio = late_rate / early_rate if early_rate > 0 else 0.0

        if spike_ratio < t.end_of_month_spike_ratio:
            return self._no_detection(
                behavior, existing_confidence, len(month_expenses),
                day_of_month=now.day, spike_ratio=round(spike_ratio, 2)
            )

        spike_score = min(1.0, (spike_ratio - 1) / 2)
        volume_score = min(1.0, len(late) / 10)
        day_score = min(1.0, (now.day - early_last_day) / 10)

        raw = 0.50 * spike_score + 0.30 * volume_score + 0.20 * day_score
        confidence = self._finalize(raw, existing_confidence)

        signals = tuple(
            BehavioralSignal(
                signal_type=SignalType.END_OF_MONTH_SPIKE,
                strength=min(1.0, abs(txn.amount) / 50),
                transaction_id=txn.id,
                time_context=TimeContext.END_OF_MONTH,
                category_id=txn.category_id,
                reason=f"R$ {abs(txn.amount):.2f} em {txn.category} no dia {txn.timestamp.day}",
                timestamp=txn.timestamp,
            )
            for txn in late[-MAX_SIGNALS:]
        )

        logger.debug(
            f"end_of_month detectado | spike={spike_ratio:.2f} | late={len(late)} | "
            f"confidence={confidence:.2f}"
        )

        return DetectionResult(
            behavior=behavior,
            detected=True,
            confidence=confidence,
            signals=signals,
            metadata={
                'spike_ratio': round(spike_ratio, 2),
                'early_total': round(early_total, 2),
                'late_total': round(late_total, 2),
                'day_of_month': now.day,
                'transactions_analyzed': len(month_expenses),
            },
        )

    # === Execução conjunta ===

    def run_all(
        self,
        transactions: Sequence[Transaction],
        existing: Optional[Dict[BehaviorType, float]] = None,
        now: Optional[datetime] = None
    ) -> Dict[BehaviorType, DetectionResult]:
        """Roda os três detectores contra as confianças existentes"""
        now = now or datetime.now()
        existing = existing or {}
        return {
            BehaviorType.SMALL_RECURRING: self.detect_small_recurring(
                transactions, existing.get(BehaviorType.SMALL_RECURRING, 0.0), now
            ),
            BehaviorType.STRESS_SPENDING: self.detect_stress_spending(
                transactions, existing.get(BehaviorType.STRESS_SPENDING, 0.0), now
            ),
            BehaviorType.END_OF_MONTH: self.detect_end_of_month(
                transactions, existing.get(BehaviorType.END_OF_MONTH, 0.0), now
            ),
        }

    def run_all_with_seasonal(
        self,
        transactions: Sequence[Transaction],
        existing: Optional[Dict[BehaviorType, float]] = None,
        seasonal_factors: Optional[SeasonalFactors] = None,
        now: Optional[datetime] = None
    ) -> Dict[BehaviorType, DetectionResult]:
        """
        Roda os detectores e aplica o ajuste sazonal nas detecções positivas.

        Resultados não detectados mantêm a confiança decaída: sem evidência
        nova a confiança nunca sobe, mesmo com fator sazonal abaixo de 1.

        Returns:
            Resultados com confiança ajustada e limitada a [MIN, CEILING]
        """
        now = now or datetime.now()
        factors = seasonal_factors or SeasonalFactors()
        results = self.run_all(transactions, existing, now)
        return {
            behavior: replace(
                result,
                confidence=apply_seasonal_adjustment(result.confidence, factors, now, self.config),
            ) if result.detected else result
            for behavior, result in results.items()
        }


# === Funções de conveniência ===

_detector = None


def get_signal_detector() -> SignalDetector:
    """Retorna instância global do detector com a configuração padrão"""
    global _detector
    if _detector is None:
        _detector = SignalDetector()
    return _detector


def detect_small_recurring(
    transactions: Sequence[Transaction],
    existing_confidence: float = 0.0,
    now: Optional[datetime] = None
) -> DetectionResult:
    return get_signal_detector().detect_small_recurring(transactions, existing_confidence, now)


def detect_stress_spending(
    transactions: Sequence[Transaction],
    existing_confidence: float = 0.0,
    now: Optional[datetime] = None
) -> DetectionResult:
    return get_signal_detector().detect_stress_spending(transactions, existing_confidence, now)


def detect_end_of_month(
    transactions: Sequence[Transaction],
    existing_confidence: float = 0.0,
    now: Optional[datetime] = None
) -> DetectionResult:
    return get_signal_detector().detect_end_of_month(transactions, existing_confidence, now)


def run_all_detection(
    transactions: Sequence[Transaction],
    existing: Optional[Dict[BehaviorType, float]] = None,
    seasonal_factors: Optional[SeasonalFactors] = None,
    now: Optional[datetime] = None
) -> Dict[BehaviorType, DetectionResult]:
    """Detecção completa com ajuste sazonal (função de conveniência)"""
    return get_signal_detector().run_all_with_seasonal(transactions, existing, seasonal_factors, now)
