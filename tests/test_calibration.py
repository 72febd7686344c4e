"""
Testes para o calibrador de confiança
"""
import pytest
import sys
from pathlib import Path
from datetime import datetime, timedelta

sys.path.insert(0, str(Path(__file__).parent.parent))

from behavioral.calibration import (
    append_confidence_history,
    apply_seasonal_adjustment,
    calibrate_seasonal_factors,
    clamp_confidence,
    confidence_trend,
    decay_confidence,
    get_seasonal_factor,
    is_holiday_period,
    needs_recalibration,
    smooth_confidence,
)
from behavioral.models import BehaviorType, ConfidenceSnapshot, SeasonalFactors, Transaction
from behavioral.settings import EngineConfig, Thresholds

FLAT = SeasonalFactors(monthly=(1.0,) * 12, weekday=(1.0,) * 7)


class TestConfidenceMath:
    """Testes para suavização, decaimento e limites"""

    def test_smoothing_with_existing(self):
        assert smooth_confidence(0.5, 1.0) == pytest.approx(0.65)

    def test_smoothing_without_history(self):
        """Sem confiança anterior o valor bruto é usado"""
        assert smooth_confidence(0.0, 0.6) == pytest.approx(0.6)

    def test_decay(self):
        assert decay_confidence(0.5) == pytest.approx(0.48)
        assert decay_confidence(0.01) == 0.0

    def test_decay_per_evaluation(self):
        """Cada avaliação sem detecção desconta um passo, mesmo no mesmo dia"""
        config = EngineConfig(thresholds=Thresholds(confidence_decay_per_evaluation=0.05))
        confidence = 0.5
        for _ in range(3):
            confidence = decay_confidence(confidence, config)
        assert confidence == pytest.approx(0.35)

    def test_clamp(self):
        assert clamp_confidence(1.2) == 0.95
        assert clamp_confidence(-0.1) == 0.0
        assert clamp_confidence(0.5) == 0.5


class TestSeasonalAdjustment:
    """Testes para fatores sazonais"""

    def test_holiday_period(self):
        assert is_holiday_period(datetime(2024, 11, 20)) is True
        assert is_holiday_period(datetime(2024, 11, 10)) is False
        assert is_holiday_period(datetime(2024, 12, 1)) is True
        assert is_holiday_period(datetime(2025, 1, 3)) is True
        assert is_holiday_period(datetime(2025, 1, 10)) is False

    def test_default_factor_december_saturday(self):
        """Dezembro (1.3) x sábado (1.25)"""
        factor = get_seasonal_factor(SeasonalFactors(), datetime(2024, 12, 7, 12))
        assert factor == pytest.approx(1.625)

    def test_holiday_multiplier(self):
        factors = SeasonalFactors(is_holiday_period=True)
        factor = get_seasonal_factor(factors, datetime(2024, 12, 7, 12))
        assert factor == pytest.approx(1.95)

    def test_flat_factors_keep_confidence(self):
        assert apply_seasonal_adjustment(0.9, FLAT, datetime(2024, 3, 13)) == pytest.approx(0.9)

    def test_adjustment_reduces_on_high_factor(self):
        adjusted = apply_seasonal_adjustment(0.9, SeasonalFactors(), datetime(2024, 12, 7, 12))
        assert adjusted == pytest.approx(0.9 / 1.625)


class TestCalibration:
    """Testes para recalibração dos fatores"""

    @pytest.fixture
    def long_history(self):
        """120 dias: R$10 por dia e R$40 aos sábados"""
        start = datetime(2024, 1, 1, 12)
        transactions = []
        for i in range(120):
            timestamp = start + timedelta(days=i)
            amount = -40.0 if timestamp.weekday() == 5 else -10.0
            transactions.append(Transaction(f"t{i}", amount, timestamp, "mercado"))
        return transactions

    def test_short_history_keeps_factors(self):
        """Menos de 90 dias de histórico não recalibra"""
        existing = SeasonalFactors()
        start = datetime(2024, 1, 1)
        transactions = [Transaction(f"t{i}", -10.0, start + timedelta(days=i)) for i in range(30)]
        assert calibrate_seasonal_factors(transactions, existing, datetime(2024, 2, 1)) is existing

    def test_calibration_clips_factors(self, long_history):
        now = datetime(2024, 5, 1)
        factors = calibrate_seasonal_factors(long_history, SeasonalFactors(), now)

        assert factors.weekday[5] == pytest.approx(1.4)   # sábado limitado
        assert factors.weekday[0] == pytest.approx(0.8)   # segunda limitada
        assert factors.monthly[11] == 1.3                 # dezembro sem dados
        assert factors.last_calibrated_at == now
        for value in factors.monthly:
            assert 0.7 <= value <= 1.5

    def test_needs_recalibration(self, long_history):
        now = datetime(2024, 5, 1)
        assert needs_recalibration(SeasonalFactors(), long_history, now) is True
        recent = SeasonalFactors(last_calibrated_at=now - timedelta(days=10))
        assert needs_recalibration(recent, long_history, now) is False


class TestConfidenceHistory:
    """Testes para o histórico limitado de confiança"""

    def setup_method(self):
        self.start = datetime(2024, 3, 1, 0)

    def _snapshot(self, hours: float, value: float = 0.5) -> ConfidenceSnapshot:
        return ConfidenceSnapshot(self.start + timedelta(hours=hours), value, 0.0, 0.0)

    def test_min_interval(self):
        """Snapshot a menos de 4h do anterior é descartado"""
        history = append_confidence_history((), self._snapshot(0))
        history = append_confidence_history(history, self._snapshot(1))
        assert len(history) == 1
        history = append_confidence_history(history, self._snapshot(5))
        assert len(history) == 2

    def test_max_entries(self):
        history = ()
        for i in range(35):
            history = append_confidence_history(history, self._snapshot(i * 5))
        assert len(history) == 30
        assert history[-1].timestamp == self.start + timedelta(hours=34 * 5)

    def test_trend_rising(self):
        """Confiança subindo 0.1 por dia"""
        history = [self._snapshot(day * 24, 0.1 * day) for day in range(5)]
        assert confidence_trend(history, BehaviorType.SMALL_RECURRING) == pytest.approx(0.1)

    def test_trend_not_enough_points(self):
        assert confidence_trend([self._snapshot(0)], BehaviorType.SMALL_RECURRING) == 0.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
