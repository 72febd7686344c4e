"""
Testes para a configuração imutável do motor
"""
import pytest
import sys
from pathlib import Path
from dataclasses import FrozenInstanceError, replace

sys.path.insert(0, str(Path(__file__).parent.parent))

from behavioral.settings import DEFAULT_CONFIG, EngineConfig, Limits, Thresholds, UpgradeLimits


class TestEngineConfig:
    """Testes para EngineConfig e grupos de limiares"""

    def test_default_thresholds(self):
        """Testa valores padrão dos limiares"""
        t = DEFAULT_CONFIG.thresholds
        assert t.activation == 0.75
        assert t.intervention == 0.80
        assert t.deactivation == 0.50
        assert t.confidence_ceiling == 0.95
        assert t.win_streak_milestones == (7, 14, 30, 60, 90)

    def test_default_limits(self):
        """Testa limites padrão de frequência"""
        limits = DEFAULT_CONFIG.limits
        assert limits.max_interventions_per_day == 1
        assert limits.max_interventions_per_week == 5
        assert limits.cooldown_hours == 12
        assert limits.withdrawal_days == 7

    def test_config_is_frozen(self):
        """Testa que a configuração não pode ser alterada"""
        with pytest.raises(FrozenInstanceError):
            DEFAULT_CONFIG.thresholds.activation = 0.1

    def test_variant_with_replace(self):
        """Testa criação de variante sem alterar o padrão"""
        config = replace(DEFAULT_CONFIG, thresholds=replace(DEFAULT_CONFIG.thresholds, activation=0.6))
        assert config.thresholds.activation == 0.6
        assert DEFAULT_CONFIG.thresholds.activation == 0.75

    def test_deactivation_must_be_below_activation(self):
        """Testa validação de deactivation >= activation"""
        with pytest.raises(ValueError):
            Thresholds(activation=0.5, deactivation=0.6)

    def test_ratio_out_of_range(self):
        """Testa limiar fora de [0, 1]"""
        with pytest.raises(ValueError):
            Thresholds(intervention=1.2)

    def test_negative_limit(self):
        """Testa limite negativo"""
        with pytest.raises(ValueError):
            Limits(cooldown_hours=-1)

    def test_upgrade_min_confidence_range(self):
        with pytest.raises(ValueError):
            UpgradeLimits(min_confidence=2.0)

    def test_comfort_category(self):
        """Testa categorias de conforto (sem diferenciar maiúsculas)"""
        config = EngineConfig()
        assert config.is_comfort_category("coffee") is True
        assert config.is_comfort_category("Food_Delivery") is True
        assert config.is_comfort_category("groceries") is False
        assert config.is_comfort_category(None) is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
