"""
Testes para o catálogo de mensagens
"""
import pytest
import random
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from behavioral.messages import (
    DEFAULT_WIN_MESSAGE,
    INTERVENTION_MESSAGES,
    RELAPSE_MESSAGES,
    STREAK_BREAK_MESSAGES,
    WIN_MESSAGES,
    get_streak_break_message,
    render_message,
    select_message,
    select_win_message,
    validate_message,
)
from behavioral.models import BehaviorType, InterventionType, MomentType, WinType

SAMPLE_CONTEXT = {'count': 4, 'category': 'coffee', 'total': 'R$ 42.00', 'streak': 14}


class TestCatalog:
    """Toda mensagem do catálogo respeita as regras de tom"""

    def test_intervention_messages_are_valid(self):
        for entry in INTERVENTION_MESSAGES:
            valid, problems = validate_message(render_message(entry['template'], SAMPLE_CONTEXT))
            assert valid, f"{entry['key']}: {problems}"

    def test_other_messages_are_valid(self):
        texts = [DEFAULT_WIN_MESSAGE]
        texts += [text for options in WIN_MESSAGES.values() for text in options]
        texts += [text for options in RELAPSE_MESSAGES.values() for text in options]
        texts += list(STREAK_BREAK_MESSAGES.values())
        for text in texts:
            valid, problems = validate_message(render_message(text, SAMPLE_CONTEXT))
            assert valid, f"{text}: {problems}"

    def test_keys_are_unique(self):
        keys = [entry['key'] for entry in INTERVENTION_MESSAGES]
        assert len(keys) == len(set(keys))

    def test_every_combination_has_messages(self):
        for behavior in BehaviorType:
            for intervention_type in InterventionType:
                assert select_message(behavior, intervention_type) is not None


class TestValidateMessage:
    """Testes para a validação de mensagens"""

    def test_too_many_words(self):
        valid, problems = validate_message("um dois três quatro cinco seis sete oito nove dez onze doze treze")
        assert valid is False
        assert "13 palavras" in problems[0]

    def test_too_many_sentences(self):
        valid, problems = validate_message("Uma. Duas. Três.")
        assert valid is False
        assert "3 frases" in problems[0]

    def test_judgmental_word(self):
        valid, problems = validate_message("Isso foi errado.")
        assert valid is False
        assert problems == ["palavra de julgamento: errado"]


class TestSelectMessage:
    """Testes para a seleção de mensagens"""

    def setup_method(self):
        self.rng = random.Random(7)

    def test_moment_preference(self):
        message = select_message(
            BehaviorType.SMALL_RECURRING,
            InterventionType.IMMEDIATE_MIRROR,
            MomentType.HABITUAL_TIME,
            rng=self.rng,
        )
        assert message['key'] == "sr_mirror_same_hour"
        assert message['content'] == "Esse horário de novo."

    def test_avoids_recent_keys(self):
        message = select_message(
            BehaviorType.SMALL_RECURRING,
            InterventionType.PATTERN_REFLECTION,
            recent_keys=["sr_pattern_count", "sr_pattern_hour"],
            rng=self.rng,
            context={'total': 'R$ 50.00'},
        )
        assert message['key'] == "sr_pattern_total"
        assert message['content'] == "Somando tudo, já foram R$ 50.00 esta semana."

    def test_falls_back_when_all_recent(self):
        keys = [entry['key'] for entry in INTERVENTION_MESSAGES
                if entry['behavior'] == BehaviorType.END_OF_MONTH
                and entry['intervention_type'] == InterventionType.REINFORCEMENT]
        message = select_message(
            BehaviorType.END_OF_MONTH, InterventionType.REINFORCEMENT, recent_keys=keys, rng=self.rng
        )
        assert message['key'] in keys

    def test_moment_without_messages_uses_all(self):
        message = select_message(
            BehaviorType.END_OF_MONTH,
            InterventionType.IMMEDIATE_MIRROR,
            MomentType.IMPULSE_CHAIN,
            rng=self.rng,
        )
        assert message['key'].startswith("eom_mirror")


class TestRendering:
    """Testes para placeholders e mensagens auxiliares"""

    def test_missing_placeholder_is_kept(self):
        assert render_message("{count} compras em {category}", {'count': 3}) == "3 compras em {category}"

    def test_silent_win_uses_default(self):
        assert select_win_message(WinType.SILENT_WIN) == DEFAULT_WIN_MESSAGE

    def test_milestone_message(self):
        text = select_win_message(WinType.STREAK_MILESTONE, random.Random(1), {'streak': 30})
        assert text.startswith("30 dias")

    def test_unknown_streak_break_reason(self):
        assert get_streak_break_message("xyz") == STREAK_BREAK_MESSAGES['behavior_relapse']


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
