"""
Catálogo de mensagens comportamentais

Mensagens curtas (até 12 palavras, até 2 frases), sem julgamento,
selecionadas por comportamento, tipo de intervenção e momento.
Nenhum texto é gerado: tudo vem deste catálogo estático.
"""
import random
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from behavioral.models import (
    BehaviorType,
    InterventionType,
    MomentType,
    RelapseSeverity,
    WinType,
)
from behavioral.settings import DEFAULT_CONFIG, EngineConfig

SB = BehaviorType.SMALL_RECURRING
SS = BehaviorType.STRESS_SPENDING
EM = BehaviorType.END_OF_MONTH
MIRROR = InterventionType.IMMEDIATE_MIRROR
PATTERN = InterventionType.PATTERN_REFLECTION
REINFORCE = InterventionType.REINFORCEMENT


def _entry(key, behavior, intervention_type, template, moment_types=()):
    return {
        'key': key,
        'behavior': behavior,
        'intervention_type': intervention_type,
        'template': template,
        'moment_types': tuple(moment_types),
    }


INTERVENTION_MESSAGES: List[Dict[str, Any]] = [
    # Pequenas compras recorrentes
    _entry("sr_mirror_same_place", SB, MIRROR, "Mesmo lugar, de novo.", [MomentType.REPEAT_PURCHASE]),
    _entry("sr_mirror_same_hour", SB, MIRROR, "Esse horário de novo.", [MomentType.HABITUAL_TIME]),
    _entry("sr_mirror_adds_up", SB, MIRROR, "Pequeno, mas vai somando."),
    _entry("sr_pattern_count", SB, PATTERN, "{count} compras pequenas em {category} esta semana.",
           [MomentType.REPEAT_PURCHASE]),
    _entry("sr_pattern_hour", SB, PATTERN, "Quase sempre no mesmo horário. Você percebeu?",
           [MomentType.HABITUAL_TIME]),
    _entry("sr_pattern_total", SB, PATTERN, "Somando tudo, já foram {total} esta semana."),
    _entry("sr_reinforce_back", SB, REINFORCE, "Voltou um pouco. Você já mudou isso antes.",
           [MomentType.RELAPSE_AFTER_IMPROVEMENT]),
    _entry("sr_reinforce_progress", SB, REINFORCE, "Um deslize não apaga o seu progresso.",
           [MomentType.RELAPSE_AFTER_IMPROVEMENT]),

    # Gasto por estresse
    _entry("ss_mirror_heavy_day", SS, MIRROR, "Dia pesado? Só percebendo.", [MomentType.POST_WORK_RELEASE]),
    _entry("ss_mirror_late", SS, MIRROR, "Tarde da noite de novo.", [MomentType.LATE_NIGHT_COMFORT]),
    _entry("ss_mirror_cluster", SS, MIRROR, "Várias compras seguidas agora.", [MomentType.STRESS_CLUSTER]),
    _entry("ss_pattern_hard_days", SS, PATTERN, "Compras de conforto aparecem depois de dias difíceis.",
           [MomentType.STRESS_CLUSTER, MomentType.POST_WORK_RELEASE]),
    _entry("ss_pattern_nights", SS, PATTERN, "As noites têm concentrado seus gastos.",
           [MomentType.LATE_NIGHT_COMFORT]),
    _entry("ss_reinforce_hard_weeks", SS, REINFORCE, "Semanas difíceis acontecem. Você já passou por isso.",
           [MomentType.RELAPSE_AFTER_IMPROVEMENT]),
    _entry("ss_reinforce_step", SS, REINFORCE, "Um passo atrás não é voltar ao início.",
           [MomentType.RELAPSE_AFTER_IMPROVEMENT]),

    # Fim do mês
    _entry("eom_mirror_reminder", EM, MIRROR, "Fim do mês chegando. Só um lembrete.", [MomentType.FIRST_BREACH]),
    _entry("eom_mirror_first", EM, MIRROR, "Primeira saída do orçamento este mês.", [MomentType.FIRST_BREACH]),
    _entry("eom_pattern_tight", EM, PATTERN, "O fim do mês costuma apertar assim.", [MomentType.COLLAPSE_START]),
    _entry("eom_pattern_last_days", EM, PATTERN, "Os últimos dias do mês pesam mais.", [MomentType.COLLAPSE_START]),
    _entry("eom_reinforce_last_month", EM, REINFORCE, "Mês passado você segurou bem. Ainda dá.",
           [MomentType.RELAPSE_AFTER_IMPROVEMENT]),
    _entry("eom_reinforce_one_day", EM, REINFORCE, "Um dia fora do plano não define o mês.",
           [MomentType.RELAPSE_AFTER_IMPROVEMENT]),
]

WIN_MESSAGES: Dict[WinType, List[str]] = {
    WinType.PATTERN_BREAK: [
        "Algo mudou essa semana.",
        "Padrão quebrado. Isso é real.",
    ],
    WinType.IMPROVEMENT: [
        "Menos que na semana passada.",
        "Está diminuindo. Aos poucos.",
    ],
    WinType.STREAK_MILESTONE: [
        "{streak} dias. Isso já é hábito.",
        "{streak} dias seguidos.",
    ],
    WinType.SILENT_WIN: [],
}

DEFAULT_WIN_MESSAGE = "Algo mudou."

RELAPSE_MESSAGES: Dict[RelapseSeverity, List[str]] = {
    RelapseSeverity.MILD: [
        "Um pequeno passo atrás. Acontece.",
        "Leve variação. Nada que você não conheça.",
    ],
    RelapseSeverity.MODERATE: [
        "Voltou um pouco. Você já sabe o caminho.",
        "Semana mais difícil. O progresso continua seu.",
    ],
    RelapseSeverity.SEVERE: [
        "Semana pesada. Recomeçar também conta.",
        "Isso acontece. O que funcionou antes ainda funciona.",
    ],
}

STREAK_BREAK_MESSAGES: Dict[str, str] = {
    'behavior_relapse': "A sequência parou. Dá para recomeçar hoje.",
    'severe_regression': "Semana difícil. Uma nova sequência começa agora.",
    'inactivity': "Faz tempo. Que tal olhar como foi a semana?",
    'withdrawal_triggered': "Vamos dar um tempo nas mensagens.",
    'user_reset': "Tudo zerado. Começando de novo.",
}

# Vocabulário de julgamento que nenhuma mensagem pode usar
JUDGMENTAL_WORDS = (
    "ruim", "errado", "errada", "fracasso", "deveria", "irresponsável",
    "vergonha", "culpa", "péssimo", "péssima", "descontrole",
)


class _SafeDict(dict):
    """Mantém placeholders sem valor intactos ao formatar"""

    def __missing__(self, key):
        return "{" + key + "}"


def render_message(template: str, context: Optional[Dict[str, Any]] = None) -> str:
    return template.format_map(_SafeDict(context or {}))


def validate_message(text: str, config: EngineConfig = DEFAULT_CONFIG) -> Tuple[bool, List[str]]:
    """
    Valida uma mensagem contra as regras de tom e tamanho.

    Returns:
        (válida, lista de problemas)
    """
    limits = config.limits
    problems = []

    words = text.split()
    if len(words) > limits.message_max_words:
        problems.append(f"{len(words)} palavras (máximo {limits.message_max_words})")

    sentences = [part for part in re.split(r"[.!?]+", text) if part.strip()]
    if len(sentences) > limits.message_max_sentences:
        problems.append(f"{len(sentences)} frases (máximo {limits.message_max_sentences})")

    lowered = text.lower()
    for word in JUDGMENTAL_WORDS:
        if re.search(rf"\b{word}\b", lowered):
            problems.append(f"palavra de julgamento: {word}")

    return not problems, problems


def select_message(
    behavior: BehaviorType,
    intervention_type: InterventionType,
    moment_type: Optional[MomentType] = None,
    recent_keys: Iterable[str] = (),
    rng: Optional[random.Random] = None,
    context: Optional[Dict[str, Any]] = None,
    config: EngineConfig = DEFAULT_CONFIG
) -> Optional[Dict[str, Any]]:
    """
    Seleciona uma mensagem do catálogo.

    Args:
        behavior: Comportamento ativo
        intervention_type: Tipo de intervenção escolhido pelo motor de decisão
        moment_type: Momento detectado (mensagens do momento têm preferência)
        recent_keys: Chaves entregues recentemente (mais recente primeiro)
        rng: Gerador aleatório (injetável para testes)
        context: Valores para os placeholders do template

    Returns:
        Dicionário com key e content, ou None se não houver mensagem
    """
    chooser = rng or random
    candidates = [
        entry for entry in INTERVENTION_MESSAGES
        if entry['behavior'] == behavior and entry['intervention_type'] == intervention_type
    ]
    if not candidates:
        return None

    if moment_type is not None:
        for_moment = [entry for entry in candidates if moment_type in entry['moment_types']]
        if for_moment:
            candidates = for_moment

    recent = set(list(recent_keys)[:config.limits.message_recent_memory])
    fresh = [entry for entry in candidates if entry['key'] not in recent]
    pool = fresh or candidates

    entry = chooser.choice(pool)
    return {
        'key': entry['key'],
        'content': render_message(entry['template'], context),
        'behavior': behavior,
        'intervention_type': intervention_type,
    }


def select_win_message(
    win_type: WinType,
    rng: Optional[random.Random] = None,
    context: Optional[Dict[str, Any]] = None
) -> str:
    """Mensagem de vitória (frase neutra se o tipo não tiver mensagens)"""
    options = WIN_MESSAGES.get(win_type) or []
    if not options:
        return DEFAULT_WIN_MESSAGE
    return render_message((rng or random).choice(options), context)


def select_relapse_message(severity: RelapseSeverity, rng: Optional[random.Random] = None) -> str:
    return (rng or random).choice(RELAPSE_MESSAGES[severity])


def get_streak_break_message(reason: str) -> str:
    return STREAK_BREAK_MESSAGES.get(reason, STREAK_BREAK_MESSAGES['behavior_relapse'])
