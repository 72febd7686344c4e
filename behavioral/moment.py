"""
Detector de Momento Comportamental

Decide se a transação atual é uma oportunidade de intervenção
(compra repetida, horário habitual, cluster de estresse, início do
colapso de fim de mês, recaída após melhora).
"""
from datetime import datetime, timedelta
from typing import Optional, Sequence

from behavioral.detection import is_late_night, is_post_work
from behavioral.models import (
    BehaviorType,
    BehavioralMoment,
    MomentType,
    RelapseSeverity,
    Transaction,
    UserBehavioralProfile,
)
from behavioral.settings import DEFAULT_CONFIG, EngineConfig
from behavioral.wins import detect_relapse
from utils.logger import get_logger

logger = get_logger(__name__)

IMPULSE_CHAIN_MINUTES = 30
IMPULSE_CHAIN_MIN = 3
CATEGORY_BINGE_HOURS = 24
CATEGORY_BINGE_MIN = 4
HABITUAL_HOUR_TOLERANCE = 1


def _moment(moment_type: MomentType, confidence: float, reason: str, **metadata) -> BehavioralMoment:
    return BehavioralMoment(True, moment_type, confidence, reason, metadata)


def _not_moment(reason: str) -> BehavioralMoment:
    return BehavioralMoment(False, None, 0.0, reason)


def _small_recurring_moment(txn, history, config) -> Optional[BehavioralMoment]:
    t = config.thresholds
    if abs(txn.amount) > t.small_transaction_max:
        return None

    same_category = [
        other for other in history
        if abs(other.amount) <= t.small_transaction_max and other.category == txn.category
    ]
    if len(same_category) < 2:
        return None

    hour = txn.timestamp.hour
    same_hour = [
        other for other in same_category
        if abs(other.timestamp.hour - hour) <= HABITUAL_HOUR_TOLERANCE
    ]
    if len(same_hour) >= 2:
        return _moment(
            MomentType.HABITUAL_TIME, 0.9,
            f"Compra em {txn.category} no horário habitual ({hour}h)",
            occurrences=len(same_hour) + 1,
        )

    return _moment(
        MomentType.REPEAT_PURCHASE, 0.75,
        f"Compra repetida #{len(same_category) + 1} em {txn.category}",
        count=len(same_category) + 1,
    )


def _stress_moment(txn, history, config) -> Optional[BehavioralMoment]:
    if not config.is_comfort_category(txn.category_id):
        return None

    hour = txn.timestamp.hour
    late_night = is_late_night(hour, config)
    if not late_night and not is_post_work(hour, config):
        return None

    window_start = txn.timestamp - timedelta(hours=config.thresholds.stress_cluster_window_hours)
    cluster = [
        other for other in history
        if config.is_comfort_category(other.category_id) and other.timestamp >= window_start
    ]
    if cluster:
        return _moment(
            MomentType.STRESS_CLUSTER, 0.95,
            f"{len(cluster) + 1} compras de conforto em poucas horas",
            cluster_size=len(cluster) + 1,
        )

    if late_night:
        return _moment(MomentType.LATE_NIGHT_COMFORT, 0.85, f"{txn.category} às {hour}h")
    return _moment(MomentType.POST_WORK_RELEASE, 0.80, f"{txn.category} depois do trabalho")


def _end_of_month_moment(txn, profile, config) -> Optional[BehavioralMoment]:
    if txn.timestamp.day < config.thresholds.end_of_month_start_day:
        return None

    early = profile.budget_adherence_early_month
    current = profile.budget_adherence_current
    if current is None:
        return None

    if early is not None and early >= 0.8 and current < 0.7:
        return _moment(
            MomentType.FIRST_BREACH, 0.90,
            "Primeira quebra do orçamento depois de um bom início de mês",
            early_adherence=early, current_adherence=current,
        )
    if current < 0.5:
        return _moment(
            MomentType.COLLAPSE_START, 0.85,
            "Aderência ao orçamento abaixo de 50% no fim do mês",
            current_adherence=current,
        )
    return None


def _extended_moment(txn, history) -> Optional[BehavioralMoment]:
    chain_start = txn.timestamp - timedelta(minutes=IMPULSE_CHAIN_MINUTES)
    chain = [other for other in history if other.timestamp >= chain_start]
    if len(chain) + 1 >= IMPULSE_CHAIN_MIN:
        return _moment(
            MomentType.IMPULSE_CHAIN, 0.8,
            f"{len(chain) + 1} compras em {IMPULSE_CHAIN_MINUTES} minutos",
            chain_size=len(chain) + 1,
        )

    binge_start = txn.timestamp - timedelta(hours=CATEGORY_BINGE_HOURS)
    binge = [
        other for other in history
        if other.category == txn.category and other.timestamp >= binge_start
    ]
    if len(binge) + 1 >= CATEGORY_BINGE_MIN:
        return _moment(
            MomentType.CATEGORY_BINGE, 0.75,
            f"{len(binge) + 1} compras em {txn.category} em 24h",
            count=len(binge) + 1,
        )
    return None


def detect_behavioral_moment(
    transaction: Transaction,
    profile: UserBehavioralProfile,
    recent_transactions: Sequence[Transaction] = (),
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG
) -> BehavioralMoment:
    """
    Avalia se a transação é um momento comportamental.

    Args:
        transaction: Transação que disparou a avaliação
        profile: Perfil atual
        recent_transactions: Histórico recente (pode incluir a própria transação)
        now: Momento da avaliação (padrão: horário da transação)

    Returns:
        BehavioralMoment com tipo, confiança e motivo
    """
    now = now or transaction.timestamp
    behavior = profile.active_behavior

    if behavior is None:
        return _not_moment("Nenhum comportamento ativo")
    if not transaction.is_expense:
        return _not_moment("Transação não é despesa")

    if profile.last_win_at is not None:
        relapse = detect_relapse(profile, behavior, recent_transactions, now, config)
        if relapse.is_relapse and relapse.severity in (RelapseSeverity.MODERATE, RelapseSeverity.SEVERE):
            confidence = 0.95 if relapse.severity == RelapseSeverity.SEVERE else 0.85
            return _moment(
                MomentType.RELAPSE_AFTER_IMPROVEMENT, confidence,
                f"Recaída {relapse.severity.value} após vitória",
                increase_percent=relapse.increase_percent,
            )

    # Despesas anteriores à transação atual
    history = [
        other for other in recent_transactions
        if other.id != transaction.id and other.is_expense and other.timestamp <= transaction.timestamp
    ]

    if behavior == BehaviorType.SMALL_RECURRING:
        moment = _small_recurring_moment(transaction, history, config)
    elif behavior == BehaviorType.STRESS_SPENDING:
        moment = _stress_moment(transaction, history, config)
    else:
        moment = _end_of_month_moment(transaction, profile, config)

    moment = moment or _extended_moment(transaction, history)
    if moment is None:
        return _not_moment("Transação rotineira")

    logger.debug(
        f"Momento comportamental | user={profile.user_id} | type={moment.moment_type.value} | "
        f"confidence={moment.confidence:.2f}"
    )
    return moment
