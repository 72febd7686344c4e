"""
Motor de Intervenções Comportamentais
Orquestra detecção, máquina de estados, decisão, mensagens, vitórias e
falhas sobre snapshots imutáveis do perfil do usuário.
"""
import random
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Sequence

from behavioral.calibration import (
    append_confidence_history,
    calibrate_seasonal_factors,
    confidence_trend,
    needs_recalibration,
)
from behavioral.decision import (
    DecisionContext,
    interventions_this_week,
    interventions_today,
    make_decision,
)
from behavioral.detection import SignalDetector
from behavioral.failure import (
    AnnoyanceSignal,
    FailureMode,
    FailureResponse,
    calculate_new_state,
    detect_annoyance,
    handle_failure,
)
from behavioral.messages import select_message
from behavioral.models import (
    BEHAVIOR_PRIORITY,
    BehaviorType,
    BehavioralMoment,
    BehavioralWin,
    ConfidenceSnapshot,
    DetectionResult,
    Intervention,
    InterventionDecision,
    Transaction,
    TriggerEvent,
    UserBehavioralProfile,
    UserResponse,
    UserState,
)
from behavioral.moment import detect_behavioral_moment
from behavioral.settings import DEFAULT_CONFIG, EngineConfig
from behavioral.state_machine import BehavioralStateMachine, StateTransition, apply_transition
from behavioral.trends import get_trend_analyzer
from behavioral.wins import NO_WIN, StreakBreak, WinResult, check_streak_break, detect_relapse, detect_win
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class EvaluationResult:
    profile: UserBehavioralProfile
    detections: Dict[BehaviorType, DetectionResult] = field(default_factory=dict)
    transition: Optional[StateTransition] = None


@dataclass(frozen=True)
class ProcessResult:
    decision: InterventionDecision
    profile: UserBehavioralProfile
    intervention: Optional[Intervention] = None
    moment: Optional[BehavioralMoment] = None


@dataclass(frozen=True)
class ResponseResult:
    profile: UserBehavioralProfile
    intervention: Intervention
    failure_response: Optional[FailureResponse] = None
    annoyance: Optional[AnnoyanceSignal] = None


@dataclass(frozen=True)
class WinCheckResult:
    profile: UserBehavioralProfile
    win: WinResult = NO_WIN
    streak_break: Optional[StreakBreak] = None
    win_record: Optional[BehavioralWin] = None


def _new_id() -> str:
    return str(uuid.uuid4())


class InterventionEngine:
    """
    Motor de intervenções comportamentais.

    Recebe o perfil atual e o histórico, devolve novos snapshots. Não
    guarda estado por usuário: quem chama persiste o perfil retornado.
    """

    def __init__(self, config: EngineConfig = DEFAULT_CONFIG, rng: Optional[random.Random] = None):
        """
        Inicializa o motor.

        Args:
            config: Configuração do motor
            rng: Gerador aleatório para seleção de mensagens (injetável em testes)
        """
        self.config = config
        self.rng = rng or random.Random()
        self.detector = SignalDetector(config)
        self.state_machine = BehavioralStateMachine(config)

        logger.info("InterventionEngine inicializado")

    # === Perfil ===

    def create_profile(self, user_id: str, now: Optional[datetime] = None) -> UserBehavioralProfile:
        now = now or datetime.now()
        return UserBehavioralProfile(user_id=user_id, state_changed_at=now, created_at=now)

    def reset_profile(self, profile: UserBehavioralProfile, now: Optional[datetime] = None) -> UserBehavioralProfile:
        """Volta o perfil para OBSERVING com confianças e contadores zerados"""
        now = now or datetime.now()
        response = handle_failure(FailureMode.USER_CHURNING, profile, self.config)
        return profile.with_updates(**calculate_new_state(profile, response, now))

    # === Avaliação ===

    def evaluate_behaviors(
        self,
        profile: UserBehavioralProfile,
        transactions: Sequence[Transaction],
        now: Optional[datetime] = None
    ) -> EvaluationResult:
        """
        Reavalia as confianças e aplica a transição de estado.

        Args:
            profile: Perfil atual
            transactions: Histórico de transações do usuário
            now: Momento da avaliação

        Returns:
            EvaluationResult com perfil atualizado, detecções e transição
        """
        now = now or datetime.now()
        transactions = list(transactions)
        detections: Dict[BehaviorType, DetectionResult] = {}

        if len(transactions) < self.config.min_transactions_for_evaluation:
            logger.debug(
                f"Detecção ignorada | user={profile.user_id} | transacoes={len(transactions)} "
                f"(< {self.config.min_transactions_for_evaluation})"
            )
        else:
            factors = profile.seasonal_factors
            if needs_recalibration(factors, transactions, now, self.config):
                factors = calibrate_seasonal_factors(transactions, factors, now, self.config)

            detections = self.detector.run_all_with_seasonal(transactions, profile.confidences, factors, now)
            confidences = {behavior: result.confidence for behavior, result in detections.items()}
            snapshot = ConfidenceSnapshot(
                timestamp=now,
                small_recurring=confidences[BehaviorType.SMALL_RECURRING],
                stress_spending=confidences[BehaviorType.STRESS_SPENDING],
                end_of_month=confidences[BehaviorType.END_OF_MONTH],
            )
            profile = profile.with_confidences(confidences).with_updates(
                seasonal_factors=factors,
                confidence_history=append_confidence_history(profile.confidence_history, snapshot, self.config),
            )

        profile = profile.with_updates(
            evaluation_count=profile.evaluation_count + 1,
            last_evaluated_at=now,
        )
        transition = self.state_machine.evaluate(profile, TriggerEvent.TRANSACTION, now)
        profile = apply_transition(profile, transition, now)
        return EvaluationResult(profile, detections, transition)

    def process_transaction(
        self,
        profile: UserBehavioralProfile,
        transaction: Transaction,
        recent_transactions: Sequence[Transaction] = (),
        recent_interventions: Sequence[Intervention] = (),
        now: Optional[datetime] = None,
        moment: Optional[BehavioralMoment] = None
    ) -> ProcessResult:
        """
        Decide e, se for o caso, gera a intervenção para uma transação.

        Args:
            profile: Perfil já avaliado
            transaction: Transação que disparou o fluxo
            recent_transactions: Histórico recente para o detector de momento
            recent_interventions: Intervenções entregues (para limites e variação)
            now: Momento da decisão (padrão: agora)
            moment: Momento já detectado (pula a detecção)

        Returns:
            ProcessResult com a decisão, o perfil e a intervenção criada
        """
        now = now or datetime.now()
        recent_interventions = list(recent_interventions)

        if moment is None:
            moment = detect_behavioral_moment(transaction, profile, recent_transactions, now, self.config)

        decision = make_decision(DecisionContext(profile, moment, recent_interventions), now, self.config)
        if not decision.should_intervene:
            return ProcessResult(decision, profile, None, moment)

        recent_keys = [
            item.message_key
            for item in sorted(recent_interventions, key=lambda item: item.delivered_at, reverse=True)
        ]
        message = select_message(
            decision.behavior,
            decision.intervention_type,
            decision.moment_type,
            recent_keys,
            self.rng,
            self._message_context(transaction, recent_transactions, now),
            self.config,
        )
        if message is None:
            logger.warning(
                f"Nenhuma mensagem para {decision.behavior.value}/{decision.intervention_type.value}"
            )
            return ProcessResult(decision, profile, None, moment)

        intervention = Intervention(
            id=_new_id(),
            user_id=profile.user_id,
            behavior=decision.behavior,
            intervention_type=decision.intervention_type,
            message_key=message['key'],
            message_content=message['content'],
            confidence_at_delivery=decision.confidence,
            delivered_at=now,
            trigger_transaction_id=transaction.id,
            moment_type=decision.moment_type,
        )

        transition = self.state_machine.evaluate(profile, TriggerEvent.INTERVENTION_DELIVERED, now)
        profile = apply_transition(profile, transition, now).with_updates(last_intervention_at=now)

        logger.info(
            f"INTERVENTION | user={profile.user_id} | key={intervention.message_key} | "
            f"type={intervention.intervention_type.value}"
        )
        return ProcessResult(decision, profile, intervention, moment)

    def _message_context(
        self,
        transaction: Transaction,
        recent_transactions: Sequence[Transaction],
        now: datetime
    ) -> Dict[str, Any]:
        """Valores para os placeholders: compras da mesma categoria em 7 dias"""
        week_ago = now - timedelta(days=7)
        same_category = {
            txn.id: txn for txn in recent_transactions
            if txn.is_expense and txn.category == transaction.category and week_ago <= txn.timestamp <= now
        }
        same_category[transaction.id] = transaction
        total = sum(abs(txn.amount) for txn in same_category.values())
        return {
            'count': len(same_category),
            'category': transaction.category,
            'total': f"R$ {total:.2f}",
        }

    # === Respostas ===

    def record_response(
        self,
        profile: UserBehavioralProfile,
        intervention: Intervention,
        response: UserResponse,
        recent_interventions: Sequence[Intervention] = (),
        now: Optional[datetime] = None
    ) -> ResponseResult:
        """
        Registra a resposta do usuário e aplica a ação corretiva.

        Respostas ignored/dismissed passam pelo tratador de falhas com os
        contadores de antes do incremento. Três dispensas em 24h escalam
        para retirada prolongada.
        """
        now = now or datetime.now()
        response = UserResponse(response)
        answered = intervention.with_response(response, now)

        if response == UserResponse.IGNORED:
            mode, counter = FailureMode.USER_IGNORED, 'ignored_interventions'
        elif response == UserResponse.DISMISSED:
            mode, counter = FailureMode.USER_DISMISSED, 'dismissed_count'
        else:
            return ResponseResult(profile, answered)

        failure_response = handle_failure(mode, profile, self.config)
        updates = calculate_new_state(profile, failure_response, now)
        updates[counter] = getattr(profile, counter) + 1
        profile = profile.with_updates(**updates)

        others = [item for item in recent_interventions if item.id != answered.id]
        annoyance = detect_annoyance(others + [answered], profile, now, self.config)
        if annoyance is not None:
            failure_response = handle_failure(FailureMode.USER_ANNOYED, profile, self.config)
            profile = profile.with_updates(**calculate_new_state(profile, failure_response, now))

        return ResponseResult(profile, answered, failure_response, annoyance)

    # === Vitórias ===

    def check_for_wins(
        self,
        profile: UserBehavioralProfile,
        transactions: Sequence[Transaction],
        now: Optional[datetime] = None
    ) -> WinCheckResult:
        """
        Verifica quebra de sequência e, em seguida, vitórias.

        Returns:
            WinCheckResult com o perfil (sequência zerada se quebrou), a
            vitória e o registro a persistir quando houver celebração
        """
        now = now or datetime.now()
        transactions = list(transactions)

        relapse = None
        if profile.active_behavior is not None:
            relapse = detect_relapse(profile, profile.active_behavior, transactions, now, self.config, self.rng)
        streak_break = check_streak_break(profile, transactions, relapse, now, self.config)
        if streak_break is not None:
            logger.info(
                f"STREAK_BREAK | user={profile.user_id} | reason={streak_break.reason} | "
                f"length={streak_break.streak_length}"
            )
            profile = profile.with_updates(
                current_streak=0,
                streak_broken_at=now,
                streak_break_reason=streak_break.reason,
            )

        win = detect_win(profile.user_id, profile, transactions, now, self.config, self.rng)
        win_record = None
        if win.has_win and win.should_celebrate:
            win_record = BehavioralWin(
                id=_new_id(),
                user_id=profile.user_id,
                behavior=win.behavior,
                win_type=win.win_type,
                message=win.message,
                created_at=now,
                streak_days=profile.current_streak,
                improvement_percent=win.metadata.get('reduction_percent'),
            )
        return WinCheckResult(profile, win, streak_break, win_record)

    def celebrate_win(
        self,
        profile: UserBehavioralProfile,
        win: BehavioralWin,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Registra a celebração de uma vitória.

        Uma vitória é sinal positivo: encerra uma retirada em vigor.

        Returns:
            Dicionário com 'profile' e 'win' atualizados
        """
        now = now or datetime.now()
        streak = profile.current_streak + 1
        profile = profile.with_updates(
            total_wins=profile.total_wins + 1,
            current_streak=streak,
            longest_streak=max(profile.longest_streak, streak),
            last_win_at=now,
        )
        if profile.user_state == UserState.WITHDRAWN:
            transition = self.state_machine.evaluate(profile, TriggerEvent.POSITIVE_SIGNAL, now)
            profile = apply_transition(profile, transition, now)

        celebrated = replace(win, celebrated=True, celebrated_at=now)
        return {'profile': profile, 'win': celebrated}

    # === Contexto ===

    def get_behavioral_context(
        self,
        profile: UserBehavioralProfile,
        recent_interventions: Sequence[Intervention] = (),
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Resumo do estado comportamental para a interface"""
        now = now or datetime.now()
        recent_interventions = list(recent_interventions)
        in_cooldown = profile.cooldown_ends_at is not None and now < profile.cooldown_ends_at

        return {
            'user_id': profile.user_id,
            'user_state': profile.user_state.value,
            'active_behavior': profile.active_behavior.value if profile.active_behavior else None,
            'confidences': {behavior.value: value for behavior, value in profile.confidences.items()},
            'confidence_trend': {
                behavior.value: round(confidence_trend(profile.confidence_history, behavior), 4)
                for behavior in BEHAVIOR_PRIORITY
            },
            'cooldown_ends_at': profile.cooldown_ends_at,
            'withdrawal_ends_at': profile.withdrawal_ends_at,
            'can_intervene': (
                profile.user_state == UserState.FOCUSED and profile.intervention_enabled and not in_cooldown
            ),
            'interventions_today': interventions_today(recent_interventions, now),
            'interventions_this_week': interventions_this_week(recent_interventions, now),
            'current_streak': profile.current_streak,
            'longest_streak': profile.longest_streak,
            'total_wins': profile.total_wins,
            'last_win_at': profile.last_win_at,
        }

    def get_spending_insights(
        self,
        transactions: Sequence[Transaction],
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Hábito de poupança e tendências de gasto"""
        now = now or datetime.now()
        analyzer = get_trend_analyzer()
        return {
            'saving_habit': analyzer.detect_saving_habit(transactions, now),
            'trends': analyzer.analyze_trends(transactions, now),
        }


# === Funções de conveniência ===

_engine = None


def get_intervention_engine() -> InterventionEngine:
    """Retorna instância global do motor de intervenções"""
    global _engine
    if _engine is None:
        _engine = InterventionEngine()
    return _engine


def evaluate_behaviors(
    profile: UserBehavioralProfile,
    transactions: Sequence[Transaction],
    now: Optional[datetime] = None
) -> EvaluationResult:
    """Reavalia comportamentos (função de conveniência)"""
    return get_intervention_engine().evaluate_behaviors(profile, transactions, now)


def process_transaction(
    profile: UserBehavioralProfile,
    transaction: Transaction,
    recent_transactions: Sequence[Transaction] = (),
    recent_interventions: Sequence[Intervention] = (),
    now: Optional[datetime] = None
) -> ProcessResult:
    """Processa transação (função de conveniência)"""
    return get_intervention_engine().process_transaction(
        profile, transaction, recent_transactions, recent_interventions, now
    )


def record_response(
    profile: UserBehavioralProfile,
    intervention: Intervention,
    response: UserResponse,
    recent_interventions: Sequence[Intervention] = (),
    now: Optional[datetime] = None
) -> ResponseResult:
    """Registra resposta do usuário (função de conveniência)"""
    return get_intervention_engine().record_response(profile, intervention, response, recent_interventions, now)
