"""
Motor de Intervenção Comportamental

Fase 1:
- SignalDetector: Detecção de pequenas compras recorrentes, gasto por estresse e fim de mês
- BehavioralStateMachine: Ciclo OBSERVING / FOCUSED / COOLDOWN / WITHDRAWN

Fase 2:
- make_decision: Portões de intervenção e escolha do tipo
- detect_win / detect_relapse: Vitórias, recaídas e sequências
- handle_failure: Ações corretivas para respostas negativas

Fase 3:
- InterventionEngine: Orquestração sobre snapshots imutáveis do perfil
- evaluate_upgrade_gates: Prompts de upgrade a partir de fricções
"""
from behavioral.models import (
    BehaviorType,
    UserState,
    TriggerEvent,
    InterventionType,
    UserResponse,
    MomentType,
    WinType,
    Transaction,
    UserBehavioralProfile,
    Intervention,
)
from behavioral.settings import EngineConfig, DEFAULT_CONFIG
from behavioral.detection import SignalDetector, run_all_detection, get_signal_detector
from behavioral.state_machine import BehavioralStateMachine, apply_transition, evaluate_state
from behavioral.decision import DecisionContext, DecisionGate, make_decision
from behavioral.wins import detect_win, detect_relapse, check_streak_break
from behavioral.failure import FailureMode, FailureAction, handle_failure, detect_annoyance
from behavioral.upgrade import UpgradeGate, evaluate_upgrade_gates
from behavioral.intervention import (
    InterventionEngine,
    evaluate_behaviors,
    process_transaction,
    record_response,
    get_intervention_engine
)

__all__ = [
    # Modelo
    "BehaviorType",
    "UserState",
    "TriggerEvent",
    "InterventionType",
    "UserResponse",
    "MomentType",
    "WinType",
    "Transaction",
    "UserBehavioralProfile",
    "Intervention",
    "EngineConfig",
    "DEFAULT_CONFIG",
    # Fase 1
    "SignalDetector",
    "run_all_detection",
    "get_signal_detector",
    "BehavioralStateMachine",
    "apply_transition",
    "evaluate_state",
    # Fase 2
    "DecisionContext",
    "DecisionGate",
    "make_decision",
    "detect_win",
    "detect_relapse",
    "check_streak_break",
    "FailureMode",
    "FailureAction",
    "handle_failure",
    "detect_annoyance",
    # Fase 3
    "InterventionEngine",
    "evaluate_behaviors",
    "process_transaction",
    "record_response",
    "get_intervention_engine",
    "UpgradeGate",
    "evaluate_upgrade_gates"
]
