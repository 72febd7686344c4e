"""
Modelo de dados do motor comportamental

Enums fechados para tipos de comportamento, estados e respostas, e
registros imutáveis (dataclasses congeladas) para perfil, sinais,
detecções e intervenções. Toda atualização gera um novo snapshot.
"""
from dataclasses import dataclass, field, replace, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class BehaviorType(Enum):
    """Padrões de gasto acompanhados pelo motor"""
    SMALL_RECURRING = "small_recurring"     # Pequenas compras repetidas
    STRESS_SPENDING = "stress_spending"     # Gasto emocional (noite / pós-trabalho)
    END_OF_MONTH = "end_of_month"           # Colapso no fim do mês

    @classmethod
    def parse(cls, value: Any) -> "BehaviorType":
        """Converte string ou enum para BehaviorType (ValueError se desconhecido)"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Tipo de comportamento desconhecido: {value!r}") from None


# Ordem fixa de prioridade para desempate entre confianças iguais
BEHAVIOR_PRIORITY: Tuple[BehaviorType, ...] = (
    BehaviorType.SMALL_RECURRING,
    BehaviorType.STRESS_SPENDING,
    BehaviorType.END_OF_MONTH,
)


class UserState(Enum):
    """Estados do ciclo de vida do usuário"""
    OBSERVING = "OBSERVING"
    FOCUSED = "FOCUSED"
    COOLDOWN = "COOLDOWN"
    WITHDRAWN = "WITHDRAWN"


class TriggerEvent(Enum):
    """Eventos que disparam uma avaliação da máquina de estados"""
    TRANSACTION = "TRANSACTION"
    INTERVENTION_DELIVERED = "INTERVENTION_DELIVERED"
    POSITIVE_SIGNAL = "POSITIVE_SIGNAL"
    SCHEDULED = "SCHEDULED"
    APP_OPEN = "APP_OPEN"


class InterventionType(Enum):
    """Tipos de intervenção"""
    IMMEDIATE_MIRROR = "immediate_mirror"       # Espelha a compra do momento
    PATTERN_REFLECTION = "pattern_reflection"   # Mostra o padrão acumulado
    REINFORCEMENT = "reinforcement"             # Apoio após recaída


class UserResponse(Enum):
    """Resposta do usuário a uma intervenção entregue"""
    VIEWED = "viewed"
    DISMISSED = "dismissed"
    ENGAGED = "engaged"
    IGNORED = "ignored"


class MomentType(Enum):
    """Tipos de momento comportamental (oportunidade de intervenção)"""
    REPEAT_PURCHASE = "REPEAT_PURCHASE"
    HABITUAL_TIME = "HABITUAL_TIME"
    STRESS_CLUSTER = "STRESS_CLUSTER"
    LATE_NIGHT_COMFORT = "LATE_NIGHT_COMFORT"
    POST_WORK_RELEASE = "POST_WORK_RELEASE"
    FIRST_BREACH = "FIRST_BREACH"
    COLLAPSE_START = "COLLAPSE_START"
    RELAPSE_AFTER_IMPROVEMENT = "RELAPSE_AFTER_IMPROVEMENT"
    IMPULSE_CHAIN = "IMPULSE_CHAIN"
    CATEGORY_BINGE = "CATEGORY_BINGE"


class WinType(Enum):
    """Tipos de vitória comportamental"""
    PATTERN_BREAK = "pattern_break"
    IMPROVEMENT = "improvement"
    STREAK_MILESTONE = "streak_milestone"
    SILENT_WIN = "silent_win"


class RelapseSeverity(Enum):
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


class TimeContext(Enum):
    """Contexto de horário de um sinal"""
    LATE_NIGHT = "late_night"
    POST_WORK = "post_work"
    END_OF_MONTH = "end_of_month"
    DAYTIME = "daytime"


class SignalType(Enum):
    SMALL_RECURRING_PURCHASE = "small_recurring_purchase"
    LATE_NIGHT_COMFORT = "late_night_comfort"
    POST_WORK_COMFORT = "post_work_comfort"
    END_OF_MONTH_SPIKE = "end_of_month_spike"


# === Helpers de serialização ===

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def parse_datetime(value: Any) -> Optional[datetime]:
    """Aceita datetime, string ISO ou None"""
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass(frozen=True)
class Transaction:
    """Transação com valor sinalizado (despesas são negativas)"""
    id: str
    amount: float
    timestamp: datetime
    category_id: Optional[str] = None
    merchant: Optional[str] = None

    @property
    def is_expense(self) -> bool:
        return self.amount < 0

    @property
    def category(self) -> str:
        return self.category_id or "uncategorized"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        """Cria transação a partir de um dicionário (formato do banco ou da API)"""
        return cls(
            id=str(data.get("id", "")),
            amount=float(data["amount"]),
            timestamp=parse_datetime(data.get("timestamp") or data.get("date")),
            category_id=data.get("category_id") or data.get("category"),
            merchant=data.get("merchant"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "amount": self.amount,
            "timestamp": _iso(self.timestamp),
            "category_id": self.category_id,
            "merchant": self.merchant,
        }


@dataclass(frozen=True)
class BehavioralSignal:
    """Evidência imutável produzida pelo detector de sinais"""
    signal_type: SignalType
    strength: float
    transaction_id: str
    time_context: TimeContext
    category_id: Optional[str]
    reason: str
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class DetectionResult:
    """Resultado de uma detecção para um tipo de comportamento"""
    behavior: BehaviorType
    detected: bool
    confidence: float
    signals: Tuple[BehavioralSignal, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)


# Fatores padrão: meses 1..12 (índice 0 = janeiro), dias 0..6 (0 = segunda)
DEFAULT_MONTHLY_FACTORS = (1.0, 0.95, 1.0, 1.0, 1.0, 1.05, 1.1, 1.1, 1.05, 1.0, 1.15, 1.3)
DEFAULT_WEEKDAY_FACTORS = (0.9, 0.9, 0.95, 1.0, 1.2, 1.25, 1.15)


@dataclass(frozen=True)
class SeasonalFactors:
    """
    Tabela multiplicativa de sazonalidade.

    monthly[0] é janeiro; weekday segue datetime.weekday() (0 = segunda,
    6 = domingo). Fator maior significa gasto esperado.
    """
    monthly: Tuple[float, ...] = DEFAULT_MONTHLY_FACTORS
    weekday: Tuple[float, ...] = DEFAULT_WEEKDAY_FACTORS
    is_holiday_period: bool = False
    last_calibrated_at: Optional[datetime] = None

    def __post_init__(self):
        if len(self.monthly) != 12 or len(self.weekday) != 7:
            raise ValueError("SeasonalFactors exige 12 fatores mensais e 7 semanais")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monthly": list(self.monthly),
            "weekday": list(self.weekday),
            "is_holiday_period": self.is_holiday_period,
            "last_calibrated_at": _iso(self.last_calibrated_at),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SeasonalFactors":
        if not data:
            return cls()
        return cls(
            monthly=tuple(data.get("monthly", DEFAULT_MONTHLY_FACTORS)),
            weekday=tuple(data.get("weekday", DEFAULT_WEEKDAY_FACTORS)),
            is_holiday_period=bool(data.get("is_holiday_period", False)),
            last_calibrated_at=parse_datetime(data.get("last_calibrated_at")),
        )


@dataclass(frozen=True)
class ConfidenceSnapshot:
    """Entrada do histórico de confiança"""
    timestamp: datetime
    small_recurring: float
    stress_spending: float
    end_of_month: float

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = _iso(self.timestamp)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConfidenceSnapshot":
        return cls(
            timestamp=parse_datetime(data["timestamp"]),
            small_recurring=float(data.get("small_recurring", 0.0)),
            stress_spending=float(data.get("stress_spending", 0.0)),
            end_of_month=float(data.get("end_of_month", 0.0)),
        )


_PROFILE_DATETIME_FIELDS = (
    "cooldown_ends_at", "withdrawal_ends_at", "state_changed_at", "last_win_at",
    "streak_broken_at", "last_intervention_at", "last_evaluated_at", "created_at",
)


@dataclass(frozen=True)
class UserBehavioralProfile:
    """
    Perfil comportamental de um usuário.

    Snapshot imutável: toda mudança passa por with_updates(), que devolve
    um novo perfil. O campo version é usado pelo armazenamento para
    controle de concorrência otimista.
    """
    user_id: str
    user_state: UserState = UserState.OBSERVING
    active_behavior: Optional[BehaviorType] = None

    confidence_small_recurring: float = 0.0
    confidence_stress_spending: float = 0.0
    confidence_end_of_month: float = 0.0

    cooldown_ends_at: Optional[datetime] = None
    withdrawal_ends_at: Optional[datetime] = None
    state_changed_at: Optional[datetime] = None

    ignored_interventions: int = 0
    dismissed_count: int = 0

    current_streak: int = 0
    longest_streak: int = 0
    total_wins: int = 0
    last_win_at: Optional[datetime] = None
    streak_broken_at: Optional[datetime] = None
    streak_break_reason: Optional[str] = None

    intervention_enabled: bool = True
    seasonal_factors: SeasonalFactors = field(default_factory=SeasonalFactors)
    confidence_history: Tuple[ConfidenceSnapshot, ...] = ()

    last_intervention_at: Optional[datetime] = None
    last_evaluated_at: Optional[datetime] = None
    evaluation_count: int = 0

    # Aderência ao orçamento (0-1), fornecida pela camada de orçamento
    budget_adherence_early_month: Optional[float] = None
    budget_adherence_current: Optional[float] = None

    created_at: Optional[datetime] = None
    version: int = 0

    def __post_init__(self):
        # Aceita strings vindas do banco/testes
        if not isinstance(self.user_state, UserState):
            object.__setattr__(self, "user_state", UserState(str(self.user_state).upper()))
        if self.active_behavior is not None and not isinstance(self.active_behavior, BehaviorType):
            object.__setattr__(self, "active_behavior", BehaviorType.parse(self.active_behavior))
        if not isinstance(self.confidence_history, tuple):
            object.__setattr__(self, "confidence_history", tuple(self.confidence_history))

    def confidence_for(self, behavior: Optional[BehaviorType]) -> float:
        """Retorna a confiança armazenada para o comportamento (0 se None)"""
        if behavior is None:
            return 0.0
        return getattr(self, f"confidence_{BehaviorType.parse(behavior).value}")

    @property
    def confidences(self) -> Dict[BehaviorType, float]:
        return {behavior: self.confidence_for(behavior) for behavior in BEHAVIOR_PRIORITY}

    def with_updates(self, **changes) -> "UserBehavioralProfile":
        return replace(self, **changes)

    def with_confidences(self, confidences: Dict[BehaviorType, float]) -> "UserBehavioralProfile":
        return replace(self, **{
            f"confidence_{behavior.value}": value for behavior, value in confidences.items()
        })

    def check_invariants(self, now: datetime) -> List[str]:
        """
        Verifica os invariantes do perfil.

        Returns:
            Lista de violações (vazia se o perfil for consistente)
        """
        problems = []
        has_behavior = self.active_behavior is not None
        if has_behavior != (self.user_state in (UserState.FOCUSED, UserState.COOLDOWN)):
            problems.append(
                f"active_behavior={self.active_behavior} incompatível com {self.user_state.value}"
            )
        cooldown_active = self.cooldown_ends_at is not None and self.cooldown_ends_at > now
        withdrawal_active = self.withdrawal_ends_at is not None and self.withdrawal_ends_at > now
        if cooldown_active and withdrawal_active:
            problems.append("cooldown e retirada ativos ao mesmo tempo")
        for behavior, value in self.confidences.items():
            if not 0.0 <= value <= 1.0:
                problems.append(f"confiança fora de [0, 1] para {behavior.value}: {value}")
        return problems

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "user_id": self.user_id,
            "user_state": self.user_state.value,
            "active_behavior": self.active_behavior.value if self.active_behavior else None,
            "confidence_small_recurring": self.confidence_small_recurring,
            "confidence_stress_spending": self.confidence_stress_spending,
            "confidence_end_of_month": self.confidence_end_of_month,
            "ignored_interventions": self.ignored_interventions,
            "dismissed_count": self.dismissed_count,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "total_wins": self.total_wins,
            "streak_break_reason": self.streak_break_reason,
            "intervention_enabled": self.intervention_enabled,
            "seasonal_factors": self.seasonal_factors.to_dict(),
            "confidence_history": [snap.to_dict() for snap in self.confidence_history],
            "evaluation_count": self.evaluation_count,
            "budget_adherence_early_month": self.budget_adherence_early_month,
            "budget_adherence_current": self.budget_adherence_current,
            "version": self.version,
        }
        for name in _PROFILE_DATETIME_FIELDS:
            data[name] = _iso(getattr(self, name))
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserBehavioralProfile":
        values = dict(data)
        for name in _PROFILE_DATETIME_FIELDS:
            values[name] = parse_datetime(values.get(name))
        values["seasonal_factors"] = SeasonalFactors.from_dict(values.get("seasonal_factors"))
        values["confidence_history"] = tuple(
            ConfidenceSnapshot.from_dict(item) for item in values.get("confidence_history") or ()
        )
        return cls(**values)


@dataclass(frozen=True)
class Intervention:
    """Registro imutável de uma mensagem entregue"""
    id: str
    user_id: str
    behavior: BehaviorType
    intervention_type: InterventionType
    message_key: str
    message_content: str
    confidence_at_delivery: float
    delivered_at: datetime
    user_response: Optional[UserResponse] = None
    response_at: Optional[datetime] = None
    trigger_transaction_id: Optional[str] = None
    moment_type: Optional[MomentType] = None

    def with_response(self, response: UserResponse, at: datetime) -> "Intervention":
        return replace(self, user_response=UserResponse(response), response_at=at)


@dataclass(frozen=True)
class BehavioralMoment:
    """Sinal de 'momento comportamental' para a transação atual"""
    is_behavioral_moment: bool
    moment_type: Optional[MomentType] = None
    confidence: float = 0.0
    reason: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class InterventionDecision:
    """Resultado do motor de decisão"""
    should_intervene: bool
    intervention_type: Optional[InterventionType]
    behavior: Optional[BehaviorType]
    reason: str
    confidence: float
    blocked_by: Optional[Any] = None
    moment_type: Optional[MomentType] = None


@dataclass(frozen=True)
class BehavioralWin:
    """Vitória registrada (persistida pelo armazenamento)"""
    id: str
    user_id: str
    behavior: BehaviorType
    win_type: WinType
    message: str
    created_at: datetime
    streak_days: int = 0
    improvement_percent: Optional[float] = None
    celebrated: bool = False
    celebrated_at: Optional[datetime] = None
