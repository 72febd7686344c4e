"""
Configurações globais do Motor de Intervenção Comportamental
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Carregar variáveis de ambiente
load_dotenv()

# === Diretórios ===
BASE_DIR = Path(__file__).parent
DATA_DIR = BASE_DIR / "data"
LOGS_DIR = BASE_DIR / "logs"

# Criar diretórios se não existirem
DATA_DIR.mkdir(exist_ok=True)
LOGS_DIR.mkdir(exist_ok=True)

# === Banco de Dados ===
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'behavioral.db'}")

# === Configurações de Aplicação ===
APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = LOGS_DIR / "behavioral.log"
BEHAVIORAL_ENGINE_ENABLED = os.getenv("BEHAVIORAL_ENGINE_ENABLED", "true").lower() in ("1", "true", "yes")

# === Limiares de Confiança e Detecção ===
THRESHOLDS = {
    # Máquina de estados
    "ACTIVATION": 0.75,
    "INTERVENTION": 0.80,
    "DEACTIVATION": 0.50,

    # Pequenas compras recorrentes
    "SMALL_TRANSACTION_MAX": 15.0,
    "SMALL_RECURRING_MIN_COUNT": 10,
    "SMALL_RECURRING_DAYS": 7,
    "SMALL_RECURRING_CATEGORY_MIN": 3,
    "SMALL_RECURRING_AMOUNT_CAP": 100.0,

    # Gastos por estresse (horas em 24h)
    "STRESS_LATE_NIGHT_START": 21,
    "STRESS_LATE_NIGHT_END": 2,
    "STRESS_POST_WORK_START": 17,
    "STRESS_POST_WORK_END": 20,
    "STRESS_MIN_OCCURRENCES": 3,
    "STRESS_CLUSTER_WINDOW_HOURS": 2,
    "STRESS_LOOKBACK_DAYS": 14,

    # Colapso de fim de mês
    "END_OF_MONTH_START_DAY": 21,
    "END_OF_MONTH_MIN_TRANSACTIONS": 5,
    "END_OF_MONTH_SPIKE_RATIO": 1.5,

    # Suavização e limites de confiança
    "CONFIDENCE_SMOOTHING_FACTOR": 0.7,
    "CONFIDENCE_DECAY_PER_EVALUATION": 0.02,
    "CONFIDENCE_DECAY_MIN": 0.0,
    "CONFIDENCE_CEILING": 0.95,

    # Vitórias e recaídas
    "WIN_IMPROVEMENT_THRESHOLD": 0.30,
    "WIN_PATTERN_BREAK_REDUCTION": 0.50,
    "WIN_SILENT_REDUCTION": 0.10,
    "WIN_MIN_TRANSACTIONS": 14,
    "WIN_STREAK_MILESTONES": (7, 14, 30, 60, 90),
    "RELAPSE_LOOKBACK_DAYS": 30,
    "STREAK_BREAK_INACTIVITY_DAYS": 7,
    "STREAK_BREAK_RELAPSE_THRESHOLD": 0.5,

    # Sazonalidade
    "SEASONAL_CALIBRATION_DAYS": 90,
    "SEASONAL_VARIANCE_THRESHOLD": 0.3,

    # Histórico de confiança
    "CONFIDENCE_HISTORY_MAX_ENTRIES": 30,
    "CONFIDENCE_HISTORY_MIN_INTERVAL_HOURS": 4,
}

# === Limites de Intervenção ===
LIMITS = {
    "MAX_INTERVENTIONS_PER_DAY": 1,
    "MAX_INTERVENTIONS_PER_WEEK": 5,
    "COOLDOWN_HOURS": 12,
    "EXTENDED_COOLDOWN_HOURS": 48,
    "IGNORE_COOLDOWN_HOURS": 24,
    "DISMISS_COOLDOWN_HOURS": 12,
    "REDUCE_FREQUENCY_HOURS": 24,
    "IGNORED_THRESHOLD": 2,
    "DISMISSED_THRESHOLD": 3,
    "WITHDRAWAL_DAYS": 7,
    "ANNOYANCE_WITHDRAWAL_DAYS": 14,
    "ANNOYANCE_DISMISS_COUNT": 3,
    "ANNOYANCE_WINDOW_HOURS": 24,
    "MESSAGE_MAX_WORDS": 12,
    "MESSAGE_MAX_SENTENCES": 2,
    "MESSAGE_RECENT_MEMORY": 5,
    "INACTIVE_DAYS_FOR_REENGAGEMENT": 14,
}

# Mínimo de transações para rodar a detecção
MIN_TRANSACTIONS_FOR_EVALUATION = 10

# === Limiares de Fricção (prompts de upgrade) ===
FRICTION_THRESHOLDS = {
    "MANUAL_ENTRY_MIN": 3,
    "REPEAT_CATEGORY_MIN": 3,
    "SCREEN_TIME_MS": 300_000,  # 5 minutos
    "HEALTH_VIEW_MIN": 3,
    "MISSED_DAYS_MIN": 3,
    "BUDGET_EDIT_MIN": 3,
    "TRIAL_EXPIRY_HOURS": 24,
}

UPGRADE_LIMITS = {
    "COOLDOWN_HOURS": 24,
    "COOLDOWN_AFTER_DISMISS_HOURS": 48,
    "MAX_PER_DAY": 1,
    "MAX_PER_WEEK": 3,
    "DISMISS_SILENCE_THRESHOLD": 5,
    "DISMISS_SILENCE_DAYS": 7,
    "LIFETIME_DISMISS_LIMIT": 20,
    "MIN_CONFIDENCE": 0.6,
    "NEW_USER_GRACE_HOURS": 24,
}

# === Categorias de Conforto (gasto emocional) ===
COMFORT_CATEGORIES = [
    "food_dining",
    "food_delivery",
    "entertainment",
    "shopping",
    "coffee",
    "coffee_drinks",
    "alcohol",
    "fast_food",
    "snacks",
    "streaming",
    "gaming",
    "delivery",
    "takeout",
    "lazer",
    "jogos",
    "compras",
]

# Comerciantes que enviam recibo por e-mail
EMAIL_RECEIPT_MERCHANTS = [
    "amazon",
    "uber",
    "ifood",
    "rappi",
    "mercado livre",
    "magalu",
    "netflix",
    "spotify",
    "apple",
    "google",
    "airbnb",
    "shopee",
]
