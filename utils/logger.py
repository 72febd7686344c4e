"""
Sistema de logging estruturado para o Motor de Intervenção Comportamental
"""
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from config import LOG_LEVEL, LOG_FILE, LOGS_DIR


class ColoredFormatter(logging.Formatter):
    """Formatter com cores para output no console"""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        # Copia para não colorir o levelname visto pelos outros handlers
        colored = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, self.RESET)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


def get_logger(name: str, log_file: Optional[Path] = None) -> logging.Logger:
    """
    Cria e retorna um logger configurado

    Args:
        name: Nome do logger (geralmente __name__)
        log_file: Arquivo de log opcional (usa padrão se não especificado)

    Returns:
        Logger configurado
    """
    logger = logging.getLogger(name)

    # Evitar duplicação de handlers
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, LOG_LEVEL.upper(), logging.INFO))

    LOGS_DIR.mkdir(exist_ok=True)

    # Handler para console (com cores)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(ColoredFormatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%H:%M:%S'
    ))
    logger.addHandler(console_handler)

    # Handler para arquivo
    file_handler = logging.FileHandler(log_file or LOG_FILE, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(funcName)s:%(lineno)d | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    logger.addHandler(file_handler)

    return logger


def _value(item: Any) -> Any:
    """Extrai o valor de enums para exibição no log"""
    return getattr(item, 'value', item)


def log_transition(
    logger: logging.Logger,
    user_id: str,
    previous_state: Any,
    new_state: Any,
    reason: str
) -> None:
    """
    Loga uma transição da máquina de estados

    Transições que mudam o estado saem em INFO; permanências em DEBUG.
    """
    message = (
        f"TRANSITION | user={user_id} | from={_value(previous_state)} | "
        f"to={_value(new_state)} | reason={reason}"
    )
    if previous_state != new_state:
        logger.info(message)
    else:
        logger.debug(message)


def log_decision(logger: logging.Logger, user_id: str, decision: Any) -> None:
    """
    Loga a decisão de intervir (ou não)

    Args:
        logger: Logger a ser usado
        user_id: Usuário avaliado
        decision: InterventionDecision produzida pelo motor de decisão
    """
    if decision.should_intervene:
        logger.info(
            f"DECISION | user={user_id} | intervene=true | "
            f"type={_value(decision.intervention_type)} | "
            f"behavior={_value(decision.behavior)} | confidence={decision.confidence:.2f}"
        )
    else:
        logger.debug(
            f"DECISION | user={user_id} | intervene=false | "
            f"blocked_by={_value(decision.blocked_by)} | reason={decision.reason}"
        )


def log_failure(logger: logging.Logger, user_id: str, mode: Any, action: Any, reason: str) -> None:
    """Loga a resposta do tratador de falhas"""
    logger.warning(
        f"FAILURE | user={user_id} | mode={_value(mode)} | action={_value(action)} | reason={reason}"
    )


def log_win(logger: logging.Logger, user_id: str, win_type: Any, behavior: Any) -> None:
    """Loga uma vitória comportamental detectada"""
    logger.info(
        f"WIN | user={user_id} | type={_value(win_type)} | behavior={_value(behavior)}"
    )
