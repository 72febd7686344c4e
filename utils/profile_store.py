"""
Armazenamento dos perfis comportamentais (SQLAlchemy)
Perfis com controle de concorrência otimista, intervenções, vitórias e
o histórico de transações usado pelos detectores.
"""
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String, Text, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func

from behavioral.models import (
    BehaviorType,
    BehavioralWin,
    Intervention,
    InterventionType,
    MomentType,
    Transaction,
    UserBehavioralProfile,
    UserResponse,
    WinType,
)
from config import DATABASE_URL
from utils.logger import get_logger

logger = get_logger(__name__)

Base = declarative_base()


class ProfileStoreError(Exception):
    """Erro base do armazenamento"""


class ProfileNotFoundError(ProfileStoreError):
    pass


class StaleProfileError(ProfileStoreError):
    """Versão do perfil no banco difere da versão lida (escrita concorrente)"""


# === Modelos do Banco de Dados ===

class ProfileRecord(Base):
    """Perfil comportamental serializado"""
    __tablename__ = "behavioral_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(100), unique=True, nullable=False)
    user_state = Column(String(20), nullable=False)
    version = Column(Integer, nullable=False, default=0)
    data = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def to_profile(self) -> UserBehavioralProfile:
        values = dict(self.data)
        values["version"] = self.version
        return UserBehavioralProfile.from_dict(values)


class InterventionRecord(Base):
    """Intervenção entregue (log somente de inserção, salvo a resposta)"""
    __tablename__ = "interventions"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(100), nullable=False, index=True)
    behavior = Column(String(50), nullable=False)
    intervention_type = Column(String(50), nullable=False)
    message_key = Column(String(100), nullable=False)
    message_content = Column(Text, nullable=False)
    confidence_at_delivery = Column(Float, nullable=False)
    delivered_at = Column(DateTime, nullable=False)
    user_response = Column(String(20))
    response_at = Column(DateTime)
    trigger_transaction_id = Column(String(64))
    moment_type = Column(String(50))

    def to_intervention(self) -> Intervention:
        return Intervention(
            id=self.id,
            user_id=self.user_id,
            behavior=BehaviorType.parse(self.behavior),
            intervention_type=InterventionType(self.intervention_type),
            message_key=self.message_key,
            message_content=self.message_content,
            confidence_at_delivery=self.confidence_at_delivery,
            delivered_at=self.delivered_at,
            user_response=UserResponse(self.user_response) if self.user_response else None,
            response_at=self.response_at,
            trigger_transaction_id=self.trigger_transaction_id,
            moment_type=MomentType(self.moment_type) if self.moment_type else None,
        )


class WinRecord(Base):
    """Vitória comportamental"""
    __tablename__ = "behavioral_wins"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(100), nullable=False, index=True)
    behavior = Column(String(50), nullable=False)
    win_type = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False)
    streak_days = Column(Integer, default=0)
    improvement_percent = Column(Float)
    celebrated = Column(Boolean, default=False)
    celebrated_at = Column(DateTime)

    def to_win(self) -> BehavioralWin:
        return BehavioralWin(
            id=self.id,
            user_id=self.user_id,
            behavior=BehaviorType.parse(self.behavior),
            win_type=WinType(self.win_type),
            message=self.message,
            created_at=self.created_at,
            streak_days=self.streak_days or 0,
            improvement_percent=self.improvement_percent,
            celebrated=bool(self.celebrated),
            celebrated_at=self.celebrated_at,
        )


class TransactionRecord(Base):
    """Transação do usuário (despesas com valor negativo)"""
    __tablename__ = "transactions"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(100), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    timestamp = Column(DateTime, nullable=False, index=True)
    category_id = Column(String(100))
    merchant = Column(String(255))

    def to_transaction(self) -> Transaction:
        return Transaction(
            id=self.id,
            amount=self.amount,
            timestamp=self.timestamp,
            category_id=self.category_id,
            merchant=self.merchant,
        )


# === Armazenamento ===

class ProfileStore:
    """Operações de persistência do motor comportamental"""

    def __init__(self, database_url: str = None):
        self.database_url = database_url or DATABASE_URL
        if self.database_url in ("sqlite://", "sqlite:///:memory:"):
            # Banco em memória: uma única conexão compartilhada
            self.engine = create_engine(
                self.database_url,
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(self.database_url, echo=False)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        logger.info("ProfileStore inicializado")

    def create_tables(self) -> None:
        """Cria todas as tabelas no banco de dados"""
        Base.metadata.create_all(self.engine)
        logger.info("Tabelas criadas com sucesso")

    @contextmanager
    def get_session(self) -> Session:
        """Context manager para sessões do banco"""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Erro na sessão do banco: {e}")
            raise
        finally:
            session.close()

    # === Perfis ===

    def get_profile(self, user_id: str) -> UserBehavioralProfile:
        """Busca o perfil do usuário (ProfileNotFoundError se não existir)"""
        with self.get_session() as session:
            record = session.query(ProfileRecord).filter(ProfileRecord.user_id == user_id).first()
            profile = record.to_profile() if record else None
        if profile is None:
            raise ProfileNotFoundError(f"Perfil não encontrado: {user_id}")
        return profile

    def create_profile(self, profile: UserBehavioralProfile) -> UserBehavioralProfile:
        """Insere um perfil novo com version=0"""
        stored = profile.with_updates(version=0)
        with self.get_session() as session:
            session.add(ProfileRecord(
                user_id=stored.user_id,
                user_state=stored.user_state.value,
                version=0,
                data=stored.to_dict(),
            ))
        logger.info(f"Perfil criado para: {stored.user_id}")
        return stored

    def get_or_create_profile(self, user_id: str, now: Optional[datetime] = None) -> UserBehavioralProfile:
        """Busca ou cria perfil do usuário"""
        try:
            return self.get_profile(user_id)
        except ProfileNotFoundError:
            now = now or datetime.now()
            return self.create_profile(UserBehavioralProfile(user_id=user_id, state_changed_at=now, created_at=now))

    def save_profile(self, profile: UserBehavioralProfile) -> UserBehavioralProfile:
        """
        Grava o perfil se a versão no banco for a mesma lida.

        Returns:
            Perfil com a versão incrementada

        Raises:
            StaleProfileError: outra escrita aconteceu desde a leitura
        """
        saved = profile.with_updates(version=profile.version + 1)
        with self.get_session() as session:
            updated = session.query(ProfileRecord).filter(
                ProfileRecord.user_id == profile.user_id,
                ProfileRecord.version == profile.version,
            ).update(
                {
                    ProfileRecord.user_state: saved.user_state.value,
                    ProfileRecord.version: saved.version,
                    ProfileRecord.data: saved.to_dict(),
                    ProfileRecord.updated_at: datetime.now(),
                },
                synchronize_session=False,
            )
            exists = updated > 0 or session.query(ProfileRecord.id).filter(
                ProfileRecord.user_id == profile.user_id
            ).first() is not None

        if not exists:
            raise ProfileNotFoundError(f"Perfil não encontrado: {profile.user_id}")
        if updated == 0:
            logger.warning(f"Escrita concorrente detectada | user={profile.user_id} | version={profile.version}")
            raise StaleProfileError(
                f"Perfil {profile.user_id} desatualizado (versão lida {profile.version})"
            )
        logger.debug(f"Perfil salvo | user={saved.user_id} | version={saved.version}")
        return saved

    # === Transações ===

    def add_transaction(self, transaction: Transaction, user_id: str) -> Transaction:
        """Adiciona uma nova transação"""
        with self.get_session() as session:
            session.add(TransactionRecord(
                id=transaction.id,
                user_id=user_id,
                amount=transaction.amount,
                timestamp=transaction.timestamp,
                category_id=transaction.category_id,
                merchant=transaction.merchant,
            ))
        logger.info(f"Transação adicionada: ID={transaction.id}, valor={transaction.amount}")
        return transaction

    def list_transactions(
        self,
        user_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None
    ) -> List[Transaction]:
        """Transações do usuário em ordem cronológica"""
        with self.get_session() as session:
            query = session.query(TransactionRecord).filter(TransactionRecord.user_id == user_id)
            if since:
                query = query.filter(TransactionRecord.timestamp >= since)
            if until:
                query = query.filter(TransactionRecord.timestamp <= until)
            query = query.order_by(TransactionRecord.timestamp)
            return [record.to_transaction() for record in query.all()]

    # === Intervenções ===

    def append_intervention(self, intervention: Intervention) -> Intervention:
        with self.get_session() as session:
            session.add(InterventionRecord(
                id=intervention.id,
                user_id=intervention.user_id,
                behavior=intervention.behavior.value,
                intervention_type=intervention.intervention_type.value,
                message_key=intervention.message_key,
                message_content=intervention.message_content,
                confidence_at_delivery=intervention.confidence_at_delivery,
                delivered_at=intervention.delivered_at,
                user_response=intervention.user_response.value if intervention.user_response else None,
                response_at=intervention.response_at,
                trigger_transaction_id=intervention.trigger_transaction_id,
                moment_type=intervention.moment_type.value if intervention.moment_type else None,
            ))
        logger.info(f"Intervenção registrada: {intervention.message_key} para {intervention.user_id}")
        return intervention

    def update_intervention_response(
        self,
        intervention_id: str,
        response: UserResponse,
        at: Optional[datetime] = None
    ) -> bool:
        """Registra a resposta do usuário a uma intervenção"""
        with self.get_session() as session:
            record = session.query(InterventionRecord).filter(InterventionRecord.id == intervention_id).first()
            if record:
                record.user_response = UserResponse(response).value
                record.response_at = at or datetime.now()
                return True
            return False

    def list_recent_interventions(
        self,
        user_id: str,
        days: int = 7,
        now: Optional[datetime] = None
    ) -> List[Intervention]:
        """Intervenções dos últimos N dias, mais recente primeiro"""
        now = now or datetime.now()
        with self.get_session() as session:
            records = session.query(InterventionRecord)\
                .filter(InterventionRecord.user_id == user_id)\
                .filter(InterventionRecord.delivered_at >= now - timedelta(days=days))\
                .order_by(InterventionRecord.delivered_at.desc())\
                .all()
            return [record.to_intervention() for record in records]

    # === Vitórias ===

    def append_win(self, win: BehavioralWin) -> BehavioralWin:
        with self.get_session() as session:
            session.add(WinRecord(
                id=win.id,
                user_id=win.user_id,
                behavior=win.behavior.value,
                win_type=win.win_type.value,
                message=win.message,
                created_at=win.created_at,
                streak_days=win.streak_days,
                improvement_percent=win.improvement_percent,
                celebrated=win.celebrated,
                celebrated_at=win.celebrated_at,
            ))
        logger.info(f"Vitória registrada: {win.win_type.value} para {win.user_id}")
        return win

    def mark_win_celebrated(self, win_id: str, at: Optional[datetime] = None) -> bool:
        with self.get_session() as session:
            record = session.query(WinRecord).filter(WinRecord.id == win_id).first()
            if record:
                record.celebrated = True
                record.celebrated_at = at or datetime.now()
                return True
            return False

    def list_wins(self, user_id: str) -> List[BehavioralWin]:
        """Vitórias do usuário, mais recente primeiro"""
        with self.get_session() as session:
            records = session.query(WinRecord)\
                .filter(WinRecord.user_id == user_id)\
                .order_by(WinRecord.created_at.desc())\
                .all()
            return [record.to_win() for record in records]

    def get_stats(self, user_id: str) -> Dict[str, Any]:
        """Contagem de intervenções por resposta e de vitórias"""
        with self.get_session() as session:
            rows = session.query(InterventionRecord.user_response, func.count(InterventionRecord.id))\
                .filter(InterventionRecord.user_id == user_id)\
                .group_by(InterventionRecord.user_response)\
                .all()
            wins = session.query(func.count(WinRecord.id)).filter(WinRecord.user_id == user_id).scalar()

        by_response = {(response or "pending"): count for response, count in rows}
        return {
            "interventions": sum(by_response.values()),
            "by_response": by_response,
            "wins": wins or 0,
        }
