"""
Análise de Tendências de Gasto
Hábito de poupança (renda x despesa semanal) e tendências semanais,
mensais e por categoria, usadas como contexto para vitórias e relatórios.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from behavioral.models import Transaction
from utils.logger import get_logger

logger = get_logger(__name__)

WEEKS_ANALYZED = 4
MIN_TRANSACTIONS_SAVING = 14
MIN_TRANSACTIONS_TRENDS = 7


def _to_frame(transactions: Sequence[Transaction], now: datetime) -> pd.DataFrame:
    """Monta o DataFrame com a semana relativa (0 = últimos 7 dias)"""
    df = pd.DataFrame({
        'timestamp': pd.to_datetime([txn.timestamp for txn in transactions]),
        'amount': [txn.amount for txn in transactions],
        'category': [txn.category for txn in transactions],
    })
    age_days = (pd.Timestamp(now) - df['timestamp']).dt.total_seconds() / 86400
    df['week'] = (age_days // 7).astype(int)
    df = df[age_days >= 0]
    return df


def _direction(percent: int, threshold: int) -> str:
    if percent > threshold:
        return 'up'
    if percent < -threshold:
        return 'down'
    return 'stable'


def _percent_change(recent: float, previous: float) -> int:
    if previous <= 0:
        return 0
    return round((recent - previous) / previous * 100)


class SpendingTrendAnalyzer:
    """
    Analisador de tendências de gasto.

    Funcionalidades:
    - Detecção de hábito de poupança nas últimas 4 semanas
    - Tendência semanal e mensal de despesas
    - Categorias com maior variação
    """

    def detect_saving_habit(
        self,
        transactions: Sequence[Transaction],
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Detecta hábito de poupança (renda maior que despesa de forma consistente).

        Args:
            transactions: Histórico com receitas (positivas) e despesas (negativas)
            now: Momento da análise

        Returns:
            Dicionário com has_saving_habit, consistency, average_savings_rate,
            trend, streak_weeks e message
        """
        now = now or datetime.now()
        empty = {
            'has_saving_habit': False,
            'consistency': 0.0,
            'average_savings_rate': 0.0,
            'trend': 'none',
            'streak_weeks': 0,
            'message': '',
        }
        if len(transactions) < MIN_TRANSACTIONS_SAVING:
            return empty

        df = _to_frame(transactions, now)
        df = df[df['week'] < WEEKS_ANALYZED]
        weeks = range(WEEKS_ANALYZED)

        income = df[df['amount'] > 0].groupby('week')['amount'].sum().reindex(weeks, fill_value=0.0)
        expenses = df[df['amount'] < 0].groupby('week')['amount'].sum().abs().reindex(weeks, fill_value=0.0)
        net = income - expenses

        consistency = float((net > 0).sum()) / WEEKS_ANALYZED
        total_income = float(income.sum())
        savings_rate = (total_income - float(expenses.sum())) / total_income * 100 if total_income > 0 else 0.0

        streak_weeks = 0
        for value in net:
            if value <= 0:
                break
            streak_weeks += 1

        recent_avg = float(net.iloc[:2].mean())
        older_avg = float(net.iloc[2:].mean())
        if recent_avg == 0 and older_avg == 0:
            trend = 'none'
        elif recent_avg > older_avg * 1.1:
            trend = 'improving'
        elif recent_avg < older_avg * 0.9:
            trend = 'declining'
        else:
            trend = 'stable'

        has_habit = consistency >= 0.5 and savings_rate > 0

        if has_habit:
            if streak_weeks >= 4:
                message = f"{streak_weeks} semanas seguidas guardando dinheiro."
            elif streak_weeks >= 2:
                message = f"{streak_weeks} semanas seguidas de poupança."
            elif consistency >= 0.75:
                message = "Você tem um hábito forte de poupança."
            else:
                message = "Seu hábito de poupança está se formando."
        elif savings_rate > 0:
            message = "No total sobrou dinheiro, mas a consistência pode melhorar."
        else:
            message = ''

        return {
            'has_saving_habit': has_habit,
            'consistency': consistency,
            'average_savings_rate': round(savings_rate, 1),
            'trend': trend,
            'streak_weeks': streak_weeks,
            'message': message,
        }

    def analyze_trends(
        self,
        transactions: Sequence[Transaction],
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Analisa tendências semanais, mensais e por categoria das despesas.

        Returns:
            Dicionário com weekly_trend, monthly_trend, category_trends e insights
        """
        now = now or datetime.now()
        result = {
            'weekly_trend': {'direction': 'stable', 'percent_change': 0, 'data': []},
            'monthly_trend': {'direction': 'stable', 'percent_change': 0, 'data': []},
            'category_trends': [],
            'insights': [],
        }
        if len(transactions) < MIN_TRANSACTIONS_TRENDS:
            return result

        df = _to_frame(transactions, now)
        df = df[df['amount'] < 0].copy()
        if df.empty:
            return result
        df['spent'] = df['amount'].abs()

        # Semanal (últimas 4 semanas, mais antiga primeiro)
        weekly = df[df['week'] < WEEKS_ANALYZED].groupby('week')['spent'].sum()
        weekly = weekly.reindex(range(WEEKS_ANALYZED), fill_value=0.0)
        weekly_pct = _percent_change(float(weekly[0]), float(weekly[1]))
        result['weekly_trend'] = {
            'direction': _direction(weekly_pct, 10),
            'percent_change': weekly_pct,
            'data': [
                {'week': f"Semana {WEEKS_ANALYZED - index}", 'total': round(float(weekly[index]), 2)}
                for index in reversed(range(WEEKS_ANALYZED))
            ],
        }

        # Mensal (últimos 3 meses)
        current = pd.Period(now, freq='M')
        months = [current - offset for offset in (2, 1, 0)]
        monthly = df.groupby(df['timestamp'].dt.to_period('M'))['spent'].sum().reindex(months, fill_value=0.0)
        monthly_pct = _percent_change(float(monthly[current]), float(monthly[current - 1]))
        result['monthly_trend'] = {
            'direction': _direction(monthly_pct, 10),
            'percent_change': monthly_pct,
            'data': [{'month': str(period), 'total': round(float(total), 2)} for period, total in monthly.items()],
        }

        result['category_trends'] = self._category_trends(df, now)
        result['insights'] = self._insights(result)
        return result

    def _category_trends(self, df: pd.DataFrame, now: datetime) -> List[Dict[str, Any]]:
        """Últimas 2 semanas contra as 2 anteriores, top 5 variações"""
        two_weeks_ago = now - timedelta(days=14)
        four_weeks_ago = now - timedelta(days=28)

        recent = df[df['timestamp'] >= two_weeks_ago].groupby('category')['spent'].sum()
        older = df[(df['timestamp'] >= four_weeks_ago) & (df['timestamp'] < two_weeks_ago)]
        older = older.groupby('category')['spent'].sum()

        trends = []
        for category in recent.index.union(older.index):
            recent_total = float(recent.get(category, 0.0))
            older_total = float(older.get(category, 0.0))
            if older_total > 0:
                percent = round((recent_total - older_total) / older_total * 100)
            else:
                percent = 100 if recent_total > 0 else 0
            if abs(percent) > 10:
                trends.append({
                    'category': category,
                    'direction': _direction(percent, 20),
                    'percent_change': percent,
                })

        trends.sort(key=lambda item: abs(item['percent_change']), reverse=True)
        return trends[:5]

    def _insights(self, result: Dict[str, Any]) -> List[str]:
        insights = []
        weekly = result['weekly_trend']
        monthly = result['monthly_trend']

        if weekly['direction'] == 'down' and weekly['percent_change'] <= -20:
            insights.append(f"Gastos {abs(weekly['percent_change'])}% menores esta semana.")
        elif weekly['direction'] == 'up' and weekly['percent_change'] >= 30:
            insights.append(f"Gastos {weekly['percent_change']}% maiores esta semana.")

        if monthly['direction'] == 'down' and monthly['percent_change'] <= -15:
            insights.append(f"Mês {abs(monthly['percent_change'])}% abaixo do anterior.")
        elif monthly['direction'] == 'up' and monthly['percent_change'] >= 25:
            insights.append(f"Mês {monthly['percent_change']}% acima do anterior.")

        for trend in result['category_trends'][:2]:
            if trend['direction'] == 'up':
                insights.append(f"{trend['category']}: alta de {trend['percent_change']}%.")
            elif trend['direction'] == 'down':
                insights.append(f"{trend['category']}: queda de {abs(trend['percent_change'])}%.")

        return insights


# === Funções de conveniência ===

_analyzer = None


def get_trend_analyzer() -> SpendingTrendAnalyzer:
    """Retorna instância global do analisador"""
    global _analyzer
    if _analyzer is None:
        _analyzer = SpendingTrendAnalyzer()
    return _analyzer


def detect_saving_habit(transactions: Sequence[Transaction], now: Optional[datetime] = None) -> Dict[str, Any]:
    return get_trend_analyzer().detect_saving_habit(transactions, now)


def analyze_trends(transactions: Sequence[Transaction], now: Optional[datetime] = None) -> Dict[str, Any]:
    return get_trend_analyzer().analyze_trends(transactions, now)
