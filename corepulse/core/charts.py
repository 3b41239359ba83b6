import io
import datetime
from typing import List, Union

import matplotlib
matplotlib.use("Agg")  # servidor sem display
import matplotlib.pyplot as plt
import matplotlib.ticker as mticker
import pandas as pd

from corepulse.core.models import Transaction, INCOME

# Configurações globais para os gráficos (fontes)
plt.rcParams['font.family'] = 'sans-serif'
plt.rcParams['font.size'] = 10
plt.rcParams['axes.labelsize'] = 12
plt.rcParams['axes.titlesize'] = 14
plt.rcParams['legend.fontsize'] = 10

# Cores personalizadas para os gráficos
COLORS = {
    'Receita': '#22c55e',
    'Despesa': '#ef4444',
    'Saldo': '#007bff',
}


def transactions_frame(transactions: List[Transaction],
                       start: Union[datetime.date, None] = None,
                       end: Union[datetime.date, None] = None) -> pd.DataFrame:
    """DataFrame (data, tipo, valor) filtrado pelo período. Valores em float, só para plotagem."""
    df = pd.DataFrame([
        {'data': t.date, 'tipo': 'Receita' if t.type == INCOME else 'Despesa', 'valor': float(t.amount)}
        for t in transactions if t.date is not None
    ], columns=['data', 'tipo', 'valor'])
    if df.empty:
        return df

    # Converte a coluna de data para datetime
    df['data'] = pd.to_datetime(df['data'])

    # Filtra pelo período
    if start:
        df = df[df['data'] >= pd.Timestamp(start)]
    if end:
        df = df[df['data'] <= pd.Timestamp(end)]
    return df


def generate_balance_chart(transactions: List[Transaction],
                           start: Union[datetime.date, None] = None,
                           end: Union[datetime.date, None] = None) -> Union[io.BytesIO, None]:
    """Gera um gráfico de balanço mensal de receitas vs. despesas (PNG)."""
    df_all = transactions_frame(transactions, start, end)
    if df_all.empty:
        return None

    # Agrupa por mês e ano
    df_all['mes_ano'] = df_all['data'].dt.to_period('M')

    # Receita e Despesa sempre presentes, mesmo num mês só com um tipo
    monthly_summary = (
        df_all.groupby(['mes_ano', 'tipo'])['valor'].sum()
        .unstack(fill_value=0)
        .reindex(columns=['Receita', 'Despesa'], fill_value=0)
    )
    monthly_summary['Saldo'] = monthly_summary['Receita'] - monthly_summary['Despesa']
    monthly_summary = monthly_summary.sort_index()

    with plt.style.context('seaborn-v0_8-darkgrid'):
        fig, ax = plt.subplots(figsize=(12, 7))
        monthly_summary[['Receita', 'Despesa', 'Saldo']].plot(
            kind='bar',
            ax=ax,
            color=[COLORS['Receita'], COLORS['Despesa'], COLORS['Saldo']]
        )

        ax.set_title('Balanço Mensal: Receitas vs. Despesas', fontsize=16, fontweight='bold')
        ax.set_ylabel('Valor (R$)', fontsize=12)
        ax.set_xlabel('Mês/Ano', fontsize=12)
        plt.setp(ax.get_xticklabels(), rotation=45, ha='right')
        ax.legend(title='Tipo de Transação', fontsize=10, title_fontsize=11)
        ax.grid(axis='y', linestyle='--', alpha=0.7)

        # Adiciona os valores em cima das barras
        for container in ax.containers:
            ax.bar_label(container, fmt='R$%.2f', fontsize=8, padding=3)

        # Formata o eixo Y como moeda
        ax.yaxis.set_major_formatter(mticker.FormatStrFormatter('R$%.2f'))
        fig.tight_layout()

        # Salva o gráfico em um buffer de bytes
        buf = io.BytesIO()
        fig.savefig(buf, format='png', dpi=150)
        buf.seek(0)
        plt.close(fig)
    return buf


def draw_category_pie(ax, shares) -> None:
    """
    Desenha a pizza de categorias num Axes já posicionado (usado dentro do PDF).
    shares: lista de CategoryShare já sem as fatias abaixo de 1%.
    """
    ax.set_axis_off()
    if not shares:
        return
    wedges, _ = ax.pie(
        [float(share.total) for share in shares],
        colors=[share.color for share in shares],
        startangle=90,
        counterclock=False,
        wedgeprops={'linewidth': 1, 'edgecolor': 'white'},
    )
    # Mantém a pizza redonda
    ax.axis('equal')
    # Legenda à direita, com o percentual de cada fatia
    labels = [f"{share.name} ({share.percentage_label})" for share in shares]
    ax.legend(wedges, labels,
              loc="center left",
              bbox_to_anchor=(1, 0, 0.5, 1),
              fontsize=8,
              frameon=False)
