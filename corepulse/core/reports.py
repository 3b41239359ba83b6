"""
Relatórios financeiros em PDF (mensal, análise de gastos e fluxo de caixa).

As páginas são figuras A4 do matplotlib, desenhadas em milímetros a partir do
canto superior esquerdo, e gravadas em um único PDF com PdfPages. Tudo é feito
em memória: nada é escrito em disco até GeneratedReport.save().
"""
import datetime
import io
import logging
import os
from decimal import Decimal
from typing import Dict, List, Tuple, Union

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd
from matplotlib.backends.backend_pdf import PdfPages
from matplotlib.lines import Line2D
from matplotlib.patches import Rectangle

from corepulse.core import charts
from corepulse.core.finance import ZERO, monthly_stats, percentage_of, sum_amounts, transactions_in_month
from corepulse.core.models import Account, Category, Transaction, INCOME, EXPENSE
from corepulse.utils.text_utils import (
    format_currency, format_date_br, format_signed_currency, month_label, slugify, truncate,
)

logger = logging.getLogger(__name__)

PRODUCT_NAME = "CoreFinance"
REPORT_ERROR_MESSAGE = "Erro ao gerar relatório PDF. Tente novamente."

# (título, prefixo do arquivo)
REPORT_KINDS = {
    "monthly": ("Relatório Mensal", "relatorio-mensal"),
    "expenses": ("Análise de Gastos", "analise-gastos"),
    "cashflow": ("Fluxo de Caixa", "fluxo-caixa"),
}

UNCATEGORIZED = "Sem categoria"
UNCATEGORIZED_COLOR = "#9CA3AF"
ACCOUNT_NOT_FOUND = "Conta não encontrada"
LISTING_LIMIT = 50
MIN_SHARE_PERCENT = Decimal("1")
# Aproximação de mês com 30 dias para "gastos por dia"
EXPENSE_DAYS_DIVISOR = 30

# Geometria da página (mm)
PAGE_WIDTH = 210
PAGE_HEIGHT = 297
MARGIN_LEFT = 20
MARGIN_RIGHT = 190
TOP_Y = 20
SECTION_BREAK_Y = 250
CASHFLOW_BREAK_Y = 200
TABLE_BOTTOM_Y = 272
FOOTER_LINE_Y = 280
FOOTER_TEXT_Y = 285
MM_PER_INCH = 25.4


def _rgb(r: int, g: int, b: int) -> Tuple[float, float, float]:
    return (r / 255, g / 255, b / 255)


ORANGE = _rgb(255, 152, 0)
GREEN = _rgb(34, 197, 94)
RED = _rgb(239, 68, 68)
BLACK = _rgb(0, 0, 0)
GRAY_TEXT = _rgb(100, 100, 100)
GRAY_LINE = _rgb(200, 200, 200)
WHITE = _rgb(255, 255, 255)


class ReportData:
    def __init__(self, period: str, total_income: Decimal, total_expenses: Decimal,
                 transactions: List[Transaction], categories: List[Category], accounts: List[Account]):
        self.period = period
        self.total_income = total_income
        self.total_expenses = total_expenses
        self.balance = total_income - total_expenses
        self.transactions = transactions
        self.categories = categories
        self.accounts = accounts


def build_report_data(transactions: List[Transaction], accounts: List[Account],
                      categories: List[Category], year: int, month: int) -> ReportData:
    """Recorta o mês pedido e calcula os totais que vão no resumo."""
    stats = monthly_stats(transactions, accounts, year, month)
    return ReportData(
        period=month_label(year, month),
        total_income=stats.monthly_income,
        total_expenses=stats.monthly_expenses,
        transactions=transactions_in_month(transactions, year, month),
        categories=categories,
        accounts=accounts,
    )


class CategoryShare:
    def __init__(self, name: str, count: int, total: Decimal, percentage: Decimal, color: str):
        self.name = name
        self.count = count
        self.total = total
        self.percentage = percentage
        self.color = color

    @property
    def percentage_label(self) -> str:
        return f"{self.percentage:.1f}%"

    def as_row(self) -> List[str]:
        return [self.name, str(self.count), format_currency(self.total), self.percentage_label]


def category_breakdown(data: ReportData, type: str) -> List[CategoryShare]:
    """
    Total por categoria do tipo pedido, com o percentual sobre o total do tipo.
    Transações sem categoria (ou com categoria desconhecida) entram em "Sem categoria".
    Fatias abaixo de 1% ficam de fora.
    """
    type_total = data.total_income if type == INCOME else data.total_expenses
    categories = [c for c in data.categories if c.type == type]
    # Agrupa as transações do tipo por categoria
    grouped: Dict[str, List[Transaction]] = {c.id: [] for c in categories}
    uncategorized: List[Transaction] = []

    for transaction in data.transactions:
        if transaction.type != type:
            continue
        if transaction.category_id in grouped:
            grouped[transaction.category_id].append(transaction)
        else:
            uncategorized.append(transaction)

    # "Sem categoria" entra por último, depois das categorias cadastradas
    candidates = [(c.name, c.color, grouped[c.id]) for c in categories]
    if uncategorized:
        candidates.append((UNCATEGORIZED, UNCATEGORIZED_COLOR, uncategorized))

    shares = []
    for name, color, items in candidates:
        total = sum_amounts(items)
        percentage = percentage_of(total, type_total)
        # Fatias muito pequenas poluem a tabela e o gráfico
        if percentage < MIN_SHARE_PERCENT:
            continue
        shares.append(CategoryShare(name, len(items), total, percentage, color))
    return shares


class ExpenseAnalysis:
    def __init__(self, largest: Decimal, smallest: Decimal, average: Decimal, per_day: Decimal):
        self.largest = largest
        self.smallest = smallest
        self.average = average
        self.per_day = per_day

    def as_rows(self) -> List[List[str]]:
        return [
            ["Maior Gasto", format_currency(self.largest)],
            ["Menor Gasto", format_currency(self.smallest)],
            ["Gasto Médio", format_currency(self.average)],
            ["Gastos por Dia", format_currency(self.per_day)],
        ]


def expense_analysis(data: ReportData, days: int = EXPENSE_DAYS_DIVISOR) -> ExpenseAnalysis:
    amounts = [t.amount for t in data.transactions if t.type == EXPENSE]
    per_day = data.total_expenses / days if days > 0 else ZERO
    if not amounts:
        return ExpenseAnalysis(ZERO, ZERO, ZERO, per_day)
    return ExpenseAnalysis(
        largest=max(amounts),
        smallest=min(amounts),
        average=sum(amounts, ZERO) / len(amounts),
        per_day=per_day,
    )


class DailyFlow:
    def __init__(self, day: datetime.date, income: Decimal, expense: Decimal):
        self.day = day
        self.income = income
        self.expense = expense
        self.net = income - expense

    def as_row(self) -> List[str]:
        return [format_date_br(self.day), format_currency(self.income),
                format_currency(self.expense), format_currency(self.net)]


def cash_flow_rows(data: ReportData) -> List[DailyFlow]:
    """Receitas, despesas e saldo de cada dia, do mais antigo para o mais recente."""
    df = pd.DataFrame(
        [{'day': t.date, 'type': t.type, 'amount': t.amount} for t in data.transactions if t.date is not None],
        columns=['day', 'type', 'amount'],
    )
    # Um grupo por dia, já em ordem cronológica
    flows = []
    for day, group in df.groupby('day', sort=True):
        income = sum(group.loc[group['type'] == INCOME, 'amount'], ZERO)
        expense = sum(group.loc[group['type'] != INCOME, 'amount'], ZERO)
        flows.append(DailyFlow(day, income, expense))
    return flows


def transaction_listing(data: ReportData, limit: int = LISTING_LIMIT) -> Tuple[List[List[str]], int]:
    """As `limit` transações mais recentes já formatadas e quantas ficaram de fora."""
    categories = {c.id: c.name for c in data.categories}
    accounts = {a.id: a.name for a in data.accounts}
    # Mais recentes primeiro
    ordered = sorted(data.transactions, key=lambda t: t.date, reverse=True)

    rows = []
    for transaction in ordered[:limit]:
        rows.append([
            format_date_br(transaction.date),
            transaction.description,
            categories.get(transaction.category_id) or UNCATEGORIZED,
            accounts.get(transaction.account_id) or ACCOUNT_NOT_FOUND,
            "Receita" if transaction.is_income else "Despesa",
            format_signed_currency(transaction.amount, transaction.is_income),
        ])
    return rows, max(len(ordered) - limit, 0)


def overflow_notice(remaining: int) -> str:
    return f"... e mais {remaining} transação(ões)"


def report_filename(kind: str, period: str) -> str:
    return f"{REPORT_KINDS[kind][1]}-{slugify(period)}.pdf"


class Column:
    def __init__(self, width: float, align: str = "left"):
        self.width = width
        self.align = align


class PageCanvas:
    """Sequência de páginas A4 com coordenadas em mm (y cresce para baixo)."""

    def __init__(self):
        self.pages = []
        self.figure = None
        self.add_page()

    def add_page(self) -> None:
        self.figure = plt.figure(figsize=(PAGE_WIDTH / MM_PER_INCH, PAGE_HEIGHT / MM_PER_INCH))
        self.pages.append(self.figure)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def set_page(self, index: int) -> None:
        self.figure = self.pages[index]

    @staticmethod
    def _fx(x: float) -> float:
        return x / PAGE_WIDTH

    @staticmethod
    def _fy(y: float) -> float:
        # matplotlib mede y de baixo para cima
        return 1 - y / PAGE_HEIGHT

    def text(self, x: float, y: float, text: str, size: float = 10, bold: bool = False,
             color=BLACK, align: str = "left") -> None:
        self.figure.text(self._fx(x), self._fy(y), text, fontsize=size,
                         fontweight="bold" if bold else "normal", color=color,
                         ha=align, va="baseline")

    def line(self, x1: float, y: float, x2: float, color=GRAY_LINE) -> None:
        self.figure.add_artist(Line2D([self._fx(x1), self._fx(x2)], [self._fy(y), self._fy(y)],
                                      transform=self.figure.transFigure, color=color, linewidth=0.6))

    def rect(self, x: float, y: float, width: float, height: float, fill=WHITE, edge=GRAY_LINE) -> None:
        self.figure.add_artist(Rectangle((self._fx(x), self._fy(y + height)),
                                         width / PAGE_WIDTH, height / PAGE_HEIGHT,
                                         transform=self.figure.transFigure,
                                         facecolor=fill, edgecolor=edge, linewidth=0.4))

    def axes(self, x: float, y: float, width: float, height: float):
        return self.figure.add_axes([self._fx(x), self._fy(y + height),
                                     width / PAGE_WIDTH, height / PAGE_HEIGHT])

    def table(self, start_y: float, head: List[str], rows: List[List[str]], columns: List[Column],
              head_color, font_size: float = 10) -> float:
        """Desenha uma tabela em grade, quebrando página quando preciso. Devolve o y final."""
        # pt -> mm, mais o respiro da célula
        row_height = font_size * 0.3528 + 4
        y = start_y
        self._table_row(y, head, columns, row_height, font_size, fill=head_color, color=WHITE, bold=True)
        y += row_height
        for row in rows:
            # Página nova repete o cabeçalho da tabela
            if y + row_height > TABLE_BOTTOM_Y:
                self.add_page()
                y = TOP_Y
                self._table_row(y, head, columns, row_height, font_size, fill=head_color, color=WHITE, bold=True)
                y += row_height
            self._table_row(y, row, columns, row_height, font_size)
            y += row_height
        return y

    def _table_row(self, y: float, cells: List[str], columns: List[Column], height: float,
                   font_size: float, fill=WHITE, color=BLACK, bold: bool = False) -> None:
        x = MARGIN_LEFT
        baseline = y + height * 0.68
        for cell, column in zip(cells, columns):
            self.rect(x, y, column.width, height, fill=fill)
            # Corta o texto que não cabe na coluna
            max_chars = int((column.width - 3) / (font_size * 0.2))
            value = truncate(str(cell), max_chars)
            if column.align == "right":
                self.text(x + column.width - 1.5, baseline, value, font_size, bold, color, align="right")
            elif column.align == "center":
                self.text(x + column.width / 2, baseline, value, font_size, bold, color, align="center")
            else:
                self.text(x + 1.5, baseline, value, font_size, bold, color)
            x += column.width

    def to_pdf(self) -> bytes:
        buf = io.BytesIO()
        with PdfPages(buf) as pdf:
            for page in self.pages:
                pdf.savefig(page)
        return buf.getvalue()

    def close(self) -> None:
        for page in self.pages:
            plt.close(page)


class GeneratedReport:
    def __init__(self, filename: str, content: bytes, page_count: int):
        self.filename = filename
        self.content = content
        self.page_count = page_count

    def save(self, directory: str = ".") -> str:
        path = os.path.join(directory, self.filename)
        with open(path, "wb") as f:
            f.write(self.content)
        return path


class ReportBuilder:
    def __init__(self, data: ReportData, generated_at: Union[datetime.datetime, None] = None,
                 expense_days: int = EXPENSE_DAYS_DIVISOR):
        self.data = data
        self.generated_at = generated_at or datetime.datetime.now()
        self.expense_days = expense_days
        self.canvas = PageCanvas()

    def build(self, kind: str) -> GeneratedReport:
        try:
            if kind not in REPORT_KINDS:
                raise ValueError(f"Tipo de relatório desconhecido: {kind}")
            # Cabeçalho e resumo são comuns aos três relatórios
            y = self._header(REPORT_KINDS[kind][0])
            y = self._summary(y)
            if kind == "monthly":
                y = self._category_breakdown(y)
                self._transactions_list(y)
            elif kind == "expenses":
                y = self._category_breakdown(y)
                self._expense_analysis(y)
            else:
                self._cash_flow(y)
            self._footer()
            content = self.canvas.to_pdf()
            return GeneratedReport(report_filename(kind, self.data.period), content, self.canvas.page_count)
        finally:
            # Libera as figuras mesmo se o desenho falhar
            self.canvas.close()

    def _ensure_room(self, y: float, threshold: float = SECTION_BREAK_Y) -> float:
        if y > threshold:
            self.canvas.add_page()
            return TOP_Y
        return y

    def _header(self, title: str) -> float:
        c = self.canvas
        c.text(MARGIN_LEFT, 25, PRODUCT_NAME, size=24, bold=True)
        c.text(MARGIN_LEFT, 40, title, size=18)
        c.text(MARGIN_LEFT, 50, f"Período: {self.data.period}", size=12, color=GRAY_TEXT)
        c.text(MARGIN_LEFT, 58,
               f"Gerado em: {self.generated_at:%d/%m/%Y} às {self.generated_at:%H:%M:%S}",
               size=12, color=GRAY_TEXT)
        return 70

    def _summary(self, y: float) -> float:
        self.canvas.text(MARGIN_LEFT, y, "Resumo Financeiro", size=16, bold=True)
        rows = [
            ["Total de Receitas", format_currency(self.data.total_income)],
            ["Total de Despesas", format_currency(self.data.total_expenses)],
            ["Saldo do Período", format_currency(self.data.balance)],
            ["Número de Transações", str(len(self.data.transactions))],
        ]
        final_y = self.canvas.table(y + 10, ["Descrição", "Valor"], rows,
                                    [Column(110), Column(60, "right")], ORANGE)
        return final_y + 20

    def _category_breakdown(self, y: float) -> float:
        income = category_breakdown(self.data, INCOME)
        expenses = category_breakdown(self.data, EXPENSE)
        if not income and not expenses:
            return y

        y = self._ensure_room(y)
        self.canvas.text(MARGIN_LEFT, y, "Detalhamento por Categoria", size=16, bold=True)
        y += 10
        columns = [Column(80), Column(20, "center"), Column(40, "right"), Column(30, "right")]
        for subtitle, shares, color in (("Receitas por Categoria", income, GREEN),
                                        ("Despesas por Categoria", expenses, RED)):
            if not shares:
                continue
            y = self._ensure_room(y)
            self.canvas.text(MARGIN_LEFT, y, subtitle, size=14, bold=True)
            y = self.canvas.table(y + 5, ["Categoria", "Qtd", "Total", "%"],
                                  [share.as_row() for share in shares], columns, color, font_size=9)
            y += 15
        return y

    def _expense_analysis(self, y: float) -> float:
        y = self._ensure_room(y)
        self.canvas.text(MARGIN_LEFT, y, "Análise Detalhada de Gastos", size=16, bold=True)
        analysis = expense_analysis(self.data, self.expense_days)
        y = self.canvas.table(y + 10, ["Métrica", "Valor"], analysis.as_rows(),
                              [Column(110), Column(60, "right")], RED) + 15

        shares = category_breakdown(self.data, EXPENSE)
        if not shares:
            return y
        # A pizza não pode ser cortada entre páginas
        pie_height = 70
        if y + pie_height + 10 > TABLE_BOTTOM_Y:
            self.canvas.add_page()
            y = TOP_Y
        self.canvas.text(MARGIN_LEFT, y, "Distribuição de Despesas", size=14, bold=True)
        charts.draw_category_pie(self.canvas.axes(MARGIN_LEFT, y + 5, 90, pie_height), shares)
        return y + pie_height + 15

    def _cash_flow(self, y: float) -> float:
        y = self._ensure_room(y, CASHFLOW_BREAK_Y)
        self.canvas.text(MARGIN_LEFT, y, "Fluxo de Caixa Diário", size=16, bold=True)
        rows = [flow.as_row() for flow in cash_flow_rows(self.data)]
        columns = [Column(50), Column(40, "right"), Column(40, "right"), Column(40, "right")]
        return self.canvas.table(y + 10, ["Data", "Receitas", "Despesas", "Saldo"], rows,
                                 columns, GREEN, font_size=9) + 20

    def _transactions_list(self, y: float) -> float:
        if not self.data.transactions:
            return y
        y = self._ensure_room(y)
        self.canvas.text(MARGIN_LEFT, y, "Lista de Transações", size=16, bold=True)
        rows, remaining = transaction_listing(self.data)
        columns = [Column(20), Column(40), Column(25), Column(25), Column(20), Column(25, "right")]
        y = self.canvas.table(y + 10, ["Data", "Descrição", "Categoria", "Conta", "Tipo", "Valor"],
                              rows, columns, ORANGE, font_size=8)
        if remaining:
            if y + 10 > TABLE_BOTTOM_Y:
                self.canvas.add_page()
                y = TOP_Y
            self.canvas.text(MARGIN_LEFT, y + 10, overflow_notice(remaining), size=10, color=GRAY_TEXT)
        return y + 20

    def _footer(self) -> None:
        # Só aqui o total de páginas é conhecido
        total = self.canvas.page_count
        for index in range(total):
            self.canvas.set_page(index)
            self.canvas.line(MARGIN_LEFT, FOOTER_LINE_Y, MARGIN_RIGHT)
            self.canvas.text(MARGIN_LEFT, FOOTER_TEXT_Y,
                             f"Gerado pelo {PRODUCT_NAME} - Sistema de Gestão Financeira",
                             size=8, color=GRAY_TEXT)
            self.canvas.text(MARGIN_RIGHT, FOOTER_TEXT_Y, f"Página {index + 1} de {total}",
                             size=8, color=GRAY_TEXT, align="right")


def generate_report(kind: str, data: ReportData,
                    generated_at: Union[datetime.datetime, None] = None,
                    expense_days: int = EXPENSE_DAYS_DIVISOR) -> GeneratedReport:
    """Gera o PDF do relatório pedido ('monthly', 'expenses' ou 'cashflow')."""
    report = ReportBuilder(data, generated_at, expense_days).build(kind)
    logger.info(f"Relatório {report.filename} gerado com {report.page_count} página(s)")
    return report
