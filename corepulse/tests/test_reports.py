import datetime
import os
import tempfile
import unittest
from decimal import Decimal

from corepulse.core.models import Account, Category, Transaction
from corepulse.core.reports import (
    ACCOUNT_NOT_FOUND, UNCATEGORIZED, build_report_data, cash_flow_rows, category_breakdown,
    expense_analysis, generate_report, overflow_notice, report_filename, transaction_listing,
)

GENERATED_AT = datetime.datetime(2026, 10, 19, 10, 30)


def make_transaction(id, type, amount, day=1, category_id=None, account_id="A1"):
    return Transaction(id, type, Decimal(str(amount)), f"Transação {id}",
                       datetime.date(2026, 10, day), account_id, category_id)


class TestReportData(unittest.TestCase):
    def setUp(self):
        self.accounts = [Account("A1", "Conta Principal", Decimal("0"))]
        self.categories = [
            Category("C1", "Vendas", "income", "#10B981"),
            Category("C2", "Marketing", "expense", "#EF4444"),
            Category("C3", "Impostos", "expense", "#991B1B"),
        ]

    def _data(self, transactions):
        return build_report_data(transactions, self.accounts, self.categories, 2026, 10)

    def test_build_report_data_filters_month(self):
        transactions = [
            make_transaction("1", "income", 1000, category_id="C1"),
            Transaction("2", "expense", Decimal("50"), "Setembro", datetime.date(2026, 9, 30), "A1"),
        ]
        data = self._data(transactions)
        self.assertEqual(data.period, "outubro de 2026")
        self.assertEqual(data.total_income, Decimal("1000"))
        self.assertEqual(data.total_expenses, Decimal("0"))
        self.assertEqual([t.id for t in data.transactions], ["1"])

    def test_category_breakdown_drops_small_shares(self):
        transactions = [
            make_transaction("1", "expense", 995, category_id="C2"),
            make_transaction("2", "expense", 5, category_id="C3"),  # 0,5%
        ]
        shares = category_breakdown(self._data(transactions), "expense")
        self.assertEqual([s.name for s in shares], ["Marketing"])
        self.assertEqual(shares[0].percentage_label, "99.5%")
        self.assertEqual(shares[0].count, 1)

    def test_category_breakdown_uncategorized_row(self):
        transactions = [
            make_transaction("1", "expense", 300, category_id="C2"),
            make_transaction("2", "expense", 100),
            make_transaction("3", "expense", 100, category_id="apagada"),
        ]
        shares = category_breakdown(self._data(transactions), "expense")
        by_name = {s.name: s for s in shares}
        self.assertEqual(by_name[UNCATEGORIZED].count, 2)
        self.assertEqual(by_name[UNCATEGORIZED].percentage_label, "40.0%")
        self.assertEqual(by_name["Marketing"].as_row()[2], "R$ 300,00")

    def test_category_breakdown_without_totals(self):
        self.assertEqual(category_breakdown(self._data([]), "income"), [])

    def test_expense_analysis(self):
        transactions = [
            make_transaction("1", "expense", 100),
            make_transaction("2", "expense", 20),
            make_transaction("3", "expense", 60),
            make_transaction("4", "income", 5000),
        ]
        analysis = expense_analysis(self._data(transactions))
        self.assertEqual(analysis.largest, Decimal("100"))
        self.assertEqual(analysis.smallest, Decimal("20"))
        self.assertEqual(analysis.average, Decimal("60"))
        self.assertEqual(analysis.per_day, Decimal("6"))

    def test_expense_analysis_without_expenses(self):
        analysis = expense_analysis(self._data([]))
        self.assertEqual(analysis.largest, 0)
        self.assertEqual(analysis.per_day, 0)
        self.assertEqual(analysis.as_rows()[3], ["Gastos por Dia", "R$ 0,00"])

    def test_cash_flow_rows_sorted_by_day(self):
        transactions = [
            make_transaction("1", "income", 300, day=15),
            make_transaction("2", "expense", 100, day=3),
            make_transaction("3", "income", 50, day=3),
            make_transaction("4", "expense", 80, day=15),
        ]
        flows = cash_flow_rows(self._data(transactions))
        self.assertEqual([f.day.day for f in flows], [3, 15])
        self.assertEqual(flows[0].net, Decimal("-50"))
        self.assertEqual(flows[1].as_row(), ["15/10/2026", "R$ 300,00", "R$ 80,00", "R$ 220,00"])

    def test_transaction_listing_caps_at_fifty(self):
        transactions = [make_transaction(str(i), "expense", 10, day=(i % 28) + 1) for i in range(73)]
        rows, remaining = transaction_listing(self._data(transactions))
        self.assertEqual(len(rows), 50)
        self.assertEqual(remaining, 23)
        self.assertEqual(overflow_notice(remaining), "... e mais 23 transação(ões)")

    def test_transaction_listing_rows(self):
        transactions = [
            make_transaction("1", "income", 1000, day=2, category_id="C1"),
            make_transaction("2", "expense", 400, day=5, account_id="sumiu"),
        ]
        rows, remaining = transaction_listing(self._data(transactions))
        self.assertEqual(remaining, 0)
        self.assertEqual(rows[0], ["05/10/2026", "Transação 2", UNCATEGORIZED, ACCOUNT_NOT_FOUND, "Despesa", "-R$ 400,00"])
        self.assertEqual(rows[1][2:], ["Vendas", "Conta Principal", "Receita", "+R$ 1.000,00"])

    def test_report_filename(self):
        self.assertEqual(report_filename("monthly", "outubro de 2026"), "relatorio-mensal-outubro-de-2026.pdf")
        self.assertEqual(report_filename("expenses", "outubro de 2026"), "analise-gastos-outubro-de-2026.pdf")
        self.assertEqual(report_filename("cashflow", "outubro de 2026"), "fluxo-caixa-outubro-de-2026.pdf")


class TestGenerateReport(unittest.TestCase):
    def setUp(self):
        accounts = [Account("A1", "Conta Principal", Decimal("0"))]
        categories = [Category("C1", "Vendas", "income", "#10B981"), Category("C2", "Marketing", "expense", "#EF4444")]
        transactions = [make_transaction(str(i), "income" if i % 3 == 0 else "expense", 10 + i,
                                         day=(i % 28) + 1, category_id="C1" if i % 3 == 0 else "C2")
                        for i in range(73)]
        self.data = build_report_data(transactions, accounts, categories, 2026, 10)

    def test_monthly_report_is_pdf(self):
        report = generate_report("monthly", self.data, generated_at=GENERATED_AT)
        self.assertTrue(report.content.startswith(b"%PDF"))
        self.assertEqual(report.filename, "relatorio-mensal-outubro-de-2026.pdf")
        self.assertGreater(report.page_count, 1)

    def test_expenses_report(self):
        report = generate_report("expenses", self.data, generated_at=GENERATED_AT)
        self.assertTrue(report.content.startswith(b"%PDF"))
        self.assertGreaterEqual(report.page_count, 1)

    def test_cashflow_report(self):
        report = generate_report("cashflow", self.data, generated_at=GENERATED_AT)
        self.assertTrue(report.content.startswith(b"%PDF"))
        self.assertEqual(report.filename, "fluxo-caixa-outubro-de-2026.pdf")

    def test_empty_month(self):
        empty = build_report_data([], [], [], 2026, 10)
        report = generate_report("monthly", empty, generated_at=GENERATED_AT)
        self.assertEqual(report.page_count, 1)

    def test_save_writes_pdf(self):
        report = generate_report("expenses", self.data, generated_at=GENERATED_AT)
        with tempfile.TemporaryDirectory() as directory:
            path = report.save(directory)
            self.assertEqual(os.path.basename(path), "analise-gastos-outubro-de-2026.pdf")
            with open(path, "rb") as f:
                self.assertEqual(f.read(), report.content)

    def test_unknown_kind(self):
        with self.assertRaises(ValueError):
            generate_report("anual", self.data)


if __name__ == '__main__':
    unittest.main()
