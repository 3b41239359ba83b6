import datetime
import unittest
from decimal import Decimal
from unittest.mock import MagicMock, patch

from corepulse.core.finance import (
    TransactionStore, compute_balance, fold_balance_rows, monthly_stats, percentage_of,
    transactions_in_month, validate_transaction_data,
)
from corepulse.core.models import Account, Transaction

TODAY = datetime.date(2026, 10, 19)


def make_transaction(id, type, amount, date=TODAY, account_id="A1", category_id=None):
    return Transaction(id, type, Decimal(str(amount)), f"Transação {id}", date, account_id, category_id)


def transaction_row(id, type, amount, date="2026-10-19", account_id="A1"):
    return {"id": id, "type": type, "amount": amount, "description": "", "date": date, "account_id": account_id}


class TestAggregates(unittest.TestCase):
    def test_monthly_scenario(self):
        transactions = [make_transaction("1", "income", 1000), make_transaction("2", "expense", 400)]
        accounts = [Account("A1", "Conta Principal", Decimal("600"))]

        stats = monthly_stats(transactions, accounts, 2026, 10)

        self.assertEqual(stats.monthly_income, Decimal("1000"))
        self.assertEqual(stats.monthly_expenses, Decimal("400"))
        self.assertEqual(stats.monthly_balance, Decimal("600"))
        self.assertEqual(stats.total_balance, Decimal("600"))
        self.assertEqual(stats.transaction_count, 2)

    def test_zero_transactions(self):
        stats = monthly_stats([], [], 2026, 10)
        self.assertEqual(stats.monthly_income, 0)
        self.assertEqual(stats.monthly_expenses, 0)
        self.assertEqual(stats.monthly_balance, 0)
        self.assertEqual(stats.total_balance, 0)
        self.assertEqual(percentage_of(Decimal("0"), stats.monthly_expenses), 0)

    def test_other_months_are_excluded(self):
        transactions = [
            make_transaction("1", "income", 1000),
            make_transaction("2", "income", 500, date=datetime.date(2026, 9, 30)),
            make_transaction("3", "expense", 70, date=datetime.date(2025, 10, 5)),
        ]
        self.assertEqual([t.id for t in transactions_in_month(transactions, 2026, 10)], ["1"])
        stats = monthly_stats(transactions, [], 2026, 10)
        self.assertEqual(stats.monthly_income, Decimal("1000"))
        self.assertEqual(stats.monthly_expenses, Decimal("0"))

    def test_compute_balance_per_account(self):
        transactions = [
            make_transaction("1", "income", "100.10"),
            make_transaction("2", "expense", "0.20"),
            make_transaction("3", "income", 999, account_id="A2"),
        ]
        self.assertEqual(compute_balance(transactions, "A1"), Decimal("99.90"))
        self.assertEqual(compute_balance(transactions, "A3"), Decimal("0"))

    def test_fold_balance_rows_matches_compute_balance(self):
        rows = [{"amount": 0.1, "type": "income"}, {"amount": 0.2, "type": "income"}, {"amount": "0.3", "type": "expense"}]
        self.assertEqual(fold_balance_rows(rows), Decimal("0"))


class TestValidation(unittest.TestCase):
    def test_invalid_type(self):
        with self.assertRaises(ValueError):
            validate_transaction_data({"type": "transfer", "amount": 10, "account_id": "A1"})

    def test_negative_amount(self):
        with self.assertRaises(ValueError):
            validate_transaction_data({"type": "expense", "amount": -5, "account_id": "A1"})

    def test_missing_account(self):
        with self.assertRaises(ValueError):
            validate_transaction_data({"type": "expense", "amount": 5})

    def test_partial_update_only_checks_present_fields(self):
        validate_transaction_data({"description": "Nova descrição"}, partial=True)
        with self.assertRaises(ValueError):
            validate_transaction_data({"amount": "-1"}, partial=True)

    def test_non_finite_amount(self):
        for amount in ("NaN", "Infinity", "-Infinity", Decimal("Infinity")):
            with self.assertRaises(ValueError):
                validate_transaction_data({"type": "income", "amount": amount, "account_id": "A1"})


@patch('corepulse.core.finance.db')
class TestTransactionStore(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock()

    def _loaded_store(self, mock_db, transactions, incremental=False, balance=0):
        mock_db.get_transactions.return_value = transactions
        mock_db.get_accounts.return_value = [{"id": "A1", "name": "Conta Principal", "balance": balance}]
        mock_db.get_categories.return_value = [{"id": "C1", "name": "Vendas", "type": "income"}]
        store = TransactionStore(self.client, "user-1", incremental=incremental)
        self.assertTrue(store.fetch_data())
        return store

    def test_reconcile_scenario(self, mock_db):
        rows = [transaction_row("1", "income", 1000), transaction_row("2", "expense", 400)]
        store = self._loaded_store(mock_db, rows)
        mock_db.get_account_transactions.return_value = [{"amount": 1000, "type": "income"}, {"amount": 400, "type": "expense"}]

        balances = store.reconcile_all()

        self.assertEqual(balances, {"A1": Decimal("600")})
        mock_db.update_account_balance.assert_called_once_with(self.client, "A1", Decimal("600"))
        stats = store.stats(TODAY)
        self.assertEqual(stats.monthly_balance, Decimal("600"))
        self.assertEqual(stats.total_balance, Decimal("600"))

    def test_fetch_creates_defaults_when_empty(self, mock_db):
        mock_db.get_transactions.return_value = []
        mock_db.get_accounts.return_value = []
        mock_db.get_categories.return_value = []
        mock_db.create_default_account.return_value = [{"id": "A1", "name": "Conta Principal", "balance": "0"}]
        mock_db.create_default_categories.return_value = [{"id": "C1", "name": "Vendas", "type": "income"}]

        store = TransactionStore(self.client, "user-1")

        self.assertTrue(store.fetch_data())
        self.assertEqual(store.default_account().name, "Conta Principal")
        self.assertEqual(store.categories[0].name, "Vendas")

    def test_fetch_error_is_kept(self, mock_db):
        mock_db.get_transactions.side_effect = Exception("JWT expired")
        store = TransactionStore(self.client, "user-1")
        self.assertFalse(store.fetch_data())
        self.assertEqual(store.error, "JWT expired")

    def test_create_transaction_reconciles_account(self, mock_db):
        store = self._loaded_store(mock_db, [])
        mock_db.insert_transaction.return_value = transaction_row("9", "expense", 80)
        mock_db.get_account_transactions.return_value = [{"amount": 80, "type": "expense"}]

        created = store.create_transaction({"type": "expense", "amount": Decimal("80"), "account_id": "A1",
                                            "description": "Almoço", "date": TODAY})

        self.assertEqual(created.id, "9")
        self.assertEqual(store.transactions[0].id, "9")
        self.assertEqual(store.find_account("A1").balance, Decimal("-80"))

    def test_create_transaction_validates_before_insert(self, mock_db):
        store = self._loaded_store(mock_db, [])
        with self.assertRaises(ValueError):
            store.create_transaction({"type": "expense", "amount": -1, "account_id": "A1"})
        mock_db.insert_transaction.assert_not_called()

    def test_create_transaction_error(self, mock_db):
        store = self._loaded_store(mock_db, [])
        mock_db.insert_transaction.side_effect = Exception("violates foreign key constraint")
        result = store.create_transaction({"type": "income", "amount": 10, "account_id": "A1"})
        self.assertIsNone(result)
        self.assertEqual(store.error, "violates foreign key constraint")

    def test_create_transaction_without_returned_row(self, mock_db):
        store = self._loaded_store(mock_db, [])
        mock_db.insert_transaction.return_value = None
        result = store.create_transaction({"type": "income", "amount": 10, "account_id": "A1"})
        self.assertIsNone(result)
        self.assertEqual(store.error, "Erro ao criar transação")
        self.assertEqual(store.transactions, [])

    def test_update_unknown_transaction(self, mock_db):
        store = self._loaded_store(mock_db, [transaction_row("1", "income", 1000)])
        mock_db.update_transaction.return_value = None
        self.assertIsNone(store.update_transaction("999", {"amount": 5}))
        self.assertEqual(store.error, "Transação não encontrada")
        self.assertEqual([t.id for t in store.transactions], ["1"])

    def test_incremental_matches_reconcile(self, mock_db):
        rows = [transaction_row("1", "income", 1000)]
        store = self._loaded_store(mock_db, rows, incremental=True, balance=1000)
        mock_db.insert_transaction.return_value = transaction_row("2", "expense", 400)

        store.create_transaction({"type": "expense", "amount": 400, "account_id": "A1"})

        incremental_balance = store.find_account("A1").balance
        mock_db.get_account_transactions.assert_not_called()
        mock_db.get_account_transactions.return_value = [{"amount": 1000, "type": "income"}, {"amount": 400, "type": "expense"}]
        self.assertEqual(store.reconcile_account("A1"), incremental_balance)
        self.assertEqual(incremental_balance, Decimal("600"))

    def test_update_moving_account_settles_both(self, mock_db):
        mock_db.get_transactions.return_value = [transaction_row("1", "income", 100)]
        mock_db.get_accounts.return_value = [
            {"id": "A1", "name": "Conta Principal", "balance": 100},
            {"id": "A2", "name": "Poupança", "balance": 0},
        ]
        mock_db.get_categories.return_value = [{"id": "C1", "name": "Vendas", "type": "income"}]
        store = TransactionStore(self.client, "user-1", incremental=True)
        store.fetch_data()
        mock_db.update_transaction.return_value = transaction_row("1", "income", 150, account_id="A2")

        store.update_transaction("1", {"account_id": "A2", "amount": 150})

        self.assertEqual(store.find_account("A1").balance, Decimal("0"))
        self.assertEqual(store.find_account("A2").balance, Decimal("150"))

    def test_delete_transaction(self, mock_db):
        store = self._loaded_store(mock_db, [transaction_row("1", "income", 1000)], incremental=True, balance=1000)
        self.assertTrue(store.delete_transaction("1"))
        self.assertEqual(store.transactions, [])
        self.assertEqual(store.find_account("A1").balance, Decimal("0"))

    def test_delete_transaction_error(self, mock_db):
        store = self._loaded_store(mock_db, [transaction_row("1", "income", 1000)])
        mock_db.delete_transaction.side_effect = Exception("timeout")
        self.assertFalse(store.delete_transaction("1"))
        self.assertEqual(len(store.transactions), 1)
        self.assertEqual(store.error, "timeout")

    def test_reconcile_failure_returns_none(self, mock_db):
        store = self._loaded_store(mock_db, [])
        mock_db.get_account_transactions.side_effect = Exception("timeout")
        self.assertIsNone(store.reconcile_account("A1"))
        self.assertEqual(store.reconcile_all(), {})

    def test_find_category_by_name(self, mock_db):
        store = self._loaded_store(mock_db, [])
        self.assertEqual(store.find_category_by_name("vendas", "income").id, "C1")
        self.assertIsNone(store.find_category_by_name("vendas", "expense"))


if __name__ == '__main__':
    unittest.main()
