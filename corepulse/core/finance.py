import datetime
import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Union

from supabase import Client

from corepulse.core import db
from corepulse.core.models import Account, Category, Transaction, INCOME, EXPENSE, TRANSACTION_TYPES
from corepulse.utils.text_utils import to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class FinancialStats:
    def __init__(self, monthly_income: Decimal = ZERO, monthly_expenses: Decimal = ZERO,
                 total_balance: Decimal = ZERO, transaction_count: int = 0):
        self.monthly_income = monthly_income
        self.monthly_expenses = monthly_expenses
        self.monthly_balance = monthly_income - monthly_expenses
        self.total_balance = total_balance
        self.transaction_count = transaction_count

    def __repr__(self) -> str:
        return (f"FinancialStats(income={self.monthly_income}, expenses={self.monthly_expenses}, "
                f"balance={self.monthly_balance}, total={self.total_balance})")


def sum_amounts(transactions: Iterable[Transaction], type: Union[str, None] = None) -> Decimal:
    return sum((t.amount for t in transactions if type is None or t.type == type), ZERO)


def percentage_of(part: Decimal, total: Decimal) -> Decimal:
    """Percentual de part em total; 0 quando o total é zero."""
    if not total:
        return ZERO
    return part / total * 100


def transactions_in_month(transactions: Iterable[Transaction], year: int, month: int) -> List[Transaction]:
    return [t for t in transactions if t.date is not None and t.date.year == year and t.date.month == month]


def monthly_stats(transactions: List[Transaction], accounts: List[Account], year: int, month: int) -> FinancialStats:
    """Receitas, despesas e saldo do mês, mais o saldo somado de todas as contas."""
    current = transactions_in_month(transactions, year, month)
    return FinancialStats(
        monthly_income=sum_amounts(current, INCOME),
        monthly_expenses=sum_amounts(current, EXPENSE),
        total_balance=sum((a.balance for a in accounts), ZERO),
        transaction_count=len(current),
    )


def compute_balance(transactions: Iterable[Transaction], account_id: str) -> Decimal:
    """Saldo da conta = soma das receitas - soma das despesas."""
    return sum((t.signed_amount for t in transactions if t.account_id == account_id), ZERO)


def fold_balance_rows(rows: Iterable[Dict[str, Any]]) -> Decimal:
    """Mesmo cálculo de compute_balance, direto das linhas {amount, type} do Supabase."""
    balance = ZERO
    for row in rows:
        amount = to_decimal(row.get("amount"))
        balance = balance + amount if row.get("type") == INCOME else balance - amount
    return balance


def validate_transaction_data(data: Dict[str, Any], partial: bool = False) -> None:
    """Validação local antes de enviar ao Supabase. Levanta ValueError.
    Com partial=True só valida os campos presentes (atualizações).
    """
    if (not partial or "type" in data) and data.get("type") not in TRANSACTION_TYPES:
        raise ValueError("Tipo deve ser 'income' ou 'expense'")
    if "amount" in data and to_decimal(data["amount"]) < 0:
        raise ValueError("O valor não pode ser negativo")
    if (not partial or "account_id" in data) and not data.get("account_id"):
        raise ValueError("Informe a conta da transação")


class TransactionStore:
    """
    Espelho local de transações, contas e categorias de um usuário.

    Toda mutação de transação é seguida do acerto do saldo das contas afetadas.
    Por padrão o saldo é recalculado a partir de todas as transações da conta
    (reconcile_account). Com incremental=True o saldo local é ajustado pela
    diferença e gravado, e reconcile_account/reconcile_all continuam disponíveis
    para corrigir qualquer divergência.

    Erros do Supabase não são relançados: ficam em self.error e os métodos
    devolvem None/False.
    """

    def __init__(self, supabase_client: Client, user_id: str, incremental: bool = False):
        self.supabase_client = supabase_client
        self.user_id = user_id
        self.incremental = incremental
        self.transactions: List[Transaction] = []
        self.accounts: List[Account] = []
        self.categories: List[Category] = []
        self.error: Union[str, None] = None

    # --- Carga ---
    def fetch_data(self) -> bool:
        try:
            transaction_rows = db.get_transactions(self.supabase_client, self.user_id)
            account_rows = db.get_accounts(self.supabase_client, self.user_id)
            category_rows = db.get_categories(self.supabase_client, self.user_id)
        except Exception as e:
            logger.error(f"Erro ao obter dados financeiros do Supabase: {e}")
            self.error = str(e) or "Erro ao obter dados financeiros"
            return False

        # Converte as linhas do Supabase para os modelos
        self.transactions = [Transaction.from_row(row) for row in transaction_rows]
        self.accounts = [Account.from_row(row) for row in account_rows]
        self.categories = [Category.from_row(row) for row in category_rows]
        self.error = None

        # Primeiro acesso: cria a conta e as categorias padrão
        if not self.accounts:
            self._create_default_account()
        if not self.categories:
            self._create_default_categories()
        return True

    def _create_default_account(self) -> None:
        try:
            rows = db.create_default_account(self.supabase_client, self.user_id)
            self.accounts = [Account.from_row(row) for row in rows]
        except Exception as e:
            logger.error(f"Erro ao criar conta padrão: {e}")

    def _create_default_categories(self) -> None:
        try:
            rows = db.create_default_categories(self.supabase_client, self.user_id)
            self.categories = [Category.from_row(row) for row in rows]
        except Exception as e:
            logger.error(f"Erro ao criar categorias padrão: {e}")

    # --- Consultas ---
    def find_transaction(self, transaction_id: str) -> Union[Transaction, None]:
        return next((t for t in self.transactions if t.id == transaction_id), None)

    def find_account(self, account_id: str) -> Union[Account, None]:
        return next((a for a in self.accounts if a.id == account_id), None)

    def default_account(self) -> Union[Account, None]:
        return self.accounts[0] if self.accounts else None

    def find_category_by_name(self, name: str, type: str) -> Union[Category, None]:
        # Comparação sem diferenciar maiúsculas
        name_lower = name.lower()
        return next((c for c in self.categories if c.type == type and c.name.lower() == name_lower), None)

    def stats(self, today: Union[datetime.date, None] = None) -> FinancialStats:
        today = today or datetime.date.today()
        return monthly_stats(self.transactions, self.accounts, today.year, today.month)

    # --- Mutações ---
    def create_transaction(self, data: Dict[str, Any]) -> Union[Transaction, None]:
        validate_transaction_data(data)
        try:
            row = db.insert_transaction(self.supabase_client, self.user_id, data)
        except Exception as e:
            logger.error(f"Erro ao criar transação: {e}")
            self.error = str(e) or "Erro ao criar transação"
            return None
        if row is None:
            # insert aceito, mas a linha não voltou (ex: bloqueada por RLS)
            logger.error("Supabase não devolveu a transação criada")
            self.error = "Erro ao criar transação"
            return None

        transaction = Transaction.from_row(row)
        # Mais recente primeiro, como em get_transactions
        self.transactions.insert(0, transaction)
        self._settle(transaction.account_id, transaction.signed_amount)
        return transaction

    def update_transaction(self, transaction_id: str, updates: Dict[str, Any]) -> Union[Transaction, None]:
        validate_transaction_data(updates, partial=True)
        previous = self.find_transaction(transaction_id)
        try:
            row = db.update_transaction(self.supabase_client, transaction_id, updates)
        except Exception as e:
            logger.error(f"Erro ao atualizar transação {transaction_id}: {e}")
            self.error = str(e) or "Erro ao atualizar transação"
            return None
        if row is None:
            logger.error(f"Transação {transaction_id} não encontrada para atualização")
            self.error = "Transação não encontrada"
            return None

        updated = Transaction.from_row(row)
        self.transactions = [updated if t.id == transaction_id else t for t in self.transactions]

        # A conta antiga também muda quando a transação troca de conta ou de valor
        if previous is not None:
            self._settle(previous.account_id, -previous.signed_amount)
            self._settle(updated.account_id, updated.signed_amount)
        else:
            self.reconcile_account(updated.account_id)
        return updated

    def delete_transaction(self, transaction_id: str) -> bool:
        transaction = self.find_transaction(transaction_id)
        try:
            db.delete_transaction(self.supabase_client, transaction_id)
        except Exception as e:
            logger.error(f"Erro ao apagar transação {transaction_id}: {e}")
            self.error = str(e) or "Erro ao apagar transação"
            return False

        self.transactions = [t for t in self.transactions if t.id != transaction_id]
        if transaction is not None:
            self._settle(transaction.account_id, -transaction.signed_amount)
        return True

    # --- Saldos ---
    def _settle(self, account_id: str, delta: Decimal) -> None:
        # Conta fora do espelho local sempre passa pelo recálculo completo
        if self.incremental and self.find_account(account_id) is not None:
            self.apply_incremental(account_id, delta)
        else:
            self.reconcile_account(account_id)

    def apply_incremental(self, account_id: str, delta: Decimal) -> Union[Decimal, None]:
        """Ajusta o saldo local pela diferença e grava o resultado."""
        account = self.find_account(account_id)
        if account is None:
            return None
        account.balance = account.balance + delta
        try:
            db.update_account_balance(self.supabase_client, account_id, account.balance)
        except Exception as e:
            logger.error(f"Erro ao gravar saldo da conta {account_id}: {e}")
        return account.balance

    def reconcile_account(self, account_id: str) -> Union[Decimal, None]:
        """Recalcula o saldo a partir de todas as transações da conta e grava."""
        try:
            rows = db.get_account_transactions(self.supabase_client, account_id)
            balance = fold_balance_rows(rows)
            db.update_account_balance(self.supabase_client, account_id, balance)
        except Exception as e:
            logger.error(f"Erro ao atualizar saldo da conta {account_id}: {e}")
            return None

        account = self.find_account(account_id)
        if account is not None:
            account.balance = balance
        return balance

    def reconcile_all(self) -> Dict[str, Decimal]:
        # Contas que falharem ficam de fora do resultado
        results = {}
        for account in list(self.accounts):
            balance = self.reconcile_account(account.id)
            if balance is not None:
                results[account.id] = balance
        return results
