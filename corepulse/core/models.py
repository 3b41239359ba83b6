import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from corepulse.utils.text_utils import parse_date, to_decimal

# Estes modelos espelham as linhas das tabelas do Supabase.
# db.py devolve dicionários; from_row() os converte para uso nos cálculos.

INCOME = "income"
EXPENSE = "expense"
TRANSACTION_TYPES = (INCOME, EXPENSE)



class Transaction:
    def __init__(self, id: str, type: str, amount: Decimal, description: str,
                 date: datetime.date, account_id: str, category_id: Optional[str] = None,
                 is_recurring: bool = False, recurring_interval: Optional[str] = None):
        if type not in TRANSACTION_TYPES:
            raise ValueError(f"Tipo de transação inválido: {type}")
        if amount < 0:
            raise ValueError("O valor da transação não pode ser negativo")
        self.id = id
        self.type = type
        self.amount = amount
        self.description = description
        self.date = date
        self.account_id = account_id
        self.category_id = category_id
        self.is_recurring = is_recurring
        self.recurring_interval = recurring_interval

    @property
    def is_income(self) -> bool:
        return self.type == INCOME

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.is_income else -self.amount

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Transaction":
        return cls(
            id=row["id"],
            type=row["type"],
            amount=to_decimal(row.get("amount")),
            description=row.get("description") or "",
            date=parse_date(row.get("date")),
            account_id=row.get("account_id"),
            category_id=row.get("category_id"),
            is_recurring=bool(row.get("is_recurring", False)),
            recurring_interval=row.get("recurring_interval"),
        )

    def __repr__(self) -> str:
        return f"Transaction({self.id!r}, {self.type}, {self.amount}, {self.date})"


class Account:
    def __init__(self, id: str, name: str, balance: Decimal = Decimal("0"), is_active: bool = True):
        self.id = id
        self.name = name
        self.balance = balance
        self.is_active = is_active

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Account":
        return cls(
            id=row["id"],
            name=row.get("name") or "",
            balance=to_decimal(row.get("balance")),
            is_active=bool(row.get("is_active", True)),
        )

    def __repr__(self) -> str:
        return f"Account({self.id!r}, {self.name!r}, {self.balance})"


class Category:
    def __init__(self, id: str, name: str, type: str, color: str = "#6B7280"):
        self.id = id
        self.name = name
        self.type = type
        self.color = color

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Category":
        return cls(
            id=row["id"],
            name=row.get("name") or "",
            type=row.get("type") or EXPENSE,
            color=row.get("color") or "#6B7280",
        )


class Lead:
    def __init__(self, id: str, name: str, status: str = "new", value: Decimal = Decimal("0")):
        self.id = id
        self.name = name
        self.status = status
        self.value = value

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Lead":
        return cls(
            id=row["id"],
            name=row.get("name") or "",
            status=row.get("status") or "new",
            value=to_decimal(row.get("value")),
        )


class Task:
    def __init__(self, id: str, title: str, status: str = "todo",
                 due_date: Optional[datetime.date] = None):
        self.id = id
        self.title = title
        self.status = status
        self.due_date = due_date

    @property
    def is_done(self) -> bool:
        return self.status == "done"

    def is_overdue(self, today: datetime.date) -> bool:
        return self.due_date is not None and self.due_date < today and not self.is_done

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Task":
        return cls(
            id=row["id"],
            title=row.get("title") or "",
            status=row.get("status") or "todo",
            due_date=parse_date(row.get("due_date")),
        )


class Insight:
    def __init__(self, id: str, type: str, title: str, description: str, priority: int = 1,
                 is_read: bool = False, is_applied: bool = False,
                 data: Optional[Dict[str, Any]] = None, created_at: Optional[str] = None):
        self.id = id
        self.type = type
        self.title = title
        self.description = description
        self.priority = priority
        self.is_read = is_read
        self.is_applied = is_applied
        self.data = data or {}
        self.created_at = created_at

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Insight":
        return cls(
            id=row["id"],
            type=row.get("type") or "",
            title=row.get("title") or "",
            description=row.get("description") or "",
            priority=int(row.get("priority") or 1),
            is_read=bool(row.get("is_read", False)),
            is_applied=bool(row.get("is_applied", False)),
            data=row.get("data"),
            created_at=row.get("created_at"),
        )


def insight_stats(insights: List[Insight]) -> Dict[str, int]:
    """Contadores exibidos no painel de insights."""
    return {
        "total": len(insights),
        "unread": sum(1 for i in insights if not i.is_read),
        "applied": sum(1 for i in insights if i.is_applied),
        "high_priority": sum(1 for i in insights if i.priority == 3),
    }
