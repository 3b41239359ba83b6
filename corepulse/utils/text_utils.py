import datetime
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Union

CENTS = Decimal("0.01")

MONTH_NAMES = [
    "janeiro", "fevereiro", "março", "abril", "maio", "junho",
    "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
]


def to_decimal(value: Any) -> Decimal:
    """Converte um valor vindo do Supabase (float, int, str) para Decimal.
    Ex: 18.1 -> Decimal("18.1")
    Ex: "18,50" -> Decimal("18.50")
    Ex: None -> Decimal("0")
    """
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        result = value
    else:
        if isinstance(value, str):
            value = value.strip().replace(",", ".")
        try:
            # str() evita herdar o ruído binário do float (0.1 -> 0.1000000000000000055...)
            result = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Valor monetário inválido: {value!r}")
    # NaN e Infinity são Decimals válidos, mas não são dinheiro
    if not result.is_finite():
        raise ValueError(f"Valor monetário inválido: {value!r}")
    return result


def format_currency(value: Union[Decimal, int, float]) -> str:
    """Formata no padrão brasileiro.
    Ex: Decimal("1234.5") -> "R$ 1.234,50"
    Ex: Decimal("-400") -> "-R$ 400,00"
    """
    amount = to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    integer_part, fraction = f"{abs(amount):,.2f}".split(".")
    return f"{sign}R$ {integer_part.replace(',', '.')},{fraction}"


def format_number_br(value: Union[Decimal, int, float]) -> str:
    """Número no padrão brasileiro, sem casas decimais sobrando.
    Ex: 1000 -> "1.000"; 1234.5 -> "1.234,5"; -80.25 -> "-80,25"
    """
    amount = to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    integer_part, fraction = f"{abs(amount):,.2f}".split(".")
    fraction = fraction.rstrip("0")
    text = integer_part.replace(",", ".")
    return f"{sign}{text},{fraction}" if fraction else f"{sign}{text}"


def format_signed_currency(value: Union[Decimal, int, float], is_income: bool) -> str:
    """Ex: (400, False) -> "-R$ 400,00"; (1000, True) -> "+R$ 1.000,00"."""
    return ("+" if is_income else "-") + format_currency(abs(to_decimal(value)))


def format_percent(value: Union[Decimal, float]) -> str:
    """Uma casa decimal, sem zeros sobrando: 33.33 -> "33.3", 25.0 -> "25"."""
    return f"{round(float(value), 1):g}"


def parse_date(value: Union[str, datetime.date, datetime.datetime, None]) -> Union[datetime.date, None]:
    """Lê 'AAAA-MM-DD' ou um timestamp ISO e devolve só a data do calendário."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return datetime.date.fromisoformat(str(value)[:10])


def format_date_br(value: datetime.date) -> str:
    return value.strftime("%d/%m/%Y")


def month_label(year: int, month: int) -> str:
    """Ex: (2026, 10) -> "outubro de 2026"."""
    return f"{MONTH_NAMES[month - 1]} de {year}"


def slugify(text: str) -> str:
    """Troca espaços por hífens e passa para minúsculas.
    Ex: "outubro de 2026" -> "outubro-de-2026"
    """
    return re.sub(r"\s", "-", text.strip()).lower()


def truncate(text: str, max_chars: int) -> str:
    if max_chars <= 1 or len(text) <= max_chars:
        return text
    return text[: max_chars - 1] + "…"
