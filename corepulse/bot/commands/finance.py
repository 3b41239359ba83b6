import asyncio
import datetime
import logging

from telegram import Update
from telegram.ext import ContextTypes

from corepulse.bot.commands.utils import get_store
from corepulse.core import charts
from corepulse.core.models import INCOME, EXPENSE
from corepulse.utils.text_utils import format_currency, format_signed_currency, month_label, to_decimal

logger = logging.getLogger(__name__)


async def resumo_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Resumo financeiro do mês atual."""
    store = get_store(context)
    if not await asyncio.to_thread(store.fetch_data):
        await update.message.reply_text(f"⚠️ Erro ao carregar os dados financeiros: {store.error}")
        return

    today = datetime.date.today()
    stats = store.stats(today)
    await update.message.reply_text(
        f"📊 Resumo de {month_label(today.year, today.month)}\n\n"
        f"💰 Receitas: {format_currency(stats.monthly_income)}\n"
        f"💸 Despesas: {format_currency(stats.monthly_expenses)}\n"
        f"📈 Saldo do mês: {format_currency(stats.monthly_balance)}\n"
        f"🏦 Saldo total das contas: {format_currency(stats.total_balance)}\n"
        f"🧾 Transações no mês: {stats.transaction_count}"
    )


async def balanco_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Gera e envia o gráfico de balanço."""
    store = get_store(context)
    await update.message.reply_text("Gerando seu balanço mensal, por favor aguarde...")
    if not await asyncio.to_thread(store.fetch_data):
        await update.message.reply_text(f"⚠️ Erro ao carregar os dados financeiros: {store.error}")
        return

    chart_buffer = await asyncio.to_thread(charts.generate_balance_chart, store.transactions)
    if chart_buffer:
        chart_buffer.name = "balanco_chart.png"
        await update.message.reply_photo(photo=chart_buffer, caption="Aqui está seu balanço mensal:")
    else:
        await update.message.reply_text(
            "Ainda não tenho dados suficientes para gerar um balanço. Registre algumas receitas e despesas primeiro!"
        )


def parse_transaction_args(args, type: str) -> dict:
    """
    ['80', 'Almoço', 'com', 'cliente', '|', 'Alimentação'] ->
    {'amount': Decimal('80'), 'description': 'Almoço com cliente', 'category': 'Alimentação'}
    Levanta ValueError quando o valor falta ou é inválido.
    """
    if not args:
        raise ValueError("Informe o valor")
    amount = to_decimal(args[0])
    description, _, category = " ".join(args[1:]).partition("|")
    return {
        "type": type,
        "amount": amount,
        "description": description.strip() or ("Receita" if type == INCOME else "Despesa"),
        "category": category.strip() or None,
    }


async def _register(update: Update, context: ContextTypes.DEFAULT_TYPE, type: str) -> None:
    command = "receita" if type == INCOME else "despesa"
    try:
        parsed = parse_transaction_args(context.args, type)
    except ValueError:
        await update.message.reply_text(f"Uso: `/{command} [valor] [descrição] | [categoria]` (ex: `/{command} 80 Almoço | Alimentação`)")
        return

    store = get_store(context)
    if not await asyncio.to_thread(store.fetch_data):
        await update.message.reply_text(f"⚠️ Erro ao carregar os dados financeiros: {store.error}")
        return

    account = store.default_account()
    if account is None:
        await update.message.reply_text("⚠️ Nenhuma conta ativa encontrada.")
        return

    category = store.find_category_by_name(parsed["category"], type) if parsed["category"] else None
    data = {
        "type": type,
        "amount": parsed["amount"],
        "description": parsed["description"],
        "date": datetime.date.today(),
        "account_id": account.id,
        "category_id": category.id if category else None,
    }
    try:
        transaction = await asyncio.to_thread(store.create_transaction, data)
    except ValueError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return

    if transaction is None:
        await update.message.reply_text(f"⚠️ Erro ao registrar a {command}: {store.error}")
        return

    category_msg = f" em '{category.name}'" if category else ""
    if parsed["category"] and category is None:
        category_msg = f" (categoria '{parsed['category']}' não encontrada, registrada sem categoria)"
    updated = store.find_account(account.id)
    await update.message.reply_text(
        f"✅ {command.capitalize()} de {format_signed_currency(transaction.amount, transaction.is_income)}"
        f"{category_msg} registrada com sucesso!\n"
        f"🏦 Saldo de {account.name}: {format_currency(updated.balance if updated else account.balance)}\n"
        f"🆔 {transaction.id}"
    )


async def receita_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _register(update, context, INCOME)


async def despesa_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _register(update, context, EXPENSE)


async def apagar_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Apaga uma transação pelo id e acerta o saldo da conta."""
    if not context.args:
        await update.message.reply_text("Uso: `/apagar [id_da_transação]`")
        return

    store = get_store(context)
    if not await asyncio.to_thread(store.fetch_data):
        await update.message.reply_text(f"⚠️ Erro ao carregar os dados financeiros: {store.error}")
        return

    transaction_id = context.args[0]
    if store.find_transaction(transaction_id) is None:
        await update.message.reply_text(f"🤔 Transação {transaction_id} não encontrada.")
        return

    if await asyncio.to_thread(store.delete_transaction, transaction_id):
        await update.message.reply_text("🗑️ Transação apagada e saldo atualizado.")
    else:
        await update.message.reply_text(f"⚠️ Erro ao apagar a transação: {store.error}")


async def conciliar_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Recalcula o saldo de todas as contas a partir das transações."""
    store = get_store(context)
    if not await asyncio.to_thread(store.fetch_data):
        await update.message.reply_text(f"⚠️ Erro ao carregar os dados financeiros: {store.error}")
        return

    balances = await asyncio.to_thread(store.reconcile_all)
    if not balances:
        await update.message.reply_text("⚠️ Não foi possível recalcular os saldos. Tente novamente mais tarde.")
        return

    lines = []
    for account_id, balance in balances.items():
        account = store.find_account(account_id)
        lines.append(f"- {account.name if account else account_id}: {format_currency(balance)}")
    logger.info(f"Saldos conciliados: {len(balances)} conta(s)")
    await update.message.reply_text("🏦 Saldos recalculados:\n" + "\n".join(lines))
