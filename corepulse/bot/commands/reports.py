import asyncio
import logging

from telegram import Update
from telegram.ext import ContextTypes

from corepulse.bot.commands.utils import get_store, parse_period
from corepulse.core.reports import REPORT_ERROR_MESSAGE, build_report_data, generate_report

logger = logging.getLogger(__name__)

# Nome usado no comando -> tipo de relatório
REPORT_ALIASES = {
    "mensal": "monthly",
    "gastos": "expenses",
    "fluxo": "cashflow",
}


async def relatorio_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/relatorio <mensal|gastos|fluxo> [AAAA-MM]: envia o relatório em PDF."""
    args = context.args or []
    kind = REPORT_ALIASES.get(args[0].lower()) if args else None
    if kind is None:
        await update.message.reply_text("Uso: `/relatorio mensal|gastos|fluxo [AAAA-MM]` (ex: `/relatorio gastos 2026-09`)")
        return

    try:
        year, month = parse_period(args[1] if len(args) > 1 else None)
    except ValueError:
        await update.message.reply_text("🤔 Período inválido. Use o formato AAAA-MM (ex: 2026-09).")
        return

    store = get_store(context)
    await update.message.reply_text("Gerando seu relatório, por favor aguarde...")
    if not await asyncio.to_thread(store.fetch_data):
        await update.message.reply_text(f"⚠️ Erro ao carregar os dados financeiros: {store.error}")
        return

    data = build_report_data(store.transactions, store.accounts, store.categories, year, month)
    try:
        report = await asyncio.to_thread(generate_report, kind, data)
    except Exception as e:
        logger.exception(f"Erro ao gerar relatório {kind}: {e}")
        await update.message.reply_text(REPORT_ERROR_MESSAGE)
        return

    await update.message.reply_document(
        document=report.content,
        filename=report.filename,
        caption=f"Relatório de {data.period} ({report.page_count} página(s))",
    )
