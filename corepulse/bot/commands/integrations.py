import asyncio
import logging

from telegram import Update
from telegram.ext import ContextTypes

from corepulse.core import db
from corepulse.core.integrations import INTEGRATION_CONFIGS, test_integration

logger = logging.getLogger(__name__)


async def testar_integracao_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/testar_integracao <whatsapp|email|ai>: testa a configuração salva do serviço."""
    args = context.args or []
    service = args[0].lower() if args else ""
    if service not in INTEGRATION_CONFIGS:
        await update.message.reply_text("Uso: `/testar_integracao whatsapp|email|ai`")
        return

    supabase_client = context.bot_data["supabase_client"]
    try:
        row = await asyncio.to_thread(db.get_integration, supabase_client, context.bot_data["user_id"], service)
    except Exception as e:
        logger.error(f"Erro ao obter integração {service}: {e}")
        await update.message.reply_text("⚠️ Erro ao carregar a integração. Tente novamente mais tarde.")
        return

    if not row:
        await update.message.reply_text(f"🤔 Nenhuma integração '{service}' ativa encontrada.")
        return

    result = await asyncio.to_thread(test_integration, service, row.get("config"))
    await update.message.reply_text(f"{'✅' if result.success else '❌'} {result.message}")
