import asyncio
import logging

from telegram import Update
from telegram.ext import ContextTypes

from corepulse.bot.commands.utils import (
    TELEGRAM_MESSAGE_LIMIT, get_store, load_ai_integration, load_business_data, session_for,
)
from corepulse.core import db
from corepulse.core.advisor import Advisor, REPORT_LABELS
from corepulse.core.ai import PROVIDERS
from corepulse.core.models import Insight, insight_stats
from corepulse.utils.text_utils import truncate

logger = logging.getLogger(__name__)

BUSY_FLAG = "oracle_busy"


def _record_insight(supabase_client, user_id: str):
    """Grava cada troca com o CoreOracle como insight 'oracle_chat'."""
    def recorder(question: str, answer: str) -> None:
        try:
            db.add_insight(supabase_client, user_id, {
                "type": "oracle_chat",
                "title": question[:50] + "..." if len(question) > 50 else question,
                "description": answer,
                "priority": 1,
                "data": {"query": question, "response": answer},
            })
        except Exception as e:
            logger.error(f"Erro ao registrar insight do Oracle: {e}")
    return recorder


def build_advisor(context: ContextTypes.DEFAULT_TYPE, chat_id: int) -> Advisor:
    """Sessão do chat + snapshot atual + integração de IA salva. Chamada fora do loop (bloqueante)."""
    supabase_client = context.bot_data["supabase_client"]
    user_id = context.bot_data["user_id"]
    store = get_store(context)
    try:
        ai_integration = load_ai_integration(supabase_client, user_id)
    except Exception as e:
        logger.error(f"Erro ao obter integração de IA: {e}")
        ai_integration = None
    try:
        business_data = load_business_data(store)
    except Exception as e:
        logger.error(f"Erro ao montar dados do negócio: {e}")
        business_data = None
    return Advisor(session_for(chat_id), business_data, ai_integration=ai_integration,
                   insight_recorder=_record_insight(supabase_client, user_id))


async def ask_oracle(update: Update, context: ContextTypes.DEFAULT_TYPE, question: str) -> None:
    """Envia a pergunta ao CoreOracle. Um envio por vez em cada chat."""
    if not question or not question.strip():
        return
    if context.chat_data.get(BUSY_FLAG):
        await update.message.reply_text("⏳ Ainda estou analisando sua última pergunta. Aguarde um instante.")
        return

    context.chat_data[BUSY_FLAG] = True
    try:
        await update.message.chat.send_action("typing")
        advisor = await asyncio.to_thread(build_advisor, context, update.message.chat_id)
        reply = await asyncio.to_thread(advisor.send_message, question)
    finally:
        context.chat_data[BUSY_FLAG] = False

    if reply is not None:
        await update.message.reply_text(truncate(reply.content, TELEGRAM_MESSAGE_LIMIT))


async def oraculo_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/oraculo <pergunta>"""
    question = " ".join(context.args or [])
    if not question:
        session = session_for(update.message.chat_id)
        last = session.messages[-1].content if session.messages else "Como posso ajudá-lo hoje?"
        await update.message.reply_text(truncate(last, TELEGRAM_MESSAGE_LIMIT))
        return
    await ask_oracle(update, context, question)


async def _text_report(update: Update, context: ContextTypes.DEFAULT_TYPE, kind: str) -> None:
    await update.message.reply_text(f"Gerando relatório {REPORT_LABELS[kind]}...")
    advisor = await asyncio.to_thread(build_advisor, context, update.message.chat_id)
    message = await asyncio.to_thread(advisor.generate_report, kind)
    await update.message.reply_text(truncate(message.content, TELEGRAM_MESSAGE_LIMIT))


async def relatorio_executivo_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _text_report(update, context, "monthly")


async def relatorio_estrategico_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _text_report(update, context, "strategic")


async def configurar_ia_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/configurar_ia <openai|gemini> <chave> [modelo]: salva a IA usada por este chat."""
    args = context.args or []
    if len(args) < 2 or args[0].lower() not in PROVIDERS:
        await update.message.reply_text(
            "Uso: `/configurar_ia [openai|gemini] [chave] [modelo_opcional]` (ex: `/configurar_ia openai sk-... gpt-4`)"
        )
        return

    session = session_for(update.message.chat_id)
    settings = session.settings
    settings.provider = args[0].lower()
    settings.api_key = args[1]
    if len(args) > 2:
        settings.model = args[2]
    session.save_settings(settings)
    await update.message.reply_text(f"✅ CoreOracle configurado com {settings.provider} ({settings.model}).")


async def limpar_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    session_for(update.message.chat_id).clear_chat()
    await update.message.reply_text("🧹 Histórico da conversa apagado.")


INSIGHT_ACTIONS = {
    "lido": (db.mark_insight_read, "✔️ Insight marcado como lido."),
    "aplicado": (db.mark_insight_applied, "✅ Insight marcado como aplicado."),
    "apagar": (db.delete_insight, "🗑️ Insight apagado."),
}


async def _insight_action(update: Update, context: ContextTypes.DEFAULT_TYPE, action: str, insight_id: str) -> None:
    operation, done_message = INSIGHT_ACTIONS[action]
    try:
        await asyncio.to_thread(operation, context.bot_data["supabase_client"], insight_id)
    except Exception as e:
        logger.error(f"Erro ao atualizar insight {insight_id} ({action}): {e}")
        await update.message.reply_text("⚠️ Não foi possível atualizar o insight. Tente novamente mais tarde.")
        return
    await update.message.reply_text(done_message)


async def insights_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/insights lista os mais recentes; /insights [lido|aplicado|apagar] <id> atualiza um deles."""
    args = context.args or []
    if args:
        if len(args) != 2 or args[0].lower() not in INSIGHT_ACTIONS:
            await update.message.reply_text("Uso: `/insights [lido|aplicado|apagar] [id]`")
            return
        await _insight_action(update, context, args[0].lower(), args[1])
        return

    supabase_client = context.bot_data["supabase_client"]
    try:
        rows = await asyncio.to_thread(db.get_insights, supabase_client, context.bot_data["user_id"])
    except Exception as e:
        logger.error(f"Erro ao obter insights: {e}")
        await update.message.reply_text("⚠️ Erro ao carregar os insights. Tente novamente mais tarde.")
        return

    insights = [Insight.from_row(row) for row in rows]
    if not insights:
        await update.message.reply_text("Nenhum insight registrado ainda. Converse com o /oraculo para gerar os primeiros!")
        return

    stats = insight_stats(insights)
    lines = [
        f"💡 Insights: {stats['total']} no total, {stats['unread']} não lidos, "
        f"{stats['applied']} aplicados, {stats['high_priority']} de alta prioridade\n"
    ]
    for insight in insights[:10]:
        if insight.is_applied:
            marker = "✅"
        elif insight.is_read:
            marker = "✔️"
        else:
            marker = "🆕"
        lines.append(f"{marker} {insight.title} (`{insight.id}`)")
    await update.message.reply_text("\n".join(lines))
