import logging

from telegram import Update
from telegram.ext import ContextTypes

from corepulse.bot.commands.advisor import ask_oracle

logger = logging.getLogger(__name__)


async def handle_advisor_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Qualquer texto que não seja comando vira uma pergunta para o CoreOracle."""
    user_message = update.message.text
    logger.info(f"Mensagem recebida de {update.message.chat_id}: {user_message}")
    if not user_message or not user_message.strip():
        return
    await ask_oracle(update, context, user_message)
