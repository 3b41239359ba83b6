import logging

from telegram.ext import Application, CommandHandler, MessageHandler, filters

from corepulse.bot.commands import ALL_COMMANDS
from corepulse.bot.handlers import handle_advisor_message
from corepulse.core.finance import TransactionStore

logger = logging.getLogger(__name__)


def setup_bot(config: dict) -> Application:
    """
    Configura a aplicação do bot do Telegram (comandos e mensagens livres).
    Retorna o objeto Application configurado, pronto para ser usado pelo servidor WSGI.
    """
    application = Application.builder().token(config["TELEGRAM_BOT_TOKEN"]).build()

    # Cliente Supabase, dono dos registros e store compartilhados por comandos e handlers
    application.bot_data["supabase_client"] = config["SUPABASE_CLIENT"]
    application.bot_data["user_id"] = config["USER_ID"]
    application.bot_data["store"] = TransactionStore(config["SUPABASE_CLIENT"], config["USER_ID"])

    # --- Comandos ('/resumo', '/relatorio', ...) ---
    for name, callback in ALL_COMMANDS.items():
        application.add_handler(CommandHandler(name, callback))

    # --- Texto livre vai para o CoreOracle ---
    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_advisor_message))

    logger.info("Bot Telegram configurado para Webhooks. Pronto para ser rodado pelo WSGI.")
    # run_polling() não é chamado aqui: quem recebe as atualizações é o webhook do Flask
    return application
