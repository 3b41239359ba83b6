import asyncio
import logging

from corepulse.bot.bot_setup import setup_bot
from corepulse.config import TELEGRAM_BOT_TOKEN, COREPULSE_USER_ID, setup_logging
from corepulse.core.db import get_supabase_client
from corepulse.web import create_flask_app

setup_logging()
logger = logging.getLogger(__name__)

# --- Setup da aplicação no escopo global (executado uma vez ao carregar o módulo pelo Gunicorn) ---
try:
    supabase_client = get_supabase_client()
    logger.info("Cliente Supabase inicializado.")

    config = {
        "TELEGRAM_BOT_TOKEN": TELEGRAM_BOT_TOKEN,
        "SUPABASE_CLIENT": supabase_client,
        "USER_ID": COREPULSE_USER_ID,
    }

    ptb_application = setup_bot(config)

    # A Application do python-telegram-bot precisa de initialize() antes do primeiro process_update
    try:
        asyncio.run(ptb_application.initialize())
        logger.info("python-telegram-bot Application inicializada com sucesso!")
    except RuntimeError as e:
        if "cannot run an event loop while another loop is running" in str(e):
            logger.warning("Event loop já em execução, pulando asyncio.run(initialize()).")
        else:
            raise

    # A variável wsgi_app é o que o Gunicorn serve (corepulse.main:wsgi_app)
    wsgi_app = create_flask_app(ptb_application, supabase_client, COREPULSE_USER_ID)
    logger.info("Aplicação WSGI pronta.")

except Exception as e:
    logger.exception(f"Erro crítico durante a inicialização em corepulse/main.py: {e}")
    raise
