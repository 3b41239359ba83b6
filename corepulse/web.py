import logging

from flask import Flask, jsonify, request
from telegram import Update
from telegram.ext import Application

from corepulse.core.ai import AIServiceError
from corepulse.core.assistant import AssistantError, answer_with_business_context
from corepulse.core import db
from corepulse.core.integrations import parse_integration_config, test_integration

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/webhook"


def create_flask_app(ptb_application: Application, supabase_client, user_id: str) -> Flask:
    """Rotas HTTP: webhook do Telegram, teste e cadastro de integrações, assistente com contexto do negócio."""
    flask_app = Flask(__name__)

    @flask_app.route(WEBHOOK_PATH, methods=["POST"])
    async def telegram_webhook():
        # ptb_application já deve estar configurada e inicializada
        if not request.is_json:
            logger.error("Webhook recebeu uma requisição que não é JSON.")
            return jsonify({"status": "error", "message": "Request must be JSON"}), 400

        update_json = request.get_json()
        logger.debug(f"Webhook recebeu update: {update_json.keys() if update_json else 'None'}")

        try:
            update = Update.de_json(update_json, ptb_application.bot)
            await ptb_application.process_update(update)
            return jsonify({"status": "ok"}), 200
        except Exception as e:
            logger.exception(f"Falha ao processar update do Telegram: {e}")
            return jsonify({"status": "error", "message": "Failed to process update"}), 500

    @flask_app.route("/integrations/test", methods=["POST"])
    def integrations_test():
        body = request.get_json(silent=True) or {}
        try:
            result = test_integration(body.get("service", ""), body.get("config"))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        return jsonify(result.to_dict()), 200

    @flask_app.route("/integrations", methods=["POST"])
    def integrations_save():
        body = request.get_json(silent=True) or {}
        service = body.get("service", "")
        try:
            config = parse_integration_config(service, body.get("config"))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        error = config.validate()
        if error:
            return jsonify({"error": error}), 400
        try:
            db.save_integration(supabase_client, body.get("userId") or user_id, service, config.to_dict())
        except Exception as e:
            logger.exception(f"Erro ao salvar integração {service}: {e}")
            return jsonify({"error": "Failed to save integration"}), 500
        logger.info(f"Integração {service} salva.")
        return jsonify({"success": True}), 200

    @flask_app.route("/assistant", methods=["POST"])
    def assistant():
        body = request.get_json(silent=True) or {}
        try:
            answer = answer_with_business_context(
                supabase_client,
                body.get("userId") or user_id,
                body.get("message", ""),
                body.get("settings"),
            )
        except (AssistantError, AIServiceError) as e:
            logger.error(f"Erro no assistente: {e}")
            return jsonify({"error": str(e)}), 400
        except Exception as e:
            logger.exception(f"Erro inesperado no assistente: {e}")
            return jsonify({"error": str(e)}), 400
        return jsonify({"success": True, "message": answer}), 200

    return flask_app
