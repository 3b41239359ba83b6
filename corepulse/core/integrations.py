import logging
import re
from typing import Any, Dict, Union

import requests

from corepulse.config import WHATSAPP_GRAPH_URL, REQUEST_TIMEOUT, OPENAI_MODEL
from corepulse.core.ai import AIServiceError, ask_openai

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Servidores SMTP conhecidos e a porta recomendada de cada um
KNOWN_SMTP_PORTS = {
    "smtp.gmail.com": 587,
    "smtp-mail.outlook.com": 587,
    "smtp.mail.yahoo.com": 587,
    "smtp.office365.com": 587,
}


class IntegrationTestResult:
    def __init__(self, success: bool, message: str):
        self.success = success
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "message": self.message}

    def __repr__(self) -> str:
        return f"IntegrationTestResult({self.success}, {self.message!r})"


# A coluna integrations.config guarda as chaves em camelCase (formato do painel web).
class WhatsAppConfig:
    service = "whatsapp"

    def __init__(self, api_key: str = "", phone_number: str = "", webhook_url: str = ""):
        self.api_key = api_key
        self.phone_number = phone_number
        self.webhook_url = webhook_url

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "WhatsAppConfig":
        return cls(
            api_key=(raw.get("apiKey") or "").strip(),
            phone_number=str(raw.get("phoneNumber") or "").strip(),
            webhook_url=raw.get("webhookUrl") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"apiKey": self.api_key, "phoneNumber": self.phone_number, "webhookUrl": self.webhook_url}

    def validate(self) -> Union[str, None]:
        if not self.api_key or not self.phone_number:
            return "API Key e número do telefone são obrigatórios"
        return None


class EmailConfig:
    service = "email"

    def __init__(self, smtp_host: str = "", smtp_port: Union[int, str] = 587, username: str = "",
                 password: str = "", use_ssl: bool = True):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.use_ssl = use_ssl

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "EmailConfig":
        return cls(
            smtp_host=(raw.get("smtpHost") or "").strip(),
            smtp_port=raw.get("smtpPort", 587),
            username=(raw.get("username") or "").strip(),
            password=raw.get("password") or "",
            use_ssl=bool(raw.get("useSSL", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "smtpHost": self.smtp_host,
            "smtpPort": str(self.smtp_port),
            "username": self.username,
            "password": self.password,
            "useSSL": self.use_ssl,
        }

    def port_number(self) -> Union[int, None]:
        try:
            return int(self.smtp_port)
        except (TypeError, ValueError):
            return None

    def validate(self) -> Union[str, None]:
        if not self.smtp_host or not self.username or not self.password:
            return "Configurações SMTP incompletas"
        if not EMAIL_RE.match(self.username):
            return "Formato de email inválido"
        expected_port = KNOWN_SMTP_PORTS.get(self.smtp_host)
        if expected_port and self.port_number() != expected_port:
            return f"Para {self.smtp_host}, a porta recomendada é {expected_port}"
        # Senhas de app do Gmail vêm em blocos separados por espaço
        if "gmail" in self.smtp_host and " " not in self.password:
            return ('Para Gmail, use uma "Senha de App" em vez da senha normal. '
                    'Ative a autenticação de 2 fatores e gere uma senha de app.')
        return None


class AIConfig:
    service = "ai"

    def __init__(self, api_key: str = "", model: str = OPENAI_MODEL,
                 system_prompt: str = "Você é um assistente de vendas profissional. Responda de forma útil e cordial.",
                 max_tokens: int = 500, temperature: float = 0.7):
        self.api_key = api_key
        self.model = model
        self.system_prompt = system_prompt
        self.max_tokens = max_tokens
        self.temperature = temperature

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AIConfig":
        defaults = cls()
        return cls(
            api_key=(raw.get("apiKey") or "").strip(),
            model=raw.get("model") or defaults.model,
            system_prompt=raw.get("systemPrompt") or defaults.system_prompt,
            max_tokens=int(raw.get("maxTokens") or defaults.max_tokens),
            temperature=float(raw.get("temperature") or defaults.temperature),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiKey": self.api_key,
            "model": self.model,
            "systemPrompt": self.system_prompt,
            "maxTokens": self.max_tokens,
            "temperature": self.temperature,
        }

    def validate(self) -> Union[str, None]:
        if not self.api_key:
            return "API Key da OpenAI é obrigatória"
        if not self.api_key.startswith("sk-"):
            return 'Chave da API deve começar com "sk-"'
        return None


INTEGRATION_CONFIGS = {
    "whatsapp": WhatsAppConfig,
    "email": EmailConfig,
    "ai": AIConfig,
}


def parse_integration_config(service: str, raw: Union[Dict[str, Any], None]):
    """Converte o JSON salvo na tabela integrations para a classe do serviço."""
    if service not in INTEGRATION_CONFIGS:
        raise ValueError(f"Unknown service: {service}")
    return INTEGRATION_CONFIGS[service].from_dict(raw or {})


def test_whatsapp(config: WhatsAppConfig) -> IntegrationTestResult:
    error = config.validate()
    if error:
        return IntegrationTestResult(False, error)

    # Consulta o número na Graph API; 200 confirma token e número
    try:
        response = requests.get(
            f"{WHATSAPP_GRAPH_URL}/{config.phone_number}",
            headers={"Authorization": f"Bearer {config.api_key}", "Content-Type": "application/json"},
            timeout=REQUEST_TIMEOUT,
        )
    except requests.exceptions.RequestException as e:
        return IntegrationTestResult(False, f"Erro de conexão: {e}")

    # Corpo de erro nem sempre é JSON
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    if response.ok:
        number = body.get("display_phone_number") or config.phone_number
        return IntegrationTestResult(True, f"Conexão estabelecida! Número verificado: {number}")

    detail = (body.get("error") or {}).get("message") or "Token inválido ou número não encontrado"
    return IntegrationTestResult(False, f"Erro na API do WhatsApp: {detail}")


def test_email(config: EmailConfig) -> IntegrationTestResult:
    """Só valida os campos; nenhuma conexão SMTP é aberta."""
    error = config.validate()
    if error:
        return IntegrationTestResult(False, error)
    return IntegrationTestResult(True, "Configuração SMTP válida! Lembre-se de testar o envio real em produção.")


def test_openai(config: AIConfig) -> IntegrationTestResult:
    error = config.validate()
    if error:
        return IntegrationTestResult(False, error)

    # Chamada mínima só para checar chave e modelo
    messages = [
        {"role": "system", "content": "Test connection"},
        {"role": "user", "content": "Hello"},
    ]
    try:
        ask_openai(config.api_key, messages, model=config.model, max_tokens=10, temperature=config.temperature)
    except AIServiceError as e:
        # Sem status: falha de conexão ou resposta inválida
        if e.status_code is None:
            return IntegrationTestResult(False, str(e))
        if e.status_code == 401:
            return IntegrationTestResult(False, "Chave da API inválida. Verifique se está correta e ativa.")
        if e.status_code == 429:
            return IntegrationTestResult(False, "Limite de requisições excedido. Verifique seu plano OpenAI.")
        if e.status_code == 400:
            return IntegrationTestResult(False, f"Modelo {config.model} não disponível ou parâmetros inválidos.")
        return IntegrationTestResult(False, str(e))
    return IntegrationTestResult(True, f"Conexão com OpenAI estabelecida! Modelo {config.model} funcionando.")


def test_integration(service: str, raw_config: Union[Dict[str, Any], None]) -> IntegrationTestResult:
    """Testa a conexão de uma integração. Levanta ValueError para serviço desconhecido."""
    config = parse_integration_config(service, raw_config)
    if service == "whatsapp":
        result = test_whatsapp(config)
    elif service == "email":
        result = test_email(config)
    else:
        result = test_openai(config)
    logger.info(f"Teste da integração {service}: {'ok' if result.success else 'falhou'}")
    return result
