import json
import logging
from typing import Dict, List, Union

import requests

# Importações para Gemini
import google.generativeai as genai
from google.generativeai.types import HarmCategory, HarmBlockThreshold

from corepulse.config import OPENAI_API_BASE, OPENAI_MODEL, GEMINI_MODEL, REQUEST_TIMEOUT

logger = logging.getLogger(__name__)

OPENAI_CHAT_URL = f"{OPENAI_API_BASE}/v1/chat/completions"

# Ajustes de segurança para o Gemini
safety_settings = {
    HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_NONE,
    HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_NONE,
    HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_NONE,
    HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_NONE,
}


class AIServiceError(Exception):
    """Falha ao falar com o provedor de IA. status_code é None em erros de rede."""

    def __init__(self, message: str, status_code: Union[int, None] = None):
        super().__init__(message)
        self.status_code = status_code


def _error_detail(response: requests.Response) -> str:
    try:
        return response.json().get("error", {}).get("message") or "Erro desconhecido"
    except (ValueError, AttributeError):
        return response.text or "Erro desconhecido"


def ask_openai(api_key: str, messages: List[Dict[str, str]], model: str = OPENAI_MODEL,
               max_tokens: int = 500, temperature: float = 0.7) -> str:
    """Envia as mensagens para /v1/chat/completions e devolve o texto da resposta."""
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    payload = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
        "temperature": temperature,
    }
    try:
        response = requests.post(OPENAI_CHAT_URL, headers=headers, data=json.dumps(payload), timeout=REQUEST_TIMEOUT)
    except requests.exceptions.RequestException as e:
        logger.error(f"Erro ao conectar com a OpenAI: {e}")
        raise AIServiceError(f"Erro de conexão: {e}") from e

    if not response.ok:
        detail = _error_detail(response)
        logger.error(f"OpenAI respondeu {response.status_code}: {detail}")
        raise AIServiceError(f"Erro da API OpenAI: {detail}", status_code=response.status_code)

    try:
        choices = response.json().get("choices") or []
        if not choices:
            return ""
        return ((choices[0].get("message") or {}).get("content") or "").strip()
    except (ValueError, AttributeError, TypeError, KeyError, IndexError) as e:
        # 2xx com corpo fora do formato de chat completions
        logger.error(f"Resposta inválida da OpenAI: {e}")
        raise AIServiceError(f"Resposta inválida da API OpenAI: {e}", status_code=response.status_code) from e


def ask_gemini(api_key: str, messages: List[Dict[str, str]], model: str = GEMINI_MODEL,
               max_tokens: int = 500, temperature: float = 0.7) -> str:
    """Mesmo contrato de ask_openai, usando o Gemini."""
    system_prompt = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
    user_prompt = "\n\n".join(m["content"] for m in messages if m["role"] != "system")
    try:
        genai.configure(api_key=api_key)
        model_instance = genai.GenerativeModel(
            model_name=model,
            safety_settings=safety_settings,
            system_instruction=system_prompt or None,
        )
        response = model_instance.generate_content(
            user_prompt,
            generation_config=genai.types.GenerationConfig(
                max_output_tokens=max_tokens, temperature=temperature
            ),
        )
    except Exception as e:
        logger.error(f"Erro ao conectar com Gemini: {e}")
        raise AIServiceError(f"Erro ao conectar com Gemini: {e}") from e

    # O Gemini pode bloquear a resposta ou devolver vazio
    if not response.parts:
        logger.debug(f"Gemini: resposta vazia ou bloqueada. Raw: {response}")
        raise AIServiceError("Modelo de IA retornou uma resposta vazia ou bloqueada.")
    return response.text.strip()


PROVIDERS = ("openai", "gemini")


def ask_chat(provider: str, api_key: str, messages: List[Dict[str, str]], model: str,
             max_tokens: int, temperature: float) -> str:
    """Uma única chamada de pergunta/resposta ao provedor configurado."""
    if provider == "openai":
        return ask_openai(api_key, messages, model=model, max_tokens=max_tokens, temperature=temperature)
    if provider == "gemini":
        return ask_gemini(api_key, messages, model=model, max_tokens=max_tokens, temperature=temperature)
    raise AIServiceError(f"Provedor de IA desconhecido: {provider}")
