import datetime
import json
import logging
from typing import Any, Dict, List, Union

from supabase import Client

from corepulse.core import db
from corepulse.core.ai import ask_openai
from corepulse.core.finance import ZERO, sum_amounts
from corepulse.core.integrations import AIConfig
from corepulse.core.models import Lead, Task, Transaction, INCOME, EXPENSE

logger = logging.getLogger(__name__)

CONTEXT_LIMIT = 100


class AssistantError(Exception):
    """Erro devolvido ao cliente do /assistant (status 400)."""


def business_context(leads: List[Lead], transactions: List[Transaction], tasks: List[Task],
                     today: Union[datetime.date, None] = None) -> Dict[str, Any]:
    today = today or datetime.date.today()

    # Contagem de leads por status (new, qualified, won...)
    by_status: Dict[str, int] = {}
    for lead in leads:
        by_status[lead.status] = by_status.get(lead.status, 0) + 1

    # Totais das transações recentes (não só do mês)
    income = sum_amounts(transactions, INCOME)
    expenses = sum_amounts(transactions, EXPENSE)
    return {
        "leads": {
            "total": len(leads),
            "by_status": by_status,
            "total_value": sum((lead.value for lead in leads), ZERO),
        },
        "finances": {
            "income": income,
            "expenses": expenses,
            "balance": income - expenses,
            "transactions": len(transactions),
        },
        "tasks": {
            "total": len(tasks),
            "completed": sum(1 for task in tasks if task.is_done),
            "overdue": sum(1 for task in tasks if task.is_overdue(today)),
        },
    }


def context_prompt(system_prompt: str, context: Dict[str, Any]) -> str:
    leads, finances, tasks = context["leads"], context["finances"], context["tasks"]
    return f"""{system_prompt}

Você tem acesso aos seguintes dados da empresa:

LEADS:
- Total de leads: {leads['total']}
- Distribuição por status: {json.dumps(leads['by_status'], ensure_ascii=False)}
- Valor total potencial: R$ {leads['total_value']}

FINANÇAS:
- Receitas: R$ {finances['income']}
- Despesas: R$ {finances['expenses']}
- Saldo: R$ {finances['balance']}
- Total de transações: {finances['transactions']}

TAREFAS:
- Total de tarefas: {tasks['total']}
- Tarefas concluídas: {tasks['completed']}
- Tarefas em atraso: {tasks['overdue']}

Responda de forma profissional, objetiva e focada em resultados práticos.
Forneça insights acionáveis e recomendações estratégicas baseadas nos dados."""


def answer_with_business_context(supabase_client: Client, user_id: str, message: str,
                                 settings: Union[Dict[str, Any], None] = None) -> str:
    """
    Responde uma pergunta com as métricas mais recentes do usuário como contexto
    e grava a troca como insight 'assistant_response'.

    settings usa as chaves do painel (model, systemPrompt, maxTokens, temperature)
    e tem prioridade sobre a integração salva. Levanta AssistantError.
    """
    settings = settings or {}
    message = (message or "").strip()
    if not message:
        raise AssistantError("Mensagem vazia")

    # A chave da OpenAI vem da integração salva pelo usuário
    row = db.get_integration(supabase_client, user_id, "ai")
    if not row:
        raise AssistantError("OpenAI integration not configured")
    integration = AIConfig.from_dict(row.get("config") or {})

    # Últimos registros de cada tabela como contexto
    leads = [Lead.from_row(r) for r in db.get_leads(supabase_client, user_id, limit=CONTEXT_LIMIT)]
    transactions = [Transaction.from_row(r)
                    for r in db.get_recent_transactions(supabase_client, user_id, limit=CONTEXT_LIMIT)]
    tasks = [Task.from_row(r) for r in db.get_tasks(supabase_client, user_id, limit=CONTEXT_LIMIT)]
    context = business_context(leads, transactions, tasks)

    # Ajustes enviados pelo painel têm prioridade sobre a integração
    messages = [
        {"role": "system", "content": context_prompt(settings.get("systemPrompt") or integration.system_prompt, context)},
        {"role": "user", "content": message},
    ]
    answer = ask_openai(
        integration.api_key,
        messages,
        model=settings.get("model") or integration.model,
        max_tokens=int(settings.get("maxTokens") or integration.max_tokens),
        temperature=float(settings.get("temperature") or integration.temperature),
    )
    if not answer:
        raise AssistantError("No response from AI")

    # Registra a troca para aparecer no painel de insights
    db.add_insight(supabase_client, user_id, {
        "type": "assistant_response",
        "title": message[:50] + "..." if len(message) > 50 else message,
        "description": answer,
        "priority": 1,
        "data": {
            "query": message,
            "response": answer,
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        },
    })
    logger.info(f"Resposta do assistente registrada para o usuário {user_id}")
    return answer
