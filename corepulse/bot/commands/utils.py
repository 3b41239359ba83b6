import datetime
import os
from typing import Tuple, Union

from telegram import Update
from telegram.ext import ContextTypes

from corepulse.config import SESSION_DIR
from corepulse.core import db
from corepulse.core.advisor import AdvisorSession, BusinessData, build_business_data, compute_lead_stats, compute_task_stats
from corepulse.core.finance import TransactionStore
from corepulse.core.integrations import AIConfig
from corepulse.core.models import Lead, Task
from corepulse.core.storage import JsonFileStorage

# Limite de caracteres de uma mensagem do Telegram
TELEGRAM_MESSAGE_LIMIT = 4096


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Envia uma mensagem quando o comando /start é emitido."""
    await update.message.reply_text(
        "Olá! Sou o CorePulse, seu painel de gestão no Telegram. 📊\n\n"
        "Comandos úteis:\n"
        "- `/resumo` para ver receitas, despesas e saldo do mês.\n"
        "- `/balanco` para ver o gráfico de receitas vs. despesas.\n"
        "- `/relatorio mensal|gastos|fluxo [AAAA-MM]` para receber o relatório em PDF.\n"
        "- `/receita` e `/despesa` para registrar transações.\n"
        "- `/oraculo [pergunta]` para falar com o CoreOracle.\n"
        "- `/help` para mais informações.\n\n"
        "Você também pode simplesmente me enviar uma pergunta sobre o seu negócio."
    )


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Envia uma mensagem quando o comando /help é emitido."""
    await update.message.reply_text(
        "**Finanças (CoreFinance):**\n"
        "- `/resumo`: Receitas, despesas e saldo do mês atual.\n"
        "- `/balanco`: Gráfico do balanço mensal (receitas vs. despesas).\n"
        "- `/receita [valor] [descrição] | [categoria]`: Registra uma receita (ex: `/receita 1500 Projeto site | Vendas`).\n"
        "- `/despesa [valor] [descrição] | [categoria]`: Registra uma despesa (ex: `/despesa 80 Almoço | Alimentação`).\n"
        "- `/apagar [id]`: Apaga uma transação.\n"
        "- `/conciliar`: Recalcula o saldo de todas as contas.\n\n"
        "**Relatórios em PDF:**\n"
        "- `/relatorio mensal [AAAA-MM]`: Relatório mensal completo.\n"
        "- `/relatorio gastos [AAAA-MM]`: Análise de gastos por categoria.\n"
        "- `/relatorio fluxo [AAAA-MM]`: Fluxo de caixa diário.\n\n"
        "**CoreOracle (consultor):**\n"
        "- `/oraculo [pergunta]` ou qualquer mensagem de texto: Pergunte sobre vendas, produtividade ou finanças.\n"
        "- `/relatorio_executivo`: Relatório mensal executivo em texto.\n"
        "- `/relatorio_estrategico`: Análise SWOT automatizada.\n"
        "- `/configurar_ia [openai|gemini] [chave] [modelo_opcional]`: Configura a IA deste chat.\n"
        "- `/limpar`: Apaga o histórico da conversa.\n"
        "- `/insights`: Lista os insights registrados.\n"
        "- `/insights [lido|aplicado|apagar] [id]`: Atualiza um insight.\n\n"
        "**Integrações:**\n"
        "- `/testar_integracao [whatsapp|email|ai]`: Testa a conexão de uma integração salva."
    )


def get_store(context: ContextTypes.DEFAULT_TYPE) -> TransactionStore:
    """Store compartilhado pelo bot; recarregado a cada comando."""
    store = context.bot_data.get("store")
    if store is None:
        store = TransactionStore(context.bot_data["supabase_client"], context.bot_data["user_id"])
        context.bot_data["store"] = store
    return store


def parse_period(arg: Union[str, None], today: Union[datetime.date, None] = None) -> Tuple[int, int]:
    """'AAAA-MM' -> (ano, mês). Sem argumento, o mês atual. Levanta ValueError."""
    today = today or datetime.date.today()
    if not arg:
        return today.year, today.month
    year_text, _, month_text = arg.partition("-")
    year, month = int(year_text), int(month_text)
    if not 1 <= month <= 12:
        raise ValueError(f"Mês inválido: {month}")
    return year, month


def session_for(chat_id: int) -> AdvisorSession:
    return AdvisorSession(JsonFileStorage(os.path.join(SESSION_DIR, f"{chat_id}.json")))


def load_ai_integration(supabase_client, user_id: str) -> Union[AIConfig, None]:
    row = db.get_integration(supabase_client, user_id, "ai")
    if not row:
        return None
    return AIConfig.from_dict(row.get("config") or {})


def load_business_data(store: TransactionStore, today: Union[datetime.date, None] = None) -> Union[BusinessData, None]:
    """Monta o snapshot do CoreOracle (leads, tarefas e finanças). None se o Supabase falhar."""
    today = today or datetime.date.today()
    if not store.fetch_data():
        return None
    leads = [Lead.from_row(row) for row in db.get_leads(store.supabase_client, store.user_id)]
    tasks = [Task.from_row(row) for row in db.get_tasks(store.supabase_client, store.user_id)]
    return build_business_data(compute_lead_stats(leads), compute_task_stats(tasks, today), store.stats(today))
