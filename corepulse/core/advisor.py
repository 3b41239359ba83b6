import datetime
import logging
import uuid
from decimal import Decimal
from typing import Any, Callable, Dict, List, Union

from corepulse.core.ai import AIServiceError, ask_chat
from corepulse.core.finance import FinancialStats, ZERO
from corepulse.core.integrations import AIConfig
from corepulse.core.models import Lead, Task
from corepulse.utils.text_utils import format_number_br, format_percent

logger = logging.getLogger(__name__)

SETTINGS_KEY = "coreoracle-settings"
MESSAGES_KEY = "coreoracle-messages"

DEFAULT_SYSTEM_PROMPT = """Você é o CoreOracle, um consultor estratégico inteligente especializado em análise de negócios.

Sua função é analisar dados de CRM, tarefas e finanças para fornecer:
- Insights estratégicos baseados em dados
- Recomendações para otimização de processos
- Análises preditivas de tendências
- Relatórios executivos detalhados

Sempre responda de forma profissional, objetiva e focada em resultados práticos. Use dados específicos quando disponíveis e forneça recomendações acionáveis."""

WELCOME_MESSAGE = """Olá! Sou o CoreOracle, seu consultor estratégico inteligente.

Posso ajudá-lo com:
📊 **Análises de Performance** - Métricas de vendas, produtividade e finanças
🎯 **Insights Estratégicos** - Identificação de oportunidades e gargalos
📈 **Previsões e Tendências** - Análise preditiva baseada em seus dados
📋 **Relatórios Executivos** - Documentos detalhados para tomada de decisão

Como posso ajudá-lo hoje?"""

UNCONFIGURED_NOTICE = """Para usar o CoreOracle com IA, você precisa configurar uma integração de IA primeiro.

Vá em **CoreCRM > Integrações > Assistente de IA** para configurar sua chave da OpenAI.

Enquanto isso, posso fornecer análises baseadas nos seus dados atuais:

"""

AI_ERROR_NOTICE = "Erro ao conectar com a IA. Fornecendo análise baseada em dados:\n\n"
EMPTY_REPLY = "Desculpe, não consegui gerar uma resposta."
PROCESSING_ERROR = "Desculpe, ocorreu um erro ao processar sua solicitação. Tente novamente."
DATA_LOADING = "Aguardando carregamento dos dados do sistema..."
NO_TRENDS = "- Dados insuficientes para análise de tendências"

REPORT_LABELS = {
    "monthly": "mensal",
    "expense": "de gastos",
    "cashflow": "de fluxo de caixa",
    "strategic": "estratégico",
}


# --- Estatísticas de leads e tarefas ---

class LeadStats:
    def __init__(self, total: int = 0, qualified: int = 0, won: int = 0, total_value: Decimal = ZERO):
        self.total = total
        self.qualified = qualified
        self.won = won
        self.total_value = total_value
        # uma casa decimal, como exibido no CRM
        self.conversion_rate = round(won / total * 100, 1) if total else 0.0

    @property
    def avg_value(self) -> Decimal:
        return self.total_value / (self.total or 1)

    @property
    def qualification_rate(self) -> float:
        return self.qualified / self.total * 100 if self.total else 0.0


class TaskStats:
    def __init__(self, total: int = 0, completed: int = 0, overdue: int = 0):
        self.total = total
        self.completed = completed
        self.overdue = overdue
        self.completion_rate = round(completed / total * 100, 1) if total else 0.0


def compute_lead_stats(leads: List[Lead]) -> LeadStats:
    return LeadStats(
        total=len(leads),
        qualified=sum(1 for lead in leads if lead.status == "qualified"),
        won=sum(1 for lead in leads if lead.status == "won"),
        total_value=sum((lead.value for lead in leads), ZERO),
    )


def compute_task_stats(tasks: List[Task], today: Union[datetime.date, None] = None) -> TaskStats:
    today = today or datetime.date.today()
    return TaskStats(
        total=len(tasks),
        completed=sum(1 for task in tasks if task.is_done),
        overdue=sum(1 for task in tasks if task.is_overdue(today)),
    )


# --- Snapshot do negócio ---

class BusinessData:
    """Snapshot usado pelo prompt da IA, pelo responder por regras e pelos relatórios em texto."""

    def __init__(self, leads: LeadStats, tasks: TaskStats, finance: FinancialStats):
        self.leads = leads
        self.tasks = tasks
        self.finance = finance
        self.lead_trends = lead_trends(leads)
        self.task_trends = task_trends(tasks)
        self.finance_trends = finance_trends(finance)
        self.insights = business_insights(leads, tasks, finance)
        self.recommendations = business_recommendations(leads, tasks, finance)

    @property
    def total_revenue(self) -> Decimal:
        return self.finance.monthly_income

    @property
    def total_expenses(self) -> Decimal:
        return self.finance.monthly_expenses

    @property
    def net_profit(self) -> Decimal:
        return self.finance.monthly_income - self.finance.monthly_expenses

    @property
    def cash_flow(self) -> Decimal:
        return self.finance.total_balance

    @property
    def all_trends(self) -> List[str]:
        return self.lead_trends + self.task_trends + self.finance_trends


def lead_trends(stats: LeadStats) -> List[str]:
    trends = []
    if stats.conversion_rate > 20:
        trends.append("Alta taxa de conversão detectada")
    if stats.total and stats.conversion_rate < 5:
        trends.append("Taxa de conversão abaixo da média")
    if stats.qualified and stats.qualification_rate > 50:
        trends.append("Boa qualificação de leads")
    return trends


def task_trends(stats: TaskStats) -> List[str]:
    trends = []
    if stats.total:
        if stats.completion_rate > 80:
            trends.append("Alta produtividade da equipe")
        if stats.completion_rate < 50:
            trends.append("Produtividade abaixo do esperado")
    if stats.overdue > 0:
        trends.append(f"{stats.overdue} tarefas em atraso requerem atenção")
    return trends


def finance_trends(stats: FinancialStats) -> List[str]:
    trends = []
    if stats.monthly_income and stats.monthly_expenses:
        margin = (stats.monthly_income - stats.monthly_expenses) / stats.monthly_income * 100
        if margin > 20:
            trends.append("Margem de lucro saudável")
        if margin < 10:
            trends.append("Margem de lucro baixa - revisar custos")
    if stats.total_balance > 0:
        trends.append("Fluxo de caixa positivo")
    return trends


def business_insights(leads: LeadStats, tasks: TaskStats, finance: FinancialStats) -> List[str]:
    insights = []
    if leads.conversion_rate > 15 and tasks.completion_rate > 75:
        insights.append("Correlação positiva entre produtividade da equipe e conversão de leads")
    if finance.monthly_income and leads.won:
        revenue_per_lead = finance.monthly_income / leads.won
        insights.append(f"Receita média por lead convertido: R$ {format_number_br(revenue_per_lead)}")
    return insights


def business_recommendations(leads: LeadStats, tasks: TaskStats, finance: FinancialStats) -> List[str]:
    recommendations = []
    if tasks.overdue > 0:
        recommendations.append("Implementar sistema de alertas para tarefas próximas do vencimento")
    if leads.total and leads.qualified and leads.qualification_rate < 30:
        recommendations.append("Melhorar processo de qualificação de leads com critérios mais específicos")
    if finance.monthly_income and finance.monthly_expenses:
        if finance.monthly_expenses / finance.monthly_income * 100 > 80:
            recommendations.append("Revisar e otimizar estrutura de custos operacionais")
    return recommendations


def build_business_data(lead_stats: LeadStats, task_stats: TaskStats, finance_stats: FinancialStats) -> BusinessData:
    return BusinessData(lead_stats, task_stats, finance_stats)


# --- Responder por regras (sem IA) ---

def _bullets(items: List[str], empty: str) -> str:
    return "\n".join(f"- {item}" for item in items) if items else empty


def _money(value: Decimal) -> str:
    return f"R$ {format_number_br(value)}"


def _sales_analysis(data: BusinessData) -> str:
    return f"""**Análise de Vendas:**

📊 **Métricas Atuais:**
- Total de leads: {data.leads.total}
- Leads qualificados: {data.leads.qualified}
- Conversões: {data.leads.won}
- Taxa de conversão: {format_percent(data.leads.conversion_rate)}%

💡 **Insights:**
{_bullets(data.lead_trends, NO_TRENDS)}

🎯 **Recomendações:**
- Foque na qualificação de leads para melhorar a taxa de conversão
- Implemente follow-ups automatizados para leads qualificados"""


def _productivity_analysis(data: BusinessData) -> str:
    return f"""**Análise de Produtividade:**

📋 **Métricas Atuais:**
- Total de tarefas: {data.tasks.total}
- Tarefas concluídas: {data.tasks.completed}
- Tarefas em atraso: {data.tasks.overdue}
- Taxa de conclusão: {format_percent(data.tasks.completion_rate)}%

⚡ **Insights:**
{_bullets(data.task_trends, NO_TRENDS)}

🚀 **Recomendações:**
- Configure alertas para tarefas próximas do vencimento
- Implemente metodologias ágeis para melhorar o fluxo de trabalho"""


def _finance_analysis(data: BusinessData) -> str:
    return f"""**Análise Financeira:**

💰 **Métricas Atuais:**
- Receita mensal: {_money(data.total_revenue)}
- Despesas mensais: {_money(data.total_expenses)}
- Lucro líquido: {_money(data.net_profit)}
- Fluxo de caixa: {_money(data.cash_flow)}

📈 **Insights:**
{_bullets(data.finance_trends, NO_TRENDS)}

💡 **Recomendações:**
- Monitore regularmente a margem de lucro
- Implemente controles de custos mais rigorosos"""


def _general_overview(data: BusinessData) -> str:
    health = "Positiva" if data.net_profit >= 0 else "Requer atenção"
    return f"""**Visão Geral do Negócio:**

🎯 **Performance Geral:**
- Leads: {data.leads.total} ({format_percent(data.leads.conversion_rate)}% conversão)
- Produtividade: {format_percent(data.tasks.completion_rate)}% de conclusão
- Saúde Financeira: {health}

📊 **Principais Insights:**
{_bullets(data.insights, "- Colete mais dados para insights detalhados")}

🚀 **Recomendações Prioritárias:**
{_bullets(data.recommendations, "- Continue monitorando as métricas principais")}

Para análises mais específicas, pergunte sobre vendas, produtividade ou finanças."""


def _mentions(*keywords: str) -> Callable[[str], bool]:
    def predicate(message: str) -> bool:
        return any(keyword in message for keyword in keywords)
    return predicate


class FallbackResponder:
    """
    Análise por regras: a primeira regra cujo predicado casa com a pergunta
    (em minúsculas) formata o snapshot. Sem casamento, visão geral.
    """

    def __init__(self, rules=None, default: Callable[[BusinessData], str] = _general_overview):
        self.rules = rules if rules is not None else [
            (_mentions("vendas", "leads", "conversão"), _sales_analysis),
            (_mentions("tarefas", "produtividade", "equipe"), _productivity_analysis),
            (_mentions("financeiro", "receita", "lucro"), _finance_analysis),
        ]
        self.default = default

    def respond(self, message: str, data: Union[BusinessData, None]) -> str:
        if data is None:
            return DATA_LOADING
        lowered = message.lower()
        for predicate, formatter in self.rules:
            if predicate(lowered):
                return formatter(data)
        return self.default(data)


# --- Sessão (configurações + histórico) ---

class AdvisorSettings:
    def __init__(self, provider: str = "openai", model: str = "gpt-4", api_key: str = "",
                 system_prompt: str = DEFAULT_SYSTEM_PROMPT, temperature: float = 0.7,
                 max_tokens: int = 1000, analysis_depth: str = "detailed"):
        self.provider = provider
        self.model = model
        self.api_key = api_key
        self.system_prompt = system_prompt
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.analysis_depth = analysis_depth

    def to_dict(self) -> Dict[str, Any]:
        return {
            "aiProvider": self.provider,
            "model": self.model,
            "apiKey": self.api_key,
            "systemPrompt": self.system_prompt,
            "temperature": self.temperature,
            "maxTokens": self.max_tokens,
            "analysisDepth": self.analysis_depth,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AdvisorSettings":
        defaults = cls()
        return cls(
            provider=raw.get("aiProvider", defaults.provider),
            model=raw.get("model", defaults.model),
            api_key=raw.get("apiKey", defaults.api_key),
            system_prompt=raw.get("systemPrompt", defaults.system_prompt),
            temperature=float(raw.get("temperature", defaults.temperature)),
            max_tokens=int(raw.get("maxTokens", defaults.max_tokens)),
            analysis_depth=raw.get("analysisDepth", defaults.analysis_depth),
        )


class ChatMessage:
    def __init__(self, type: str, content: str, timestamp: Union[datetime.datetime, None] = None,
                 id: Union[str, None] = None, report_type: Union[str, None] = None):
        self.id = id or uuid.uuid4().hex
        self.type = type  # 'user' | 'assistant'
        self.content = content
        self.timestamp = timestamp or datetime.datetime.now()
        self.report_type = report_type

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "type": self.type,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.report_type:
            data["reportType"] = self.report_type
        return data

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ChatMessage":
        return cls(
            id=raw.get("id"),
            type=raw["type"],
            content=raw.get("content", ""),
            timestamp=datetime.datetime.fromisoformat(raw["timestamp"]) if raw.get("timestamp") else None,
            report_type=raw.get("reportType"),
        )


class AdvisorSession:
    """Configurações e histórico do CoreOracle, gravados num storage injetado."""

    def __init__(self, storage):
        self.storage = storage
        self.settings = AdvisorSettings()
        self.messages: List[ChatMessage] = []
        self.load()

    def load(self) -> None:
        saved_settings = self.storage.get(SETTINGS_KEY)
        if saved_settings:
            try:
                self.settings = AdvisorSettings.from_dict(saved_settings)
            except (TypeError, ValueError, AttributeError) as e:
                logger.error(f"Erro ao carregar configurações do Oracle: {e}")

        saved_messages = self.storage.get(MESSAGES_KEY)
        if saved_messages is None:
            self.messages = [ChatMessage("assistant", WELCOME_MESSAGE)]
            return
        try:
            self.messages = [ChatMessage.from_dict(raw) for raw in saved_messages]
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Erro ao carregar histórico do chat: {e}")
            self.messages = []

    def save_settings(self, settings: Union[AdvisorSettings, None] = None) -> None:
        if settings is not None:
            self.settings = settings
        self.storage.set(SETTINGS_KEY, self.settings.to_dict())

    def add_message(self, type: str, content: str, report_type: Union[str, None] = None) -> ChatMessage:
        message = ChatMessage(type, content, report_type=report_type)
        self.messages.append(message)
        self.storage.set(MESSAGES_KEY, [m.to_dict() for m in self.messages])
        return message

    def clear_chat(self) -> None:
        self.messages = []
        self.storage.remove(MESSAGES_KEY)


def build_system_prompt(settings: AdvisorSettings, data: Union[BusinessData, None]) -> str:
    if data is not None:
        trends = "\n".join(data.all_trends)
        snapshot = f"""
Leads: {data.leads.total} total, {data.leads.won} convertidos ({format_percent(data.leads.conversion_rate)}%)
Tarefas: {data.tasks.total} total, {data.tasks.completed} concluídas ({format_percent(data.tasks.completion_rate)}%)
Finanças: {_money(data.total_revenue)} receita, {_money(data.total_expenses)} despesas
Lucro Líquido: {_money(data.net_profit)}

Tendências Identificadas:
{trends}
"""
    else:
        snapshot = "Dados não disponíveis no momento."

    return f"""{settings.system_prompt}

DADOS ATUAIS DO NEGÓCIO:
{snapshot}

Responda sempre em português brasileiro e seja específico com os dados fornecidos."""


class Advisor:
    """
    Compositor do CoreOracle.

    ai_integration: configuração ativa do serviço 'ai' (tabela integrations) ou None.
    insight_recorder: callable(pergunta, resposta) chamado quando a resposta vem da IA.
    """

    def __init__(self, session: AdvisorSession, business_data: Union[BusinessData, None],
                 ai_integration: Union[AIConfig, None] = None,
                 insight_recorder: Union[Callable[[str, str], None], None] = None,
                 responder: Union[FallbackResponder, None] = None):
        self.session = session
        self.business_data = business_data
        self.ai_integration = ai_integration
        self.insight_recorder = insight_recorder
        self.responder = responder or FallbackResponder()
        self.is_loading = False
        # True quando a última resposta veio da IA (e não do fallback)
        self.answered_by_ai = False

    def has_credential(self) -> bool:
        integration_key = self.ai_integration.api_key if self.ai_integration else ""
        return bool(integration_key or self.session.settings.api_key)

    def send_message(self, text: str) -> Union[ChatMessage, None]:
        """Envia uma pergunta. Devolve a resposta, ou None se a entrada for vazia ou houver envio em andamento."""
        content = (text or "").strip()
        if not content or self.is_loading:
            return None

        self.session.add_message("user", content)
        self.is_loading = True
        try:
            reply = self.generate_response(content)
        except Exception as e:
            logger.exception(f"Erro ao processar mensagem do Oracle: {e}")
            reply = PROCESSING_ERROR
        finally:
            self.is_loading = False

        message = self.session.add_message("assistant", reply)
        if self.insight_recorder is not None and self.answered_by_ai:
            self.insight_recorder(content, reply)
        return message

    def generate_response(self, text: str) -> str:
        self.answered_by_ai = False
        if not self.has_credential():
            return UNCONFIGURED_NOTICE + self.responder.respond(text, self.business_data)

        settings = self.session.settings
        if self.ai_integration and self.ai_integration.api_key:
            # a integração salva tem prioridade e sempre fala com a OpenAI
            provider, api_key = "openai", self.ai_integration.api_key
            model = self.ai_integration.model or settings.model
        else:
            provider, api_key, model = settings.provider, settings.api_key, settings.model

        messages = [
            {"role": "system", "content": build_system_prompt(settings, self.business_data)},
            {"role": "user", "content": text},
        ]
        try:
            answer = ask_chat(provider, api_key, messages, model=model,
                              max_tokens=settings.max_tokens, temperature=settings.temperature)
        except (AIServiceError, ValueError) as e:
            logger.error(f"Erro ao gerar resposta da IA: {e}")
            return AI_ERROR_NOTICE + self.responder.respond(text, self.business_data)
        if not answer:
            return EMPTY_REPLY
        self.answered_by_ai = True
        return answer

    def generate_report(self, kind: str) -> ChatMessage:
        return self.session.add_message("assistant", generate_report_content(kind, self.business_data),
                                        report_type=kind)


def _lines(*items: str) -> str:
    return "\n".join(item for item in items if item)


def generate_report_content(kind: str, data: Union[BusinessData, None]) -> str:
    """Relatórios em texto (markdown) do CoreOracle: 'monthly' e 'strategic'."""
    if data is None:
        return "Dados insuficientes para gerar o relatório."

    if kind == "monthly":
        positive = data.net_profit >= 0
        margin = format_percent(data.net_profit / data.total_revenue * 100) if data.total_revenue > 0 else "0"
        revenue_per_lead = (format_number_br(data.total_revenue / data.leads.total)
                            if data.leads.total > 0 else "0")
        return f"""# 📊 Relatório Mensal Executivo

## Resumo Executivo
{'✅' if positive else '⚠️'} **Status Geral:** {'Positivo' if positive else 'Requer Atenção'}

## 💰 Performance Financeira
- **Receita:** {_money(data.total_revenue)}
- **Despesas:** {_money(data.total_expenses)}
- **Lucro Líquido:** {_money(data.net_profit)}
- **Margem:** {margin}%

## 🎯 Performance de Vendas
- **Leads Processados:** {data.leads.total}
- **Taxa de Conversão:** {format_percent(data.leads.conversion_rate)}%
- **Receita por Lead:** R$ {revenue_per_lead}

## ⚡ Produtividade
- **Taxa de Conclusão:** {format_percent(data.tasks.completion_rate)}%
- **Tarefas em Atraso:** {data.tasks.overdue}

## 🚀 Recomendações
{_bullets(data.recommendations, "")}"""

    if kind == "strategic":
        strengths = _lines(
            "- Alta taxa de conversão de leads" if data.leads.conversion_rate > 10 else "",
            "- Boa produtividade da equipe" if data.tasks.completion_rate > 70 else "",
            "- Lucratividade positiva" if data.net_profit > 0 else "",
        )
        weaknesses = _lines(
            f"- {data.tasks.overdue} tarefas em atraso" if data.tasks.overdue > 0 else "",
            "- Taxa de conversão baixa" if data.leads.conversion_rate < 5 else "",
            "- Resultado financeiro negativo" if data.net_profit < 0 else "",
        )
        return f"""# 🎯 Relatório Estratégico

## Análise SWOT Automatizada

### 💪 Forças
{strengths}

### ⚠️ Fraquezas
{weaknesses}

### 🔍 Oportunidades Identificadas
- Otimização do funil de vendas
- Automação de processos repetitivos
- Expansão para novos segmentos

### 🎯 Plano de Ação Recomendado
1. **Curto Prazo (30 dias):**
   - Resolver tarefas em atraso
   - Implementar follow-ups automatizados

2. **Médio Prazo (90 dias):**
   - Otimizar processo de qualificação
   - Revisar estrutura de custos

3. **Longo Prazo (6 meses):**
   - Expandir equipe de vendas
   - Implementar novas tecnologias"""

    return "Relatório em desenvolvimento..."
