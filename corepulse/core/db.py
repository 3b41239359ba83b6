import datetime
from decimal import Decimal
from typing import Any, Dict, List, Union

from supabase import create_client, Client

from corepulse.config import SUPABASE_URL, SUPABASE_KEY

# Categorias criadas na primeira vez que o usuário abre o financeiro
DEFAULT_CATEGORIES = [
    # Receitas
    {"name": "Vendas", "type": "income", "color": "#10B981"},
    {"name": "Serviços", "type": "income", "color": "#059669"},
    {"name": "Investimentos", "type": "income", "color": "#047857"},
    {"name": "Outros", "type": "income", "color": "#065F46"},
    # Despesas
    {"name": "Marketing", "type": "expense", "color": "#EF4444"},
    {"name": "Operacional", "type": "expense", "color": "#DC2626"},
    {"name": "Pessoal", "type": "expense", "color": "#B91C1C"},
    {"name": "Impostos", "type": "expense", "color": "#991B1B"},
    {"name": "Outros", "type": "expense", "color": "#7F1D1D"},
]

DEFAULT_ACCOUNT = {"name": "Conta Principal", "type": "checking", "balance": "0", "is_active": True}


def get_supabase_client() -> Client:
    """Retorna uma instância do cliente Supabase."""
    return create_client(SUPABASE_URL, SUPABASE_KEY)


def _serialize(data: Dict[str, Any]) -> Dict[str, Any]:
    """Decimal e date não são JSON; o Postgres aceita numeric e date como texto."""
    serialized = {}
    for key, value in data.items():
        if isinstance(value, Decimal):
            serialized[key] = str(value)
        elif isinstance(value, (datetime.date, datetime.datetime)):
            serialized[key] = value.isoformat()
        else:
            serialized[key] = value
    return serialized


def _first(response) -> Union[Dict[str, Any], None]:
    return response.data[0] if response.data else None


# --- Transações ---
def get_transactions(supabase_client: Client, user_id: str) -> List[Dict[str, Any]]:
    """Obtém todas as transações do usuário, mais recentes primeiro."""
    response = supabase_client.table('transactions').select('*').eq('user_id', user_id).order('date', desc=True).execute()
    return response.data or []


def get_recent_transactions(supabase_client: Client, user_id: str, limit: int = 100) -> List[Dict[str, Any]]:
    response = supabase_client.table('transactions').select('*').eq('user_id', user_id).order('date', desc=True).limit(limit).execute()
    return response.data or []


def insert_transaction(supabase_client: Client, user_id: str, transaction: Dict[str, Any]) -> Dict[str, Any]:
    """Insere uma transação e devolve a linha criada."""
    payload = _serialize({**transaction, "user_id": user_id})
    response = supabase_client.table('transactions').insert(payload).execute()
    return _first(response)


def update_transaction(supabase_client: Client, transaction_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
    response = supabase_client.table('transactions').update(_serialize(updates)).eq('id', transaction_id).execute()
    return _first(response)


def delete_transaction(supabase_client: Client, transaction_id: str) -> None:
    supabase_client.table('transactions').delete().eq('id', transaction_id).execute()


def get_account_transactions(supabase_client: Client, account_id: str) -> List[Dict[str, Any]]:
    """Todas as transações de uma conta (apenas valor e tipo), usadas no recálculo do saldo."""
    response = supabase_client.table('transactions').select('amount,type').eq('account_id', account_id).execute()
    return response.data or []


# --- Contas ---
def get_accounts(supabase_client: Client, user_id: str) -> List[Dict[str, Any]]:
    """Obtém as contas ativas do usuário."""
    response = supabase_client.table('accounts').select('*').eq('user_id', user_id).eq('is_active', True).execute()
    return response.data or []


def create_default_account(supabase_client: Client, user_id: str) -> List[Dict[str, Any]]:
    response = supabase_client.table('accounts').insert({**DEFAULT_ACCOUNT, "user_id": user_id}).execute()
    return response.data or []


def update_account_balance(supabase_client: Client, account_id: str, balance: Decimal) -> None:
    supabase_client.table('accounts').update({'balance': str(balance)}).eq('id', account_id).execute()


# --- Categorias ---
def get_categories(supabase_client: Client, user_id: str) -> List[Dict[str, Any]]:
    """Obtém todas as categorias do usuário em ordem alfabética."""
    response = supabase_client.table('categories').select('*').eq('user_id', user_id).order('name').execute()
    return response.data or []


def create_default_categories(supabase_client: Client, user_id: str) -> List[Dict[str, Any]]:
    rows = [{**category, "is_default": True, "user_id": user_id} for category in DEFAULT_CATEGORIES]
    response = supabase_client.table('categories').insert(rows).execute()
    return response.data or []


# --- Leads e Tarefas (fontes de métricas do CoreOracle) ---
def get_leads(supabase_client: Client, user_id: str, limit: Union[int, None] = None) -> List[Dict[str, Any]]:
    query = supabase_client.table('leads').select('*').eq('user_id', user_id).order('created_at', desc=True)
    if limit:
        query = query.limit(limit)
    return query.execute().data or []


def get_tasks(supabase_client: Client, user_id: str, limit: Union[int, None] = None) -> List[Dict[str, Any]]:
    query = supabase_client.table('tasks').select('*').eq('user_id', user_id).order('created_at', desc=True)
    if limit:
        query = query.limit(limit)
    return query.execute().data or []


# --- Insights ---
def get_insights(supabase_client: Client, user_id: str) -> List[Dict[str, Any]]:
    response = supabase_client.table('insights').select('*').eq('user_id', user_id).order('created_at', desc=True).execute()
    return response.data or []


def add_insight(supabase_client: Client, user_id: str, insight: Dict[str, Any]) -> Dict[str, Any]:
    """Registra um insight novo (sempre como não lido e não aplicado)."""
    payload = {**insight, "user_id": user_id, "is_read": False, "is_applied": False}
    response = supabase_client.table('insights').insert(payload).execute()
    return _first(response)


def mark_insight_read(supabase_client: Client, insight_id: str) -> Dict[str, Any]:
    response = supabase_client.table('insights').update({'is_read': True}).eq('id', insight_id).execute()
    return _first(response)


def mark_insight_applied(supabase_client: Client, insight_id: str) -> Dict[str, Any]:
    response = supabase_client.table('insights').update({'is_applied': True, 'is_read': True}).eq('id', insight_id).execute()
    return _first(response)


def delete_insight(supabase_client: Client, insight_id: str) -> None:
    supabase_client.table('insights').delete().eq('id', insight_id).execute()


# --- Integrações ---
def get_integration(supabase_client: Client, user_id: str, service: str) -> Union[Dict[str, Any], None]:
    """Obtém a integração ativa de um serviço ('whatsapp', 'email' ou 'ai'), ou None."""
    response = (
        supabase_client.table('integrations').select('*')
        .eq('user_id', user_id).eq('service', service).eq('is_active', True)
        .limit(1).execute()
    )
    return _first(response)


def save_integration(supabase_client: Client, user_id: str, service: str, config: Dict[str, Any]) -> Dict[str, Any]:
    """Cria ou atualiza a configuração de uma integração e a deixa ativa."""
    existing = (
        supabase_client.table('integrations').select('id')
        .eq('user_id', user_id).eq('service', service)
        .limit(1).execute().data
    )
    if existing:
        response = (
            supabase_client.table('integrations')
            .update({'config': config, 'is_active': True})
            .eq('id', existing[0]['id']).execute()
        )
    else:
        response = supabase_client.table('integrations').insert({
            "user_id": user_id,
            "service": service,
            "config": config,
            "is_active": True,
        }).execute()
    return _first(response)
