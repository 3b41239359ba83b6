from .utils import start_command, help_command
from .finance import (
    apagar_command,
    balanco_command,
    conciliar_command,
    despesa_command,
    receita_command,
    resumo_command,
)
from .reports import relatorio_command
from .advisor import (
    configurar_ia_command,
    insights_command,
    limpar_command,
    oraculo_command,
    relatorio_estrategico_command,
    relatorio_executivo_command,
)
from .integrations import testar_integracao_command

# nome do comando -> callback
ALL_COMMANDS = {
    "start": start_command,
    "help": help_command,
    "resumo": resumo_command,
    "balanco": balanco_command,
    "relatorio": relatorio_command,
    "receita": receita_command,
    "despesa": despesa_command,
    "apagar": apagar_command,
    "conciliar": conciliar_command,
    "oraculo": oraculo_command,
    "relatorio_estrategico": relatorio_estrategico_command,
    "relatorio_executivo": relatorio_executivo_command,
    "configurar_ia": configurar_ia_command,
    "limpar": limpar_command,
    "insights": insights_command,
    "testar_integracao": testar_integracao_command,
}
