import datetime
import unittest
from decimal import Decimal
from unittest.mock import MagicMock, patch

from corepulse.core.advisor import (
    AI_ERROR_NOTICE, DATA_LOADING, EMPTY_REPLY, MESSAGES_KEY, SETTINGS_KEY, UNCONFIGURED_NOTICE,
    Advisor, AdvisorSession, AdvisorSettings, FallbackResponder, build_business_data,
    build_system_prompt, compute_lead_stats, compute_task_stats, generate_report_content,
)
from corepulse.core.ai import AIServiceError
from corepulse.core.finance import FinancialStats
from corepulse.core.integrations import AIConfig
from corepulse.core.models import Lead, Task
from corepulse.core.storage import MemoryStorage

TODAY = datetime.date(2026, 10, 19)


def sample_data():
    leads = [
        Lead("1", "Padaria", "won", Decimal("1000")),
        Lead("2", "Mercado", "qualified", Decimal("500")),
        Lead("3", "Oficina", "qualified", Decimal("0")),
        Lead("4", "Clínica", "new", Decimal("500")),
    ]
    tasks = [
        Task("1", "Enviar proposta", "done"),
        Task("2", "Ligar para cliente", "todo", due_date=datetime.date(2026, 10, 1)),
        Task("3", "Revisar contrato", "in_progress", due_date=datetime.date(2026, 11, 1)),
    ]
    finance = FinancialStats(Decimal("1000"), Decimal("400"), Decimal("600"), 2)
    return build_business_data(compute_lead_stats(leads), compute_task_stats(tasks, TODAY), finance)


class TestStats(unittest.TestCase):
    def test_lead_stats(self):
        data = sample_data()
        self.assertEqual(data.leads.total, 4)
        self.assertEqual(data.leads.qualified, 2)
        self.assertEqual(data.leads.won, 1)
        self.assertEqual(data.leads.conversion_rate, 25.0)
        self.assertEqual(data.leads.avg_value, Decimal("500"))

    def test_task_stats(self):
        data = sample_data()
        self.assertEqual(data.tasks.completed, 1)
        self.assertEqual(data.tasks.overdue, 1)
        self.assertEqual(data.tasks.completion_rate, 33.3)

    def test_empty_snapshot_has_no_division_errors(self):
        data = build_business_data(compute_lead_stats([]), compute_task_stats([], TODAY), FinancialStats())
        self.assertEqual(data.leads.conversion_rate, 0)
        self.assertEqual(data.tasks.completion_rate, 0)
        self.assertEqual(data.net_profit, 0)
        self.assertEqual(data.insights, [])

    def test_trends_and_recommendations(self):
        data = sample_data()
        self.assertIn("Alta taxa de conversão detectada", data.lead_trends)
        self.assertIn("Produtividade abaixo do esperado", data.task_trends)
        self.assertIn("1 tarefas em atraso requerem atenção", data.task_trends)
        self.assertEqual(data.finance_trends, ["Margem de lucro saudável", "Fluxo de caixa positivo"])
        self.assertIn("Receita média por lead convertido: R$ 1.000", data.insights)
        self.assertIn("Implementar sistema de alertas para tarefas próximas do vencimento", data.recommendations)

    def test_high_expense_ratio(self):
        data = build_business_data(compute_lead_stats([]), compute_task_stats([], TODAY),
                                   FinancialStats(Decimal("1000"), Decimal("950")))
        self.assertIn("Margem de lucro baixa - revisar custos", data.finance_trends)
        self.assertIn("Revisar e otimizar estrutura de custos operacionais", data.recommendations)


class TestFallbackResponder(unittest.TestCase):
    def setUp(self):
        self.responder = FallbackResponder()
        self.data = sample_data()

    def test_team_question_routes_to_productivity(self):
        answer = self.responder.respond("Como está minha equipe?", self.data)
        self.assertTrue(answer.startswith("**Análise de Produtividade:**"))
        self.assertIn("Taxa de conclusão: 33.3%", answer)

    def test_sales_question(self):
        answer = self.responder.respond("Quero ver minhas VENDAS", self.data)
        self.assertTrue(answer.startswith("**Análise de Vendas:**"))
        self.assertIn("Taxa de conversão: 25%", answer)

    def test_finance_question(self):
        answer = self.responder.respond("Qual o lucro deste mês?", self.data)
        self.assertTrue(answer.startswith("**Análise Financeira:**"))
        self.assertIn("Lucro líquido: R$ 600", answer)

    def test_rule_order(self):
        # vendas vem antes de produtividade
        answer = self.responder.respond("vendas e produtividade", self.data)
        self.assertTrue(answer.startswith("**Análise de Vendas:**"))

    def test_general_overview(self):
        answer = self.responder.respond("Oi", self.data)
        self.assertTrue(answer.startswith("**Visão Geral do Negócio:**"))
        self.assertIn("Saúde Financeira: Positiva", answer)

    def test_deterministic(self):
        self.assertEqual(self.responder.respond("equipe", self.data), self.responder.respond("equipe", self.data))

    def test_no_data(self):
        self.assertEqual(self.responder.respond("vendas", None), DATA_LOADING)


class TestSession(unittest.TestCase):
    def test_welcome_message_without_history(self):
        session = AdvisorSession(MemoryStorage())
        self.assertEqual(len(session.messages), 1)
        self.assertEqual(session.messages[0].type, "assistant")
        self.assertTrue(session.messages[0].content.startswith("Olá! Sou o CoreOracle"))

    def test_history_persists(self):
        storage = MemoryStorage()
        session = AdvisorSession(storage)
        session.add_message("user", "Como estão as vendas?")

        reloaded = AdvisorSession(storage)

        self.assertEqual([m.content for m in reloaded.messages][-1], "Como estão as vendas?")
        self.assertEqual(len(storage.get(MESSAGES_KEY)), 2)

    def test_clear_chat(self):
        storage = MemoryStorage()
        session = AdvisorSession(storage)
        session.add_message("user", "Oi")
        session.clear_chat()
        self.assertEqual(session.messages, [])
        self.assertIsNone(storage.get(MESSAGES_KEY))

    def test_settings_persist(self):
        storage = MemoryStorage()
        session = AdvisorSession(storage)
        session.save_settings(AdvisorSettings(provider="gemini", model="gemini-1.5-flash", api_key="g-key"))

        reloaded = AdvisorSession(storage)

        self.assertEqual(reloaded.settings.provider, "gemini")
        self.assertEqual(reloaded.settings.api_key, "g-key")
        self.assertEqual(storage.get(SETTINGS_KEY)["aiProvider"], "gemini")

    def test_corrupted_history(self):
        session = AdvisorSession(MemoryStorage({MESSAGES_KEY: [{"content": "sem tipo"}]}))
        self.assertEqual(session.messages, [])


class TestAdvisor(unittest.TestCase):
    def setUp(self):
        self.session = AdvisorSession(MemoryStorage())
        self.data = sample_data()

    def test_empty_input_is_noop(self):
        advisor = Advisor(self.session, self.data)
        self.assertIsNone(advisor.send_message("   "))
        self.assertEqual(len(self.session.messages), 1)

    def test_busy_advisor_ignores_send(self):
        advisor = Advisor(self.session, self.data)
        advisor.is_loading = True
        self.assertIsNone(advisor.send_message("Como está minha equipe?"))

    @patch('corepulse.core.advisor.ask_chat')
    def test_without_credential(self, mock_ask):
        advisor = Advisor(self.session, self.data)

        reply = advisor.send_message("Como está minha equipe?")

        mock_ask.assert_not_called()
        self.assertTrue(reply.content.startswith(UNCONFIGURED_NOTICE))
        self.assertIn("**Análise de Produtividade:**", reply.content)
        self.assertEqual([m.type for m in self.session.messages], ["assistant", "user", "assistant"])
        self.assertFalse(advisor.is_loading)

    @patch('corepulse.core.advisor.ask_chat', return_value="Sua equipe concluiu 33% das tarefas.")
    def test_with_local_key(self, mock_ask):
        self.session.settings.api_key = "sk-local"
        recorder = MagicMock()
        advisor = Advisor(self.session, self.data, insight_recorder=recorder)

        reply = advisor.send_message("Como está minha equipe?")

        self.assertEqual(reply.content, "Sua equipe concluiu 33% das tarefas.")
        args, kwargs = mock_ask.call_args
        self.assertEqual(args[0], "openai")
        self.assertEqual(args[1], "sk-local")
        self.assertEqual(kwargs["model"], "gpt-4")
        self.assertEqual(kwargs["max_tokens"], 1000)
        self.assertIn("DADOS ATUAIS DO NEGÓCIO", args[2][0]["content"])
        recorder.assert_called_once_with("Como está minha equipe?", "Sua equipe concluiu 33% das tarefas.")

    @patch('corepulse.core.advisor.ask_chat', return_value="ok")
    def test_integration_key_takes_priority(self, mock_ask):
        self.session.settings.provider = "gemini"
        self.session.settings.api_key = "g-local"
        advisor = Advisor(self.session, self.data, ai_integration=AIConfig(api_key="sk-saved", model="gpt-4o"))

        advisor.send_message("vendas")

        args, kwargs = mock_ask.call_args
        self.assertEqual(args[:2], ("openai", "sk-saved"))
        self.assertEqual(kwargs["model"], "gpt-4o")

    @patch('corepulse.core.advisor.ask_chat')
    def test_ai_failure_falls_back(self, mock_ask):
        mock_ask.side_effect = AIServiceError("Erro da API OpenAI: quota", status_code=429)
        self.session.settings.api_key = "sk-local"
        advisor = Advisor(self.session, self.data)

        reply = advisor.send_message("Como está minha equipe?")

        self.assertTrue(reply.content.startswith(AI_ERROR_NOTICE))
        self.assertIn("**Análise de Produtividade:**", reply.content)

    @patch('requests.post')
    def test_malformed_ai_body_falls_back(self, mock_post):
        mock_post.return_value = MagicMock(ok=True, status_code=200)
        mock_post.return_value.json.return_value = []
        self.session.settings.api_key = "sk-local"
        recorder = MagicMock()
        advisor = Advisor(self.session, self.data, insight_recorder=recorder)

        reply = advisor.send_message("Como está minha equipe?")

        self.assertTrue(reply.content.startswith(AI_ERROR_NOTICE))
        self.assertIn("**Análise de Produtividade:**", reply.content)
        recorder.assert_not_called()

    def test_fallback_replies_are_not_recorded(self):
        recorder = MagicMock()
        advisor = Advisor(self.session, self.data, insight_recorder=recorder)
        reply = advisor.send_message("vendas")
        self.assertTrue(reply.content.startswith(UNCONFIGURED_NOTICE))
        self.assertFalse(advisor.answered_by_ai)
        recorder.assert_not_called()

    @patch('corepulse.core.advisor.ask_chat', return_value="")
    def test_empty_ai_reply(self, mock_ask):
        self.session.settings.api_key = "sk-local"
        reply = Advisor(self.session, self.data).send_message("Oi")
        self.assertEqual(reply.content, EMPTY_REPLY)

    def test_system_prompt_without_data(self):
        prompt = build_system_prompt(AdvisorSettings(), None)
        self.assertIn("Dados não disponíveis no momento.", prompt)
        self.assertTrue(prompt.endswith("seja específico com os dados fornecidos."))


class TestReportContent(unittest.TestCase):
    def test_monthly(self):
        content = generate_report_content("monthly", sample_data())
        self.assertTrue(content.startswith("# 📊 Relatório Mensal Executivo"))
        self.assertIn("**Status Geral:** Positivo", content)
        self.assertIn("**Margem:** 60%", content)
        self.assertIn("**Receita por Lead:** R$ 250", content)

    def test_strategic(self):
        content = generate_report_content("strategic", sample_data())
        self.assertIn("- Alta taxa de conversão de leads", content)
        self.assertIn("- 1 tarefas em atraso", content)
        self.assertNotIn("- Resultado financeiro negativo", content)

    def test_without_data(self):
        self.assertEqual(generate_report_content("monthly", None), "Dados insuficientes para gerar o relatório.")

    def test_unknown_kind(self):
        self.assertEqual(generate_report_content("anual", sample_data()), "Relatório em desenvolvimento...")


if __name__ == '__main__':
    unittest.main()
