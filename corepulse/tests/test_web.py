import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from corepulse.core.integrations import IntegrationTestResult
from corepulse.web import create_flask_app


class TestWebRoutes(unittest.TestCase):
    def setUp(self):
        self.ptb_application = MagicMock()
        self.ptb_application.process_update = AsyncMock()
        self.supabase_client = MagicMock()
        app = create_flask_app(self.ptb_application, self.supabase_client, "user-1")
        app.testing = True
        self.client = app.test_client()

    def test_webhook_requires_json(self):
        response = self.client.post("/webhook", data="oi", content_type="text/plain")
        self.assertEqual(response.status_code, 400)

    @patch('corepulse.web.Update')
    def test_webhook_processes_update(self, mock_update):
        response = self.client.post("/webhook", json={"update_id": 1})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {"status": "ok"})
        self.ptb_application.process_update.assert_awaited_once_with(mock_update.de_json.return_value)

    @patch('corepulse.web.test_integration')
    def test_integrations_test(self, mock_test):
        mock_test.return_value = IntegrationTestResult(True, "Configuração SMTP válida!")
        response = self.client.post("/integrations/test", json={"service": "email", "config": {"smtpHost": "x"}})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {"success": True, "message": "Configuração SMTP válida!"})
        mock_test.assert_called_once_with("email", {"smtpHost": "x"})

    def test_integrations_test_unknown_service(self):
        response = self.client.post("/integrations/test", json={"service": "slack", "config": {}})
        self.assertEqual(response.status_code, 400)
        self.assertIn("error", response.get_json())

    @patch('corepulse.web.answer_with_business_context', return_value="Resposta")
    def test_assistant(self, mock_answer):
        response = self.client.post("/assistant", json={"message": "Oi", "settings": {"model": "gpt-4"}})
        self.assertEqual(response.get_json(), {"success": True, "message": "Resposta"})
        mock_answer.assert_called_once_with(self.supabase_client, "user-1", "Oi", {"model": "gpt-4"})

    @patch('corepulse.web.answer_with_business_context')
    def test_assistant_error(self, mock_answer):
        from corepulse.core.assistant import AssistantError
        mock_answer.side_effect = AssistantError("OpenAI integration not configured")
        response = self.client.post("/assistant", json={"message": "Oi"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json(), {"error": "OpenAI integration not configured"})


    @patch('corepulse.web.db')
    def test_integrations_save(self, mock_db):
        config = {"smtpHost": "smtp.gmail.com", "smtpPort": 587, "username": "contato@empresa.com", "password": "abcd efgh"}
        response = self.client.post("/integrations", json={"service": "email", "config": config})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {"success": True})
        args = mock_db.save_integration.call_args[0]
        self.assertEqual(args[1:3], ("user-1", "email"))
        self.assertEqual(args[3]["smtpHost"], "smtp.gmail.com")

    @patch('corepulse.web.db')
    def test_integrations_save_invalid_config(self, mock_db):
        response = self.client.post("/integrations", json={"service": "ai", "config": {"apiKey": "abc"}})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json(), {"error": 'Chave da API deve começar com "sk-"'})
        mock_db.save_integration.assert_not_called()


if __name__ == '__main__':
    unittest.main()
