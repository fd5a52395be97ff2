"""
Tests for the CLI interface.
"""
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from ai_client import __version__
from ai_client.cli.main import EXIT_CODE_ERROR, EXIT_CODE_OK, _format_age, app
from ai_client.config.loader import ClientConfig
from ai_client.core.accounting import SessionStats, UsageAccountant, compute_usage
from ai_client.core.conversation import Conversation, Message, Role
from ai_client.core.errors import AIClientError, ConfigurationError, ErrorKind
from ai_client.core.pricing import ModelPricing
from ai_client.sdk.anthropic_client import ChatResult, StatsNotSavedError
from ai_client.storage.models import conversation_to_dict
from ai_client.storage.repository import StateRepository

runner = CliRunner()


def chat_result(content: str = "Hello from Claude") -> ChatResult:
    return ChatResult(content=content, usage=compute_usage(1000, 500, ModelPricing(0.003, 0.015)))


@pytest.fixture
def repository(tmp_path):
    """Real repository rooted in a temporary directory."""
    repo = StateRepository(tmp_path / "state")
    with patch('ai_client.cli.main.get_repository', return_value=repo):
        yield repo


@pytest.fixture
def mock_config():
    with patch('ai_client.cli.main.load_config') as mock:
        mock.return_value = ClientConfig(api_key="sk-test")
        yield mock


@pytest.fixture
def mock_client():
    """Mock the tracked client; chat replies with a canned result."""
    with patch('ai_client.cli.main.TrackedAnthropic') as mock_class:
        instance = mock_class.return_value
        instance.chat = AsyncMock(return_value=chat_result())
        instance.accountant = UsageAccountant()
        yield instance


class TestAsk:
    """Test the single-shot command."""

    def test_ask_prints_reply_and_usage(self, repository, mock_config, mock_client):
        result = runner.invoke(app, ["ask", "What is Python?"])

        assert result.exit_code == EXIT_CODE_OK
        assert "Hello from Claude" in result.output
        assert "1000 in / 500 out tokens" in result.output

        sent = mock_client.chat.await_args.args[0]
        assert sent == [Message(role=Role.USER, content="What is Python?", timestamp=sent[0].timestamp)]

    def test_ask_model_override(self, repository, mock_config, mock_client):
        with patch('ai_client.cli.main.TrackedAnthropic') as mock_class:
            mock_class.return_value = mock_client
            result = runner.invoke(app, ["ask", "Hi", "--model", "claude-haiku-4-5-20251001"])

        assert result.exit_code == EXIT_CODE_OK
        config = mock_class.call_args.args[0]
        assert config.default_model == "claude-haiku-4-5-20251001"

    def test_ask_passes_config_path(self, repository, mock_config, mock_client):
        runner.invoke(app, ["ask", "Hi", "--config", "/tmp/custom.yaml"])
        mock_config.assert_called_once_with("/tmp/custom.yaml")

    def test_ask_auth_error_exits_one(self, repository, mock_config, mock_client):
        mock_client.chat.side_effect = AIClientError(ErrorKind.AUTH_FAILURE)

        result = runner.invoke(app, ["ask", "Hi"])

        assert result.exit_code == EXIT_CODE_ERROR
        assert "Authentication failed" in result.output

    def test_ask_rate_limit_hint(self, repository, mock_config, mock_client):
        mock_client.chat.side_effect = AIClientError(ErrorKind.RATE_LIMITED)

        result = runner.invoke(app, ["ask", "Hi"])

        assert result.exit_code == EXIT_CODE_ERROR
        assert "Please wait a moment" in result.output

    def test_ask_configuration_error(self, repository, mock_config, mock_client):
        mock_config.side_effect = ConfigurationError("API key not found.")

        result = runner.invoke(app, ["ask", "Hi"])

        assert result.exit_code == EXIT_CODE_ERROR
        assert "Configuration error" in result.output
        assert "API key not found" in result.output
        mock_client.chat.assert_not_called()

    def test_ask_shows_reply_when_stats_not_saved(self, repository, mock_config, mock_client):
        mock_client.chat.side_effect = StatsNotSavedError(chat_result("Still here"), OSError("disk full"))

        result = runner.invoke(app, ["ask", "Hi"])

        assert result.exit_code == EXIT_CODE_ERROR
        assert "Still here" in result.output
        assert "disk full" in result.output

    def test_ask_shows_spinner(self, repository, mock_config, mock_client):
        with patch("ai_client.cli.main.console.status", MagicMock()) as mock_status:
            result = runner.invoke(app, ["ask", "Hi"])

        assert result.exit_code == EXIT_CODE_OK
        mock_status.assert_called_once_with("Thinking...")

    def test_ask_requires_prompt(self):
        result = runner.invoke(app, ["ask"])
        assert result.exit_code != EXIT_CODE_OK


class TestChat:
    """Test the interactive chat loop."""

    def test_chat_round_trip_saves_session(self, repository, mock_config, mock_client):
        result = runner.invoke(app, ["chat"], input="hello\n/exit\n")

        assert result.exit_code == EXIT_CODE_OK
        assert "Interactive Chat" in result.output
        assert "Hello from Claude" in result.output

        saved = repository.list_sessions()
        assert len(saved) == 1
        assert saved[0].message_count == 2
        conversation = repository.load_conversation(saved[0].id)
        assert [(m.role, m.content) for m in conversation.messages] == [
            (Role.USER, "hello"),
            (Role.ASSISTANT, "Hello from Claude"),
        ]

    def test_chat_sends_context_window(self, repository, mock_config, mock_client):
        runner.invoke(app, ["chat"], input="first\nsecond\n/exit\n")

        second_call = mock_client.chat.await_args_list[1].args[0]
        assert [m.content for m in second_call] == ["first", "Hello from Claude", "second"]

    def test_chat_history_command(self, repository, mock_config, mock_client):
        result = runner.invoke(app, ["chat"], input="hello\n/history\n/exit\n")
        assert "Showing 2 of 2 messages" in result.output

    def test_chat_stats_command(self, repository, mock_config, mock_client):
        result = runner.invoke(app, ["chat"], input="hello\n/stats\n/exit\n")

        assert "Session Stats:" in result.output
        assert "- Requests:      1" in result.output

    def test_chat_reset_clears_session(self, repository, mock_config, mock_client):
        result = runner.invoke(app, ["chat"], input="hello\n/reset\n/history\n/stats\n/exit\n")

        assert "Conversation cleared" in result.output
        assert "Showing 0 of 0 messages" in result.output
        assert "- Requests:      0" in result.output

    def test_chat_unknown_command(self, repository, mock_config, mock_client):
        result = runner.invoke(app, ["chat"], input="/bogus\n/exit\n")

        assert result.exit_code == EXIT_CODE_OK
        assert "Unknown command: /bogus" in result.output
        mock_client.chat.assert_not_called()

    def test_chat_ends_on_eof(self, repository, mock_config, mock_client):
        result = runner.invoke(app, ["chat"], input="")
        assert result.exit_code == EXIT_CODE_OK

    def test_chat_error_keeps_loop_running(self, repository, mock_config, mock_client):
        mock_client.chat.side_effect = [AIClientError(ErrorKind.CONNECTIVITY_FAILURE), chat_result("Recovered")]

        result = runner.invoke(app, ["chat"], input="one\ntwo\n/exit\n")

        assert result.exit_code == EXIT_CODE_OK
        assert "Network error" in result.output
        assert "Recovered" in result.output

    def test_chat_stats_write_failure_keeps_reply(self, repository, mock_config, mock_client):
        mock_client.chat.side_effect = [
            StatsNotSavedError(chat_result("Saved anyway"), OSError("disk full")),
            chat_result("Next reply"),
        ]

        result = runner.invoke(app, ["chat"], input="one\ntwo\n/exit\n")

        assert result.exit_code == EXIT_CODE_OK
        assert "Saved anyway" in result.output
        assert "disk full" in result.output
        assert "Next reply" in result.output
        saved = repository.list_sessions()
        assert saved[0].message_count == 4

    def test_chat_session_write_failure_keeps_loop_running(self, repository, mock_config, mock_client):
        with patch.object(repository, "save_conversation", side_effect=OSError("read-only")):
            result = runner.invoke(app, ["chat"], input="one\n/history\n/exit\n")

        assert result.exit_code == EXIT_CODE_OK
        assert "Hello from Claude" in result.output
        assert "read-only" in result.output
        assert "Showing 2 of 2 messages" in result.output

    def test_chat_resume_existing(self, repository, mock_config, mock_client):
        stamp = datetime.now(timezone.utc) - timedelta(hours=1)
        repository.save_conversation(Conversation(
            id="resume-me",
            messages=[Message(Role.USER, "earlier question", stamp)],
            created_at=stamp,
            updated_at=stamp
        ))

        result = runner.invoke(app, ["chat", "--resume", "resume-me"], input="follow up\n/exit\n")

        assert result.exit_code == EXIT_CODE_OK
        assert "earlier question" in result.output
        sent = mock_client.chat.await_args.args[0]
        assert [m.content for m in sent] == ["earlier question", "follow up"]
        assert len(repository.load_conversation("resume-me").messages) == 3

    def test_chat_resume_missing_starts_new(self, repository, mock_config, mock_client):
        result = runner.invoke(app, ["chat", "--resume", "nope"], input="/exit\n")

        assert result.exit_code == EXIT_CODE_OK
        assert "Session nope not found" in result.output

    def test_chat_configuration_error(self, repository, mock_config, mock_client):
        mock_config.side_effect = ConfigurationError("Invalid retry configuration: boom")

        result = runner.invoke(app, ["chat"], input="/exit\n")

        assert result.exit_code == EXIT_CODE_ERROR
        assert "Invalid retry configuration" in result.output


class TestStats:
    """Test the stats command."""

    def test_stats_empty(self, repository):
        result = runner.invoke(app, ["stats"])

        assert result.exit_code == EXIT_CODE_OK
        assert "No usage statistics found." in result.output

    def test_stats_runs_without_api_key(self, repository):
        with patch("ai_client.cli.main.load_config", side_effect=ConfigurationError("API key not found.")):
            result = runner.invoke(app, ["stats"])

        assert result.exit_code == EXIT_CODE_OK
        assert "No usage statistics found." in result.output

    def test_stats_table(self, repository):
        repository.save_stats(SessionStats(
            total_input_tokens=12000,
            total_output_tokens=3000,
            total_cost=0.081,
            request_count=3
        ))

        result = runner.invoke(app, ["stats"])

        assert result.exit_code == EXIT_CODE_OK
        assert "Global Usage Statistics" in result.output
        assert "12,000" in result.output
        assert "15,000" in result.output
        assert "$0.0810" in result.output
        assert "$0.0270" in result.output


class TestSessions:
    """Test session listing and cleanup."""

    def _save(self, repository, session_id, days_ago):
        stamp = datetime.now(timezone.utc) - timedelta(days=days_ago)
        repository.save_conversation(Conversation(
            id=session_id,
            messages=[Message(Role.USER, "hi", stamp)],
            created_at=stamp,
            updated_at=stamp
        ))

    def test_sessions_empty(self, repository):
        result = runner.invoke(app, ["sessions"])

        assert result.exit_code == EXIT_CODE_OK
        assert "No saved sessions found." in result.output

    def test_sessions_list(self, repository):
        self._save(repository, "sess-a", 0)
        self._save(repository, "sess-b", 2)

        result = runner.invoke(app, ["sessions"])

        assert result.exit_code == EXIT_CODE_OK
        assert "Available Sessions" in result.output
        assert "sess-a" in result.output
        assert "sess-b" in result.output
        assert result.output.index("sess-a") < result.output.index("sess-b")
        assert "chat --resume" in result.output

    def test_sessions_cleanup_default_age(self, repository):
        self._save(repository, "ancient", 45)
        self._save(repository, "fresh", 1)

        result = runner.invoke(app, ["sessions", "--cleanup"])

        assert result.exit_code == EXIT_CODE_OK
        assert "Deleted 1 session(s) older than 30 days." in result.output
        assert [s.id for s in repository.list_sessions()] == ["fresh"]

    def test_sessions_cleanup_custom_age(self, repository):
        self._save(repository, "week-old", 7)

        result = runner.invoke(app, ["sessions", "--cleanup", "--older-than", "5"])

        assert "Deleted 1 session(s) older than 5 days." in result.output
        assert repository.list_sessions() == []

    def test_sessions_cleanup_skips_mismatched_files(self, repository):
        self._save(repository, "stale", 90)
        stale = conversation_to_dict(repository.load_conversation("stale"))
        for filename, stored_id in (("a.json", "../x"), ("b.json", "other")):
            stale["id"] = stored_id
            (repository.sessions_dir / filename).write_text(json.dumps(stale), encoding="utf-8")

        result = runner.invoke(app, ["sessions", "--cleanup"])

        assert result.exit_code == EXIT_CODE_OK
        assert "Deleted 1 session(s)" in result.output
        assert sorted(p.name for p in repository.sessions_dir.iterdir()) == ["a.json", "b.json"]

    def test_sessions_negative_age_rejected(self, repository):
        result = runner.invoke(app, ["sessions", "--cleanup", "--older-than", "-1"])
        assert result.exit_code != EXIT_CODE_OK


class TestMisc:
    """Test version flag and helpers."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == EXIT_CODE_OK
        assert __version__ in result.output

    @pytest.mark.parametrize("delta,expected", [
        (timedelta(seconds=5), "5 seconds"),
        (timedelta(minutes=1), "1 minute"),
        (timedelta(hours=3), "3 hours"),
        (timedelta(days=2), "2 days"),
        (timedelta(days=65), "2 months"),
    ])
    def test_format_age(self, delta, expected):
        assert _format_age(datetime.now(timezone.utc) - delta) == expected
