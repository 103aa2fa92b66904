"""Tests for shared services: config, logging, Supabase, auth, notifications, LLM."""

import json
import logging
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from postgrest.exceptions import APIError
from pydantic import ValidationError

from services.auth import IdentityProvider, StaticIdentityProvider
from services.config import LLMProvider, Settings
from services.llm import LLMClient, ParseError, ResponseParser
from services.log import ROOT_LOGGER, JsonFormatter, configure_logging
from services.notifications import NotificationService, NotificationStatus
from services.supabase import NOT_CONFIGURED, RPC_NOT_FOUND, SupabaseClient


EXECUTED_AT = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)


def response(data, count=None):
    return MagicMock(data=data, count=count)


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        """Defaults match the automation windows."""
        settings = Settings(_env_file=None)
        assert settings.automation_lookahead_days == 30
        assert settings.inactivity_days_threshold == 30
        assert settings.meeting_statuses == ["scheduled", "confirmed"]
        assert settings.delayed_project_statuses == ["active", "in_progress", "pending"]
        assert settings.resend_from_email == "noreply@taskelio.app"

    def test_log_level_normalized(self):
        """log_level is upper-cased."""
        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"

    @pytest.mark.parametrize("field, value", [("log_level", "LOUD"), ("log_format", "xml")])
    def test_invalid_logging_values(self, field, value):
        """Unknown logging values are rejected."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: value})

    def test_has_supabase(self):
        """Supabase needs an https URL and a key."""
        assert Settings(_env_file=None).has_supabase is False
        assert Settings(_env_file=None, supabase_url="https://x.supabase.co", supabase_anon_key="a").has_supabase
        assert not Settings(_env_file=None, supabase_url="http://x", supabase_anon_key="a").has_supabase

    def test_service_key_preferred(self):
        """The service key wins over the anon key."""
        settings = Settings(_env_file=None, supabase_anon_key="anon", supabase_service_key="svc")
        assert settings.supabase_key == "svc"


class TestLogging:
    """Tests for configure_logging."""

    def test_idempotent_handler(self):
        """Calling twice keeps a single handler."""
        settings = Settings(_env_file=None, log_format="text", log_level="WARNING")
        configure_logging(settings)
        logger = configure_logging(settings)

        marked = [h for h in logger.handlers if getattr(h, "_clyra", False)]
        assert len(marked) == 1
        assert logger.name == ROOT_LOGGER
        assert logger.level == logging.WARNING

    def test_json_formatter(self):
        """Records are rendered as one JSON object."""
        record = logging.LogRecord("clyra.test", logging.INFO, __file__, 1, "Résolu %d", (3,), None)
        entry = json.loads(JsonFormatter().format(record))
        assert entry["message"] == "Résolu 3"
        assert entry["logger"] == "clyra.test"
        assert entry["level"] == "INFO"


class TestSupabaseClient:
    """Tests for SupabaseClient query helpers."""

    def setup_method(self):
        self.settings = Settings(_env_file=None)
        self.raw = MagicMock()
        self.db = SupabaseClient(self.settings, client=self.raw)

    @pytest.mark.asyncio
    async def test_not_configured(self):
        """Without a client every helper returns a structured error."""
        db = SupabaseClient(Settings(_env_file=None))
        result = await db.list_clients("owner-1")

        assert db.is_connected is False
        assert result.ok is False
        assert result.error.code == NOT_CONFIGURED

    @pytest.mark.asyncio
    async def test_api_error_is_captured(self):
        """PostgREST errors never escape."""
        query = self.raw.table.return_value.select.return_value.eq.return_value.order.return_value
        query.execute.side_effect = APIError({"message": "permission denied", "code": "42501"})

        result = await self.db.list_clients("owner-1")

        assert result.ok is False
        assert result.error.code == "42501"
        assert result.error.message == "permission denied"

    @pytest.mark.asyncio
    async def test_rows_returned(self):
        """Successful queries expose rows."""
        query = self.raw.table.return_value.select.return_value.eq.return_value.order.return_value
        query.execute.return_value = response([{"id": "c1"}])

        result = await self.db.list_clients("owner-1")

        assert result.ok is True
        assert result.first == {"id": "c1"}
        self.raw.table.assert_called_with("clients")

    @pytest.mark.asyncio
    async def test_increment_uses_rpc(self):
        """The increment RPC is tried first."""
        self.raw.rpc.return_value.execute.return_value = response(5)

        result = await self.db.increment_execution("r1", EXECUTED_AT)

        assert result.ok is True
        assert result.first["execution_count"] == 5
        name, params = self.raw.rpc.call_args.args
        assert name == "increment_automation_execution"
        assert params["automation_id"] == "r1"

    @pytest.mark.asyncio
    async def test_increment_falls_back_to_conditional_update(self):
        """A missing RPC falls back to compare-and-set."""
        self.raw.rpc.return_value.execute.side_effect = APIError(
            {"message": "function not found", "code": RPC_NOT_FOUND}
        )
        table = self.raw.table.return_value
        table.select.return_value.eq.return_value.limit.return_value.execute.return_value = response(
            [{"id": "r1", "execution_count": 3}]
        )
        cas = table.update.return_value.eq.return_value.eq.return_value
        cas.execute.return_value = response([{"id": "r1", "execution_count": 4}])

        result = await self.db.increment_execution("r1", EXECUTED_AT)

        assert result.ok is True
        assert result.first["execution_count"] == 4
        update_values = table.update.call_args.args[0]
        assert update_values["execution_count"] == 4
        cas_filter = table.update.return_value.eq.return_value.eq.call_args.args
        assert cas_filter == ("execution_count", 3)

    @pytest.mark.asyncio
    async def test_increment_conflict_after_retries(self):
        """Repeated concurrent updates end in a conflict error."""
        self.raw.rpc.return_value.execute.side_effect = APIError(
            {"message": "function not found", "code": RPC_NOT_FOUND}
        )
        table = self.raw.table.return_value
        table.select.return_value.eq.return_value.limit.return_value.execute.return_value = response(
            [{"id": "r1", "execution_count": 3}]
        )
        table.update.return_value.eq.return_value.eq.return_value.execute.return_value = response([])

        result = await self.db.increment_execution("r1", EXECUTED_AT)

        assert result.ok is False
        assert result.error.code == "conflict"

    @pytest.mark.asyncio
    async def test_other_rpc_errors_are_returned(self):
        """Only a missing RPC triggers the fallback."""
        self.raw.rpc.return_value.execute.side_effect = APIError({"message": "timeout", "code": "57014"})

        result = await self.db.increment_execution("r1", EXECUTED_AT)

        assert result.error.code == "57014"
        self.raw.table.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_automation_row_builds_rule(self):
        """A stored automation row becomes an AutomationRule."""
        from models.automation import AutomationRule

        query = self.raw.table.return_value.select.return_value.eq.return_value.limit.return_value
        query.execute.return_value = response([{
            "id": "r1", "name": "Rappels", "trigger_type": "meeting_reminder",
            "actions": "[]", "user_id": "owner-1", "execution_count": 2,
        }])

        result = await self.db.get_automation("r1")
        rule = AutomationRule.from_row(result.first)

        assert rule.owner_id == "owner-1"
        assert rule.execution_count == 2
        self.raw.table.assert_called_with("automations")

    @pytest.mark.asyncio
    async def test_list_automations_scoped_to_owner(self):
        """Listing filters on the owner when given."""
        table = self.raw.table.return_value
        table.select.return_value.eq.return_value.order.return_value.execute.return_value = response([])

        result = await self.db.list_automations("owner-1")

        assert result.ok is True
        table.select.return_value.eq.assert_called_with("user_id", "owner-1")

    @pytest.mark.asyncio
    async def test_set_automation_active(self):
        """Toggling writes is_active."""
        table = self.raw.table.return_value
        table.update.return_value.eq.return_value.execute.return_value = response([{"id": "r1", "is_active": False}])

        result = await self.db.set_automation_active("r1", False)

        assert result.first["is_active"] is False
        table.update.assert_called_with({"is_active": False})

    @pytest.mark.asyncio
    async def test_auth_user(self):
        """A valid token yields the user's id, email and metadata."""
        user = MagicMock(id="u1", email="marie@studio.fr", user_metadata={"full_name": "Marie"})
        self.raw.auth.get_user.return_value = MagicMock(user=user)

        found = await self.db.get_auth_user("jwt")

        assert found == {"id": "u1", "email": "marie@studio.fr", "user_metadata": {"full_name": "Marie"}}

    @pytest.mark.asyncio
    async def test_auth_failure_is_none(self):
        """An auth error means no user."""
        self.raw.auth.get_user.side_effect = RuntimeError("invalid JWT")
        assert await self.db.get_auth_user("jwt") is None


class TestIdentityProvider:
    """Tests for IdentityProvider."""

    @pytest.mark.asyncio
    async def test_resolves_user(self):
        """The configured token resolves to an Identity."""
        db = MagicMock()
        db.get_auth_user = AsyncMock(return_value={
            "id": "u1", "email": "marie@studio.fr", "user_metadata": {},
        })

        identity = await IdentityProvider(db, access_token="jwt").current_user()

        assert identity.id == "u1"
        assert identity.display_name == "marie"
        db.get_auth_user.assert_awaited_once_with("jwt")

    @pytest.mark.asyncio
    async def test_no_token_no_user(self):
        """Without a token nobody is authenticated."""
        db = MagicMock()
        db.get_auth_user = AsyncMock()

        assert await IdentityProvider(db, access_token="").current_user() is None
        db.get_auth_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_static_provider(self):
        """StaticIdentityProvider returns what it was given."""
        assert await StaticIdentityProvider(None).current_user() is None


class TestNotificationService:
    """Tests for Resend emails."""

    def _service(self, handler, **overrides):
        settings = Settings(_env_file=None, resend_api_key="re_key", **overrides)
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return NotificationService(settings, http_client=client)

    @pytest.mark.asyncio
    async def test_sent(self):
        """A 200 from Resend is a sent email."""
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"id": "re_123"})

        service = self._service(handler, resend_reply_to="contact@studio.fr")
        record = await service.send_email("ana@acme.com", "Rappel", "<p>Hi</p>", from_name="Marie")

        assert record.sent
        assert record.provider_id == "re_123"
        assert seen["body"]["from"] == "Marie <noreply@taskelio.app>"
        assert seen["body"]["to"] == ["ana@acme.com"]
        assert seen["body"]["reply_to"] == "contact@studio.fr"
        assert seen["auth"] == "Bearer re_key"

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        """A non-2xx status is a failed email."""
        service = self._service(lambda request: httpx.Response(422, text="invalid from"))
        record = await service.send_email("ana@acme.com", "s", "h")

        assert record.status is NotificationStatus.FAILED
        assert "422" in record.error
        assert service.stats["total_failed"] == 1

    @pytest.mark.asyncio
    async def test_network_error(self):
        """Transport errors are captured."""
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        record = await self._service(handler).send_email("ana@acme.com", "s", "h")
        assert record.status is NotificationStatus.FAILED
        assert "ConnectError" in record.error

    @pytest.mark.asyncio
    async def test_not_configured_is_skipped(self):
        """Without an API key nothing is sent."""
        service = NotificationService(Settings(_env_file=None))
        record = await service.send_email("ana@acme.com", "s", "h")

        assert record.status is NotificationStatus.SKIPPED
        assert service.get_history()[0]["status"] == "skipped"


def openai_sdk(*answers):
    """OpenAI-shaped client whose completions return (or raise) `answers` in order."""
    results = [
        answer if isinstance(answer, Exception) else SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=answer))],
            usage=SimpleNamespace(prompt_tokens=100, completion_tokens=50),
        )
        for answer in answers
    ]
    sdk = MagicMock()
    sdk.chat.completions.create = AsyncMock(side_effect=results)
    return sdk


def claude_sdk(text):
    sdk = MagicMock()
    sdk.messages.create = AsyncMock(return_value=SimpleNamespace(
        content=[SimpleNamespace(text=text)],
        usage=SimpleNamespace(input_tokens=10, output_tokens=5),
    ))
    return sdk


class TestLLMClient:
    """Tests for LLMClient with injected SDK clients."""

    def setup_method(self):
        self.settings = Settings(_env_file=None, llm_max_retries=2, llm_retry_delay_seconds=0)

    @pytest.mark.asyncio
    async def test_structured_call(self):
        """JSON instruction is appended and usage is accounted."""
        sdk = openai_sdk('{"ok": true}')
        client = LLMClient(self.settings, clients={LLMProvider.OPENAI: sdk})

        result = await client.complete_structured("Analyse", system="Expert")

        assert result.success is True
        assert result.content == '{"ok": true}'
        assert result.total_tokens == 150
        assert result.cost_usd > 0
        kwargs = sdk.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["temperature"] == 0.1
        assert kwargs["messages"][0]["role"] == "system"
        assert "Réponds UNIQUEMENT en JSON valide" in kwargs["messages"][0]["content"]
        assert client.stats["total_calls"] == 1

    @pytest.mark.asyncio
    async def test_not_configured(self):
        """Without any provider the call fails without raising."""
        client = LLMClient(self.settings, clients={})

        result = await client.complete("Bonjour")

        assert result.success is False
        assert result.error == "Aucun fournisseur IA configuré"
        assert client.is_configured is False

    @pytest.mark.asyncio
    async def test_retry_then_success(self):
        """A transient error is retried."""
        sdk = openai_sdk(RuntimeError("timeout"), "ok")
        client = LLMClient(self.settings, clients={LLMProvider.OPENAI: sdk})

        result = await client.complete("Bonjour")

        assert result.success is True
        assert sdk.chat.completions.create.await_count == 2

    @pytest.mark.asyncio
    async def test_fallback_to_other_provider(self):
        """When the default provider keeps failing, the next one answers."""
        failing = openai_sdk(RuntimeError("down"), RuntimeError("down"))
        client = LLMClient(
            self.settings,
            clients={LLMProvider.OPENAI: failing, LLMProvider.CLAUDE: claude_sdk("réponse")},
        )

        result = await client.complete("Bonjour", system="Expert")

        assert result.success is True
        assert result.provider is LLMProvider.CLAUDE
        assert result.content == "réponse"
        assert client._clients[LLMProvider.CLAUDE].messages.create.await_args.kwargs["system"] == "Expert"

    @pytest.mark.asyncio
    async def test_exhausted_retries(self):
        """Every attempt failing yields a failed response with the last error."""
        sdk = openai_sdk(RuntimeError("down"), RuntimeError("still down"))
        client = LLMClient(self.settings, clients={LLMProvider.OPENAI: sdk})

        result = await client.complete("Bonjour", fallback=False)

        assert result.success is False
        assert "Échec après 2 tentative(s)" in result.error
        assert "still down" in result.error


class TestResponseParser:
    """Tests for ResponseParser."""

    def setup_method(self):
        self.parser = ResponseParser()

    def test_code_block(self):
        """JSON inside a markdown block is extracted."""
        assert self.parser.extract_json('Voici :\n```json\n{"a": 1}\n```') == {"a": 1}

    def test_surrounding_text_and_trailing_comma(self):
        """The first balanced object is used, trailing commas tolerated."""
        assert self.parser.extract_json('Résultat {"a": [1, 2,], "b": 2,} fin') == {"a": [1, 2], "b": 2}

    def test_no_json(self):
        """Plain text raises ParseError with the raw content."""
        with pytest.raises(ParseError) as exc:
            self.parser.extract_json("pas de json")
        assert exc.value.raw_content == "pas de json"

    def test_parse_as_requires_object(self):
        """A JSON array cannot become a model."""
        from models.ai import SentimentAnalysis

        with pytest.raises(ParseError):
            self.parser.parse_as("[1, 2]", SentimentAnalysis)

    def test_parse_as_rejects_invalid_values(self):
        """Out-of-schema values are a ParseError, not a ValidationError."""
        from models.ai import SentimentAnalysis

        with pytest.raises(ParseError, match="SentimentAnalysis"):
            self.parser.parse_as('{"sentiment": "furious"}', SentimentAnalysis)

    def test_parse_as_normalizes_labels(self):
        """Labels are case-insensitive and missing fields use defaults."""
        from models.ai import SentimentAnalysis

        analysis = self.parser.parse_as('{"sentiment": "Negative", "action_required": true}', SentimentAnalysis)
        assert analysis.sentiment == "negative"
        assert analysis.needs_follow_up is True
        assert analysis.summary == "Analyse non disponible"
