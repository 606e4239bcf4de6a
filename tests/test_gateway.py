"""
Tests for the security gateway — channel whitelist, origins, payloads.
"""

import pytest

from wizardplane.core.errors import Forbidden, InvalidArgument, NotFound
from wizardplane.core.gateway import (
    CHANNELS,
    INVOKE_CHANNELS,
    PUSH_CHANNELS,
    Channel,
    Direction,
    Gateway,
    GatewayPolicy,
)
from wizardplane.core.models.task import TaskProgress
from wizardplane.core.services.event_bus import EventBus

ALLOWED = "app://renderer/index.html"
EVIL = "https://evil.example.com"


# ── Channels ─────────────────────────────────────────────────────────


class TestChannels:
    def test_every_channel_has_a_spec(self):
        assert set(CHANNELS) == set(Channel)

    def test_directions_partition(self):
        assert INVOKE_CHANNELS | PUSH_CHANNELS == set(Channel)
        assert not INVOKE_CHANNELS & PUSH_CHANNELS
        assert Channel.CONFIG_GET in INVOKE_CHANNELS
        assert Channel.STEP_PROGRESS in PUSH_CHANNELS


# ── Policy ───────────────────────────────────────────────────────────


class TestOriginPolicy:
    @pytest.fixture
    def policy(self) -> GatewayPolicy:
        return GatewayPolicy.default([
            "app://renderer/index.html",
            "http://localhost:5173",
        ])

    def test_exact_frame_url(self, policy):
        assert policy.origin_allowed("app://renderer/index.html")
        assert not policy.origin_allowed("app://renderer/other.html")
        assert not policy.origin_allowed("app://renderer/index.html?x=1")

    def test_scheme_host_port_entry(self, policy):
        assert policy.origin_allowed("http://localhost:5173")
        assert policy.origin_allowed("http://localhost:5173/settings")
        assert not policy.origin_allowed("http://localhost:5174")
        assert not policy.origin_allowed("https://localhost:5173")
        assert not policy.origin_allowed("http://localhost.evil.com:5173")

    @pytest.mark.parametrize("origin", [None, "", "null", "localhost:5173", "http://[::1"])
    def test_malformed_or_missing(self, policy, origin):
        assert not policy.origin_allowed(origin)

    def test_invalid_entry_rejected(self):
        with pytest.raises(ValueError):
            GatewayPolicy.default(["no-scheme"])

    def test_frozen(self, policy):
        with pytest.raises(AttributeError):
            policy.allowed_origins = ("anything",)

    def test_push_channel_not_invocable(self, policy):
        assert policy.channel_for("step.progress", Direction.INVOKE) is None
        assert policy.channel_for("step.progress", Direction.PUSH) is Channel.STEP_PROGRESS
        assert policy.channel_for("shell.exec", Direction.INVOKE) is None


# ── Gateway construction ─────────────────────────────────────────────


class TestGatewayConstruction:
    def test_missing_handlers_rejected(self):
        with pytest.raises(ValueError, match="missing"):
            Gateway(GatewayPolicy.default(), {Channel.CONFIG_GET: lambda r: None})

    def test_push_handler_rejected(self):
        handlers = {c: (lambda r: None) for c in INVOKE_CHANNELS}
        handlers[Channel.STEP_PROGRESS] = lambda r: None
        with pytest.raises(ValueError, match="extra"):
            Gateway(GatewayPolicy.default(), handlers)


# ── Invoke through the control plane ─────────────────────────────────


class TestInvoke:
    def test_config_get_allowed_origin(self, control_plane):
        entry = control_plane.gateway.invoke("config.get", ALLOWED, {"id": "network.proxy"})
        assert entry["id"] == "network.proxy"
        assert entry["sourceModule"] == "shared"
        assert entry["value"]["primary"].startswith("https://")

    def test_config_get_disallowed_origin(self, control_plane):
        with pytest.raises(Forbidden) as exc:
            control_plane.gateway.invoke("config.get", EVIL, {"id": "network.proxy"})
        assert exc.value.details["origin"] == EVIL

    def test_config_get_unknown_id(self, control_plane):
        with pytest.raises(NotFound):
            control_plane.gateway.invoke("config.get", ALLOWED, {"id": "does.not.exist"})

    def test_unknown_channel(self, control_plane):
        with pytest.raises(Forbidden) as exc:
            control_plane.gateway.invoke("shell.exec", ALLOWED, {})
        assert exc.value.details == {"channel": "shell.exec"}

    def test_channel_checked_before_origin(self, control_plane):
        with pytest.raises(Forbidden) as exc:
            control_plane.gateway.invoke("shell.exec", EVIL, {})
        assert "channel" in exc.value.message.lower()

    def test_origin_checked_before_payload(self, control_plane):
        with pytest.raises(Forbidden):
            control_plane.gateway.invoke("config.get", EVIL, {"bogus": True})

    def test_push_channel_not_invocable(self, control_plane):
        with pytest.raises(Forbidden):
            control_plane.gateway.invoke("step.progress", ALLOWED, {})

    def test_extra_field_rejected(self, control_plane):
        with pytest.raises(InvalidArgument) as exc:
            control_plane.gateway.invoke("config.get", ALLOWED, {"id": "network.proxy", "x": 1})
        assert exc.value.details["errors"][0]["loc"] == "x"

    def test_missing_field_rejected(self, control_plane):
        with pytest.raises(InvalidArgument):
            control_plane.gateway.invoke("workflow.sync", ALLOWED, {"flowId": "environment"})

    def test_non_object_payload(self, control_plane):
        with pytest.raises(InvalidArgument, match="object"):
            control_plane.gateway.invoke("config.get", ALLOWED, ["network.proxy"])

    def test_env_key_validated_in_schema(self, control_plane):
        with pytest.raises(InvalidArgument):
            control_plane.gateway.invoke("env.set", ALLOWED, {"variables": {"BAD KEY": "v"}})
        with pytest.raises(InvalidArgument):
            control_plane.gateway.invoke("env.set", ALLOWED, {"variables": {"K": "a\nb"}})

    def test_workflow_sync_outdated(self, control_plane):
        reply = control_plane.gateway.invoke(
            "workflow.sync", ALLOWED, {"flowId": "environment", "version": "2024.09.30"},
        )
        assert reply["status"] == "updated"
        assert reply["version"] == "2025.10.02"
        assert reply["flowId"] == "environment"
        assert reply["workflow"]["steps"][0]["stepId"] == "nodejs-install"

    def test_workflow_sync_current(self, control_plane):
        reply = control_plane.gateway.invoke(
            "workflow.sync", ALLOWED, {"flowId": "environment", "version": "2025.10.02"},
        )
        assert reply == {"status": "unchanged", "version": "2025.10.02", "flowId": "environment"}

    def test_workflow_sync_unknown_flow(self, control_plane):
        with pytest.raises(NotFound):
            control_plane.gateway.invoke(
                "workflow.sync", ALLOWED, {"flowId": "nope", "version": "2025.10.02"},
            )

    def test_workflow_list_in_supported_order(self, control_plane):
        data = control_plane.gateway.invoke("workflow.list", ALLOWED)
        assert data["flows"] == ["onboarding", "environment", "cliInstall", "accountLink"]


# ── Emit ─────────────────────────────────────────────────────────────


class TestEmit:
    @pytest.fixture
    def gateway(self) -> Gateway:
        handlers = {c: (lambda r: None) for c in INVOKE_CHANNELS}
        return Gateway(GatewayPolicy.default(), handlers, EventBus())

    def test_emit_model(self, gateway):
        event = gateway.emit("step.progress", TaskProgress(task_id="t1", step_id="s1", percent=40))
        assert event["type"] == "step.progress"
        assert event["key"] == "s1"
        assert event["data"]["percent"] == 40
        assert event["data"]["taskId"] == "t1"

    def test_emit_dict_validated(self, gateway):
        event = gateway.emit("step.progress", {"taskId": "t1", "stepId": "s1", "percent": 5})
        assert event["data"]["stepId"] == "s1"
        with pytest.raises(InvalidArgument):
            gateway.emit("step.progress", {"taskId": "t1", "stepId": "s1", "percent": 500})

    def test_emit_invoke_channel_rejected(self, gateway):
        with pytest.raises(Forbidden):
            gateway.emit("config.get", {"id": "x"})

    def test_emit_without_bus(self):
        handlers = {c: (lambda r: None) for c in INVOKE_CHANNELS}
        gw = Gateway(GatewayPolicy.default(), handlers)
        assert gw.emit("step.progress", TaskProgress(task_id="t", step_id="s", percent=1)) is None
