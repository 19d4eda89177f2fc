from types import SimpleNamespace

import pytest

from turnloop.approval import is_approval_required, record_session_approval
from turnloop.session import SessionSettings
from turnloop.tools import StaticToolPolicy


def _session(permission: str = "tool", policy: dict | None = None, approved: set | None = None):
    return SimpleNamespace(
        settings=SessionSettings(tool_permission=permission),
        policy=StaticToolPolicy.from_dict(policy or {}),
        approved_tools=set(approved or ()),
    )


class TestIsApprovalRequired:
    @pytest.mark.parametrize(("permission", "expected"), [("always", True), ("never", False), ("tool", True)])
    def test_session_permission(self, permission, expected):
        assert is_approval_required(_session(permission), "fs", "readFile") is expected

    def test_session_approval_wins(self):
        session = _session(
            "always",
            policy={"fs": {"permission_required": {"server_default": True, "tools": {"readFile": True}}}},
            approved={("fs", "readFile")},
        )
        assert is_approval_required(session, "fs", "readFile") is False

    def test_tool_override_beats_server_default(self):
        policy = {"fs": {"permission_required": {"server_default": True, "tools": {"readFile": False}}}}
        session = _session("always", policy=policy)
        assert is_approval_required(session, "fs", "readFile") is False
        assert is_approval_required(session, "fs", "writeFile") is True

    def test_server_default_beats_session_permission(self):
        session = _session("never", policy={"fs": {"permission_required": {"server_default": True}}})
        assert is_approval_required(session, "fs", "readFile") is True
        assert is_approval_required(session, "web", "fetch") is False

    def test_approval_is_per_tool(self):
        session = _session(approved={("fs", "readFile")})
        assert is_approval_required(session, "fs", "writeFile") is True
        assert is_approval_required(session, "web", "readFile") is True


class TestRecordSessionApproval:
    def test_idempotent(self):
        session = _session()
        record_session_approval(session, "fs", "readFile")
        record_session_approval(session, "fs", "readFile")
        assert session.approved_tools == {("fs", "readFile")}
        assert is_approval_required(session, "fs", "readFile") is False

    def test_sessions_do_not_share_approvals(self):
        first, second = _session(), _session()
        record_session_approval(first, "fs", "readFile")
        assert is_approval_required(second, "fs", "readFile") is True
