"""Decides whether a tool invocation must wait for a human decision."""

from typing import TYPE_CHECKING

from turnloop.logging import get_logger

if TYPE_CHECKING:
    from turnloop.session import ChatSession

_logger = get_logger(__name__)


def is_approval_required(session: "ChatSession", server_name: str, tool_name: str) -> bool:
    if (server_name, tool_name) in session.approved_tools:
        _logger.info("Tool %s/%s approved for this session, no approval needed", server_name, tool_name)
        return False

    override = session.policy.tool_override(server_name, tool_name)
    if override is not None:
        _logger.info("Tool %s/%s approval required by tool override: %s", server_name, tool_name, override)
        return override

    server_default = session.policy.server_default(server_name)
    if server_default is not None:
        _logger.info("Tool %s/%s approval required by server default: %s", server_name, tool_name, server_default)
        return server_default

    # "tool" defers to per-tool configuration, and there is none at this point
    required = session.settings.tool_permission != "never"
    _logger.info(
        "Tool %s/%s approval required by session permission %s: %s",
        server_name,
        tool_name,
        session.settings.tool_permission,
        required,
    )
    return required


def record_session_approval(session: "ChatSession", server_name: str, tool_name: str) -> None:
    key = (server_name, tool_name)
    if key in session.approved_tools:
        return
    session.approved_tools.add(key)
    _logger.info("Tool %s/%s approved for the rest of the session", server_name, tool_name)
