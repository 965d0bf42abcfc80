"""Integration tests for the tool and provider API endpoints."""

from unittest.mock import patch

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_list_tools(async_client: AsyncClient):
    """Test listing the built-in tools."""
    response = await async_client.get("/api/v1/tools")

    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 2

    tools = {tool["name"]: tool for tool in data["tools"]}
    assert set(tools) == {"calculator", "shell_command"}
    assert tools["shell_command"]["provider"] == "local"
    assert tools["shell_command"]["executes_commands"] is True
    assert tools["calculator"]["shadowed"] is False
    assert tools["calculator"]["parameters"]["required"] == ["expression"]


@pytest.mark.asyncio
async def test_list_providers(async_client: AsyncClient):
    """Test listing the connected providers."""
    response = await async_client.get("/api/v1/providers")

    assert response.status_code == 200
    (provider,) = response.json()["providers"]
    assert provider["name"] == "local"
    assert provider["kind"] == "local"
    assert provider["connected"] is True
    assert provider["tools"] == ["calculator", "shell_command"]


@pytest.mark.asyncio
async def test_call_tool(async_client: AsyncClient):
    """Test invoking a tool directly."""
    response = await async_client.post(
        "/api/v1/tools/calculator/call",
        json={"arguments": {"expression": "2 + 3"}},
    )

    assert response.status_code == 200
    assert response.json() == {
        "name": "calculator",
        "ok": True,
        "content": "5.000000",
        "error": None,
    }


@pytest.mark.asyncio
async def test_call_tool_failure_in_body(async_client: AsyncClient):
    """Test that tool-level failures are reported with ok=false."""
    response = await async_client.post(
        "/api/v1/tools/calculator/call",
        json={"arguments": {}},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is False
    assert data["error"] == "missing_parameter"


@pytest.mark.asyncio
async def test_call_tool_policy_rejection(async_client: AsyncClient):
    """Test that direct invocations are checked by the Safety Policy."""
    with patch("toolrelay.tools.local.run_command") as mock_run:
        response = await async_client.post(
            "/api/v1/tools/shell_command/call",
            json={"arguments": {"command": "sudo reboot"}},
        )

    mock_run.assert_not_called()
    data = response.json()
    assert data["ok"] is False
    assert data["error"] == "policy_rejected"


@pytest.mark.asyncio
async def test_call_unknown_tool(async_client: AsyncClient):
    """Test invoking a tool nobody offers."""
    response = await async_client.post("/api/v1/tools/weather/call", json={"arguments": {}})

    assert response.status_code == 404
    data = response.json()
    assert data["detail"]["error"]["code"] == "tool_not_found"
    assert "weather" in data["detail"]["error"]["message"]


@pytest.mark.asyncio
async def test_call_tool_requires_object_arguments(async_client: AsyncClient):
    """Test that the argument payload must be an object."""
    response = await async_client.post(
        "/api/v1/tools/calculator/call",
        json={"arguments": ["2 + 3"]},
    )

    assert response.status_code == 422
