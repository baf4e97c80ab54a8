"""
Tests for ui/cli.py - command dispatch end to end.

The daemon process and its HTTP API are simulated: Popen is mocked and
requests are answered by a fake echo-mcp daemon, while the config,
registry and output directory are real files.
"""

import base64
import json
import os
import shutil
import signal
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests
from typer.testing import CliRunner

from mcpskill.daemon.registry import Session, SessionRegistry
from mcpskill.ui.cli import app

DEAD_PID = 999_999_999
TOOLS = {"tools": [{"name": "echo", "description": "Echo text back"}]}


def _response(status_code, body):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    response.text = json.dumps(body)
    return response


class FakeDaemon:
    """Answers control-plane requests the way a connected daemon would."""

    def __init__(self, connected=True):
        self.connected = connected
        self.requests = []

    def __call__(self, method, url, json=None, timeout=None):
        self.requests.append((method, url, json))
        path = url.split("/", 3)[3]

        if path == "status":
            return _response(200, {
                "connected": self.connected,
                "lastError": None if self.connected else "spawn echo-mcp ENOENT",
                "server": "echo-mcp",
                "session": "dev",
            })
        if not self.connected:
            return _response(503, {"error": "Not connected to MCP server"})
        if path == "tools":
            return _response(200, TOOLS)
        if path == "call" and json["tool"] == "echo":
            return _response(200, {"content": [{"type": "text", "text": json["arguments"]["text"]}]})
        if path == "call" and json["tool"] == "screenshot":
            data = base64.b64encode(b"\x89PNG").decode()
            return _response(200, {"content": [{"type": "image", "data": data, "mimeType": "image/png"}]})
        if path == "call" and json["tool"] == "corrupt":
            return _response(200, {"content": [{"type": "image", "data": "abc", "mimeType": "image/png"}]})
        if path == "call" and json["tool"] == "fail":
            return _response(200, {"isError": True, "content": [{"type": "text", "text": "nope"}]})
        return _response(500, {"error": f"Unknown tool: {json['tool']}"})


class TestCli(unittest.TestCase):

    def setUp(self):
        self.runner = CliRunner()
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = Path(self.temp_dir) / "config.json"
        self.config_path.write_text(json.dumps({
            "name": "echo-mcp",
            "transport": "stdio",
            "command": "echo-mcp",
        }))
        self.state_dir = self.config_path.resolve().parent / ".mcp-client"
        self.registry = SessionRegistry(self.state_dir / "sessions.json")

        self.daemon = FakeDaemon()
        request_patcher = patch("mcpskill.daemon.client.requests.request", side_effect=self.daemon)
        self.mock_request = request_patcher.start()
        self.addCleanup(request_patcher.stop)

        popen_patcher = patch("mcpskill.daemon.supervisor.subprocess.Popen")
        self.mock_popen = popen_patcher.start()
        self.mock_popen.return_value.pid = os.getpid()
        self.addCleanup(popen_patcher.stop)

        sleep_patcher = patch("mcpskill.daemon.supervisor.time.sleep")
        sleep_patcher.start()
        self.addCleanup(sleep_patcher.stop)

        port_patcher = patch(
            "mcpskill.daemon.supervisor.find_free_port",
            side_effect=lambda registry, start: start,
        )
        port_patcher.start()
        self.addCleanup(port_patcher.stop)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def invoke(self, *args):
        return self.runner.invoke(app, ["--config", str(self.config_path), *args])

    def test_full_session_lifecycle(self):
        result = self.invoke("start", "dev")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Daemon started", result.output)
        self.assertIn("Server: echo-mcp", result.output)

        session = self.registry.get("dev")
        self.assertEqual(session.port, 8940)
        self.assertEqual(session.pid, os.getpid())

        result = self.invoke("tools", "--session", "dev", "--format", "json")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(json.loads(result.output), TOOLS)

        result = self.invoke("call", "echo", "text=hello", "--session", "dev")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(result.output, "hello\n")

        with patch("mcpskill.daemon.supervisor.os.kill") as mock_kill:
            result = self.invoke("stop", "dev")
        self.assertEqual(result.exit_code, 0, result.output)
        mock_kill.assert_called_once_with(os.getpid(), signal.SIGTERM)
        self.assertIsNone(self.registry.get("dev"))

    def test_start_twice_does_not_respawn(self):
        self.invoke("start", "dev")
        result = self.invoke("start", "dev", "--port", "9100")

        self.assertEqual(result.exit_code, 0)
        self.assertIn("already running", result.output)
        self.assertEqual(self.mock_popen.call_count, 1)
        self.assertEqual(self.registry.get("dev").port, 8940)

    def test_start_failure_exits_non_zero(self):
        self.mock_request.side_effect = requests.ConnectionError("refused")

        result = self.invoke("start", "dev")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Failed to start daemon", result.output)
        self.assertIsNone(self.registry.get("dev"))

    def test_call_without_session_makes_no_request(self):
        result = self.invoke("call", "echo", "text=hello")

        self.assertEqual(result.exit_code, 1)
        self.assertIn("not running", result.output)
        self.mock_request.assert_not_called()

    def test_tools_without_session(self):
        result = self.invoke("tools")
        self.assertEqual(result.exit_code, 1)
        self.mock_request.assert_not_called()

    def test_tools_auto_format(self):
        self.registry.set(Session.new("default", os.getpid(), 8940))

        result = self.invoke("tools")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertTrue(result.output.startswith("echo"))
        self.assertIn("Echo text back", result.output)

    def test_call_saves_image_to_output_dir(self):
        self.registry.set(Session.new("default", os.getpid(), 8940))
        output_dir = Path(self.temp_dir) / "shots"

        result = self.invoke("call", "screenshot", "--output-dir", str(output_dir))
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("[Image saved:", result.output)

        saved = list(output_dir.glob("image-*.png"))
        self.assertEqual(len(saved), 1)
        self.assertEqual(saved[0].read_bytes(), b"\x89PNG")

    def test_call_defaults_to_session_output_dir(self):
        self.registry.set(Session.new("default", os.getpid(), 8940))

        result = self.invoke("call", "screenshot")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(len(list((self.state_dir / "output" / "default").glob("*.png"))), 1)

    def test_call_undecodable_image_exits_non_zero(self):
        self.registry.set(Session.new("default", os.getpid(), 8940))

        result = self.invoke("call", "corrupt", "--output-dir", str(Path(self.temp_dir) / "shots"))
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Could not save tool output", result.output)

    def test_call_unwritable_output_dir_exits_non_zero(self):
        self.registry.set(Session.new("default", os.getpid(), 8940))
        blocker = Path(self.temp_dir) / "not-a-dir"
        blocker.write_text("")

        result = self.invoke("call", "screenshot", "--output-dir", str(blocker))
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Could not save tool output", result.output)

    def test_call_tool_error_is_prefixed(self):
        self.registry.set(Session.new("default", os.getpid(), 8940))

        result = self.invoke("call", "fail")
        self.assertEqual(result.output, "[Error] nope\n")

    def test_call_json_arguments(self):
        self.registry.set(Session.new("default", os.getpid(), 8940))

        result = self.invoke("call", "echo", "text=hi", "count=3", "--format", "json")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(
            self.mock_request.call_args.kwargs["json"],
            {"tool": "echo", "arguments": {"text": "hi", "count": 3}},
        )
        self.assertEqual(json.loads(result.output)["content"][0]["text"], "hi")

    def test_call_malformed_argument(self):
        self.registry.set(Session.new("default", os.getpid(), 8940))

        result = self.invoke("call", "echo", "hello")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("expected key=value", result.output)

    def test_call_server_failure_exits_non_zero(self):
        self.registry.set(Session.new("default", os.getpid(), 8940))

        result = self.invoke("call", "missing")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Unknown tool: missing", result.output)

    def test_call_unconnected_daemon(self):
        self.daemon.connected = False
        self.registry.set(Session.new("default", os.getpid(), 8940))

        result = self.invoke("call", "echo", "text=x")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Not connected to MCP server", result.output)

    def test_status_three_states(self):
        result = self.invoke("status", "dev")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("Daemon not running", result.output)

        self.registry.set(Session.new("dev", os.getpid(), 8940))
        result = self.invoke("status", "dev")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Daemon running", result.output)
        self.assertIn("Connected: true", result.output)

        self.mock_request.side_effect = requests.ConnectionError("refused")
        result = self.invoke("status", "dev")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Daemon not responding", result.output)

    def test_status_json_shows_last_error(self):
        self.daemon.connected = False
        self.registry.set(Session.new("dev", os.getpid(), 8940))

        result = self.invoke("status", "dev", "--format", "json")
        payload = json.loads(result.output)
        self.assertEqual(payload["state"], "running")
        self.assertEqual(payload["daemon"]["lastError"], "spawn echo-mcp ENOENT")

    def test_stop_never_started(self):
        result = self.invoke("stop", "dev")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("Daemon not running", result.output)

    def test_sessions_listing(self):
        self.registry.set(Session.new("alive", os.getpid(), 8940))
        self.registry.set(Session.new("dead", DEAD_PID, 8941))

        result = self.invoke("sessions", "--format", "json")
        self.assertEqual(result.exit_code, 0, result.output)
        entries = {entry["name"]: entry["alive"] for entry in json.loads(result.output)}
        self.assertEqual(entries, {"alive": True, "dead": False})

        result = self.invoke("sessions")
        self.assertIn("alive", result.output)
        self.assertIn("dead", result.output)

    def test_missing_config_exits_non_zero(self):
        with patch.dict(os.environ, {}, clear=True):
            result = self.runner.invoke(app, ["status"])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("--config is required", result.output)

    def test_unknown_command(self):
        result = self.invoke("explode")
        self.assertNotEqual(result.exit_code, 0)


if __name__ == "__main__":
    unittest.main()
