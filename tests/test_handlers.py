"""Tests for the predict/run relay handlers

Run with pytest from project root:
    pytest tests/test_handlers.py -v
"""

import asyncio
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from unittest.mock import MagicMock, patch

from conftest import FakeClient, make_response, route_session
from errors import ReplicateError, ReplicateModelError
from replicate_client import ReplicateClient
from handlers.helpers import color, prefix, remove_ansi, ssam_log, ssam_warn
from handlers.replicate import (
    PREDICT_REQUEST,
    PREDICT_RESULT,
    RUN_REQUEST,
    RUN_RESULT,
    handle_predict,
    handle_run,
    register_replicate_handlers,
)

EXPORT_NAME = re.compile(r"^\d{4}\.\d{2}\.\d{2}-\d{2}\.\d{2}\.\d{2}-abc123-img1\.png$")


class TestHelpers:
    """Tests for console/client log helpers"""

    def test_remove_ansi(self):
        """Test color codes are stripped"""
        assert remove_ansi(color("hello", "green")) == "hello"
        assert remove_ansi("\x1b[1;33mwarn\x1b[0m plain") == "warn plain"

    def test_prefix(self):
        """Test prefix carries local time and plugin tag"""
        assert re.match(r"^\d{2}:\d{2}:\d{2} \[ssam-replicate\]$", remove_ansi(prefix()))

    def test_log_and_warn_events(self, client):
        """Test log and warn send ANSI-free messages"""
        asyncio.run(ssam_log(color("hi", "gray"), client))
        asyncio.run(ssam_warn("oops", client))
        assert client.sent == [("log", {"msg": "hi"}), ("warning", {"msg": "oops"})]

    def test_client_log_disabled(self, client):
        """Test nothing is sent when client logging is off"""
        asyncio.run(ssam_log("hi", client, False))
        asyncio.run(ssam_warn("oops", client, False))
        assert client.sent == []


class TestDryRun:
    """Tests for dry runs"""

    def test_predict_dry_run_by_default(self, client, options, replicate_client, out_dir):
        """Test a missing dryRun flag never reaches the API"""
        asyncio.run(handle_predict({"version": "v1", "input": {}}, client, replicate_client, options))

        assert client.events == ["log", PREDICT_RESULT]
        assert "Running model.." in client.sent[0][1]["msg"]
        assert client.payloads(PREDICT_RESULT) == [{"output": ["a.png", "b.png"]}]
        assert replicate_client.mock_calls == []
        assert list(out_dir.iterdir()) == []

    def test_run_explicit_dry_run(self, client, options, replicate_client):
        """Test run dry run returns testOutput wrapped in an object"""
        asyncio.run(handle_run({"model": "a/b", "dryRun": True}, client, replicate_client, options))

        assert client.events == ["log", RUN_RESULT]
        assert client.payloads(RUN_RESULT) == [{"output": ["a.png", "b.png"]}]
        replicate_client.run.assert_not_called()

    def test_truthy_string_keeps_dry_run(self, client, options, replicate_client):
        """Test only a literal false disables dry run"""
        asyncio.run(handle_predict({"version": "v1", "dryRun": "false"}, client, replicate_client, options))
        replicate_client.predict.assert_not_called()

    def test_default_test_output(self, client, options, replicate_client):
        """Test the default testOutput is a single empty string"""
        opts = replace(options, test_output=("",))
        asyncio.run(handle_predict({}, client, replicate_client, opts))
        assert client.payloads(PREDICT_RESULT) == [{"output": [""]}]

    def test_directory_is_ensured(self, client, options, replicate_client, out_dir):
        """Test the output directory exists after any request"""
        asyncio.run(handle_run({}, client, replicate_client, options))
        assert out_dir.is_dir()


class TestPredict:
    """Tests for predict requests"""

    def test_success_sends_full_record_and_exports(self, client, options, replicate_client, out_dir):
        """Test success path: log, log, full record, then one export per output"""
        prediction = {
            "id": "abc123",
            "status": "succeeded",
            "output": ["https://host/path/img1.png"],
            "metrics": {"predict_time": 1.2},
        }
        replicate_client.predict.return_value = prediction
        payload = {"version": "v1", "input": {"prompt": "mars", "seed": 7}, "dryRun": False}

        with patch("managers.export_manager.requests.get", return_value=make_response(200, chunks=[b"png"])):
            asyncio.run(handle_predict(payload, client, replicate_client, options))

        replicate_client.predict.assert_called_once_with("v1", {"prompt": "mars", "seed": 7})
        assert client.events == ["log", "log", PREDICT_RESULT, "log"]
        assert "Output generated." in client.sent[1][1]["msg"]
        assert client.payloads(PREDICT_RESULT) == [prediction]

        files = list(out_dir.iterdir())
        assert len(files) == 1
        assert EXPORT_NAME.match(files[0].name)
        assert files[0].read_bytes() == b"png"

    def test_save_output_disabled(self, client, options, replicate_client, out_dir):
        """Test no export when saveOutput is off"""
        replicate_client.predict.return_value = {"id": "abc123", "output": ["https://host/img1.png"]}
        opts = replace(options, save_output=False)

        with patch("managers.export_manager.requests.get") as mock_get:
            asyncio.run(handle_predict({"version": "v1", "dryRun": False}, client, replicate_client, opts))

        mock_get.assert_not_called()
        assert client.events == ["log", "log", PREDICT_RESULT]

    def test_remote_failure_sends_single_warning(self, client, options, replicate_client):
        """Test remote failures send one warning and no result"""
        replicate_client.predict.side_effect = ReplicateModelError("Prediction abc123 failed: out of memory")

        asyncio.run(handle_predict({"version": "v1", "dryRun": False}, client, replicate_client, options))

        assert client.events == ["log", "warning"]
        assert "out of memory" in client.sent[1][1]["msg"]

    def test_invalid_payload(self, client, options, replicate_client):
        """Test a payload that is not an object is logged then answered with a warning"""
        asyncio.run(handle_predict(["nope"], client, replicate_client, options))
        assert client.events == ["log", "warning"]
        assert "Running model.." in client.sent[0][1]["msg"]
        replicate_client.predict.assert_not_called()


class TestRun:
    """Tests for run requests"""

    def test_success_sends_bare_output_and_exports_without_id(self, client, options, replicate_client, out_dir):
        """Test run result is the bare output list and filenames carry no job id"""
        replicate_client.run.return_value = ["https://host/a/out-0.png", "https://host/a/out-1.png"]

        with patch("managers.export_manager.requests.get", return_value=make_response(200, chunks=[b"x"])):
            asyncio.run(handle_run({"model": "owner/name", "input": {}, "dryRun": False}, client, replicate_client, options))

        assert client.payloads(RUN_RESULT) == [["https://host/a/out-0.png", "https://host/a/out-1.png"]]
        assert client.events == ["log", "log", RUN_RESULT, "log", "log"]
        names = sorted(p.name for p in out_dir.iterdir())
        assert all(re.match(r"^\d{4}\.\d{2}\.\d{2}-\d{2}\.\d{2}\.\d{2}-out-\d\.png$", n) for n in names)

    def test_rate_limited(self, client, options, replicate_client):
        """Test a failing run sends one warning, no result and no exports"""
        replicate_client.run.side_effect = ReplicateError("rate limited")

        with patch("managers.export_manager.requests.get") as mock_get:
            asyncio.run(handle_run({"model": "owner/name", "dryRun": False}, client, replicate_client, options))

        assert client.events == ["log", "warning"]
        assert "rate limited" in client.sent[1][1]["msg"]
        mock_get.assert_not_called()

    def test_logging_disabled(self, client, options, replicate_client):
        """Test only results reach the client when log is off"""
        replicate_client.run.return_value = []
        opts = replace(options, log=False)
        asyncio.run(handle_run({"model": "owner/name", "dryRun": False}, client, replicate_client, opts))
        assert client.events == [RUN_RESULT]


class TestConcurrency:
    """Tests for requests from several sketches at once"""

    def test_long_jobs_leave_workers_free(self, options):
        """Test pending predictions do not starve another connection's run"""
        slow_routes = route_session({
            ("POST", "/predictions"): {"id": "slow", "status": "processing"},
            ("GET", "/predictions/slow"): {"id": "slow", "status": "processing"},
        })
        real_request = slow_routes.request.side_effect

        def blocking_request(method, url, **kwargs):
            time.sleep(0.01)
            return real_request(method, url, **kwargs)

        slow_routes.request.side_effect = blocking_request
        slow_remote = ReplicateClient("r8_test", poll_interval=0.01, session_factory=lambda: slow_routes)
        fast_remote = ReplicateClient("r8_test", poll_interval=0.01, session_factory=lambda: route_session({
            ("POST", "/models/owner/name/predictions"): {"id": "fast", "status": "succeeded", "output": []},
        }))
        opts = replace(options, save_output=False)
        other = FakeClient()

        async def scenario():
            asyncio.get_running_loop().set_default_executor(ThreadPoolExecutor(max_workers=4))
            pending = [
                asyncio.create_task(
                    handle_predict({"version": "v1", "dryRun": False}, FakeClient(), slow_remote, opts)
                )
                for _ in range(12)
            ]
            await asyncio.sleep(0.05)
            try:
                await asyncio.wait_for(
                    handle_run({"model": "owner/name", "dryRun": False}, other, fast_remote, opts), timeout=5
                )
                assert not any(task.done() for task in pending)
            finally:
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        asyncio.run(scenario())

        assert other.events == ["log", "log", RUN_RESULT]
        assert other.payloads(RUN_RESULT) == [[]]


class TestRegistration:
    """Tests for handler registration"""

    def test_registers_both_events(self, options, replicate_client):
        """Test predict and run handlers are registered on the channel"""
        channel = MagicMock()
        register_replicate_handlers(channel, replicate_client, options)
        events = [call.args[0] for call in channel.on.call_args_list]
        assert events == [PREDICT_REQUEST, RUN_REQUEST]
