from __future__ import annotations

import os
import threading
import time
import unittest
from typing import Any

from fastapi.testclient import TestClient

from remotec.api import create_app
from remotec.config import Settings
from remotec.service_container import Services, build_services
from remotec.types import ExecStatus

RESULT_FIELDS = {"exec_id", "status", "command", "message", "exec_time", "exec_second", "output"}


def _services(command: str = "echo hello", **overrides: Any) -> Services:
    fields: dict[str, Any] = {
        "command": command,
        "port": 8080,
        "endpoint": "run",
        "poll_interval": 0.05,
        "kill_grace_seconds": 1.0,
    }
    fields.update(overrides)
    return build_services(Settings(**fields))


@unittest.skipUnless(os.name == "posix", "api tests use sh")
class TriggerEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        self.services = _services()
        self._client_cm = TestClient(create_app(self.services))
        self.client = self._client_cm.__enter__()

    def tearDown(self) -> None:
        self._client_cm.__exit__(None, None, None)

    def test_single_run_returns_completed_result(self) -> None:
        response = self.client.get("/run")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.headers["content-type"].startswith("application/json"))
        body = response.json()
        self.assertEqual(set(body), RESULT_FIELDS)
        self.assertEqual(body["status"], ExecStatus.COMPLETED)
        self.assertEqual(body["command"], "echo hello")
        self.assertEqual(body["output"], "hello\n")
        self.assertRegex(body["exec_id"], r"^[0-9a-f]{16}$")
        self.assertEqual(len(self.services.registry), 0)

    def test_unknown_action_runs_once(self) -> None:
        body = self.client.get("/run", params={"action": "bogus"}).json()
        self.assertEqual(body["status"], ExecStatus.COMPLETED)
        self.assertEqual(body["output"], "hello\n")

    def test_multiple_via_query_string(self) -> None:
        body = self.client.get("/run", params={"action": "multiple", "count": "3"}).json()
        self.assertEqual(body["status"], ExecStatus.COMPLETED)
        self.assertEqual(body["message"], "executed 3 times")
        self.assertEqual(body["output"], "hello\n")

    def test_multiple_via_json_body(self) -> None:
        response = self.client.post("/run", json={"action": "multiple", "count": 2, "delay": 0})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["message"], "executed 2 times")

    def test_delay_above_wait_limit_is_rejected(self) -> None:
        response = self.client.get("/run", params={"action": "multiple", "count": "2", "delay": "10000000000"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("delay", response.json()["error"])
        self.assertEqual(len(self.services.registry), 0)

    def test_multiple_waits_delay_between_runs(self) -> None:
        started = time.monotonic()
        response = self.client.get("/run", params={"action": "multiple", "count": "2", "delay": "1"})
        elapsed = time.monotonic() - started

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], ExecStatus.COMPLETED)
        self.assertEqual(response.json()["message"], "executed 2 times")
        self.assertGreaterEqual(elapsed, 0.9)

    def test_non_integer_count_is_rejected(self) -> None:
        response = self.client.get("/run", params={"action": "multiple", "count": "many"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("count", response.json()["error"])

    def test_non_object_json_body_is_rejected(self) -> None:
        response = self.client.post("/run", json=[1, 2])
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "request body must be a JSON object"})

    def test_stop_requires_exec_id(self) -> None:
        response = self.client.get("/run", params={"action": "stop"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "missing exec_id parameter"})

    def test_stop_unknown_exec_id(self) -> None:
        response = self.client.get("/run", params={"action": "stop", "exec_id": "deadbeefdeadbeef"})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "invalid exec_id"})

    def test_unsupported_method(self) -> None:
        response = self.client.put("/run")
        self.assertEqual(response.status_code, 405)
        self.assertEqual(response.json(), {"error": "method not allowed"})

    def test_unknown_path(self) -> None:
        response = self.client.get("/elsewhere")
        self.assertEqual(response.status_code, 404)
        self.assertIn("error", response.json())

    def test_stop_all_with_nothing_running(self) -> None:
        body = self.client.get("/run", params={"action": "stopAll"}).json()
        self.assertEqual(body["status"], ExecStatus.STOPPED_ALL)
        self.assertEqual(body["message"], "stopped 0 executions")

    def test_health(self) -> None:
        self.assertEqual(self.client.get("/health").json(), {"ok": True})


@unittest.skipUnless(os.name == "posix", "api tests use sh")
class LoopEndpointTests(unittest.TestCase):
    def test_loop_start_and_stop(self) -> None:
        services = _services("sleep 10")
        with TestClient(create_app(services)) as client:
            started = time.monotonic()
            ack = client.get("/run", params={"action": "loop", "delay": "5"})
            self.assertLess(time.monotonic() - started, 3)
            self.assertEqual(ack.status_code, 200)
            exec_id = ack.json()["exec_id"]
            self.assertEqual(ack.json()["status"], ExecStatus.STARTED)
            self.assertIn(exec_id, services.registry)

            stop = client.get("/run", params={"action": "stop", "exec_id": exec_id})
            self.assertEqual(stop.status_code, 200)
            self.assertEqual(stop.json()["status"], ExecStatus.STOPPED)
            self.assertEqual(stop.json()["exec_id"], exec_id)

            again = client.get("/run", params={"action": "stop", "exec_id": exec_id})
            self.assertEqual(again.status_code, 404)

        services.orchestrator.join_loops(timeout=5)
        self.assertEqual(len(services.registry), 0)

    def test_stop_all_stops_running_loops(self) -> None:
        services = _services("sleep 10")
        with TestClient(create_app(services)) as client:
            first = client.get("/run", params={"action": "loop"}).json()["exec_id"]
            client.get("/run", params={"action": "loop"})

            body = client.post("/run", json={"action": "stopAll"}).json()
            self.assertEqual(body["message"], "stopped 2 executions")
            self.assertEqual(client.get("/run", params={"action": "stop", "exec_id": first}).status_code, 404)

    def test_loop_waits_delay_between_runs(self) -> None:
        services = _services("echo tick")
        with TestClient(create_app(services)) as client:
            with self.assertLogs("remotec.results", level="INFO") as captured:
                ack = client.get("/run", params={"action": "loop", "delay": "1"}).json()
                self.assertEqual(ack["status"], ExecStatus.STARTED)
                self.assertIn("1s", ack["message"])
                time.sleep(0.5)
                client.get("/run", params={"action": "stop", "exec_id": ack["exec_id"]})
                services.orchestrator.join_loops(timeout=5)

        self.assertEqual(len(captured.records), 1)
        self.assertEqual(len(services.registry), 0)

    def test_loop_and_stop_all_answer_while_many_runs_block(self) -> None:
        services = _services("sleep 10")
        blocking = 40
        responses: list[Any] = []
        lock = threading.Lock()

        with TestClient(create_app(services)) as client:
            def run_once() -> None:
                response = client.get("/run")
                with lock:
                    responses.append(response)

            threads = [threading.Thread(target=run_once) for _ in range(blocking)]
            for thread in threads:
                thread.start()
            deadline = time.monotonic() + 10
            while len(services.registry) < blocking and time.monotonic() < deadline:
                time.sleep(0.05)
            self.assertEqual(len(services.registry), blocking)

            started = time.monotonic()
            ack = client.get("/run", params={"action": "loop"})
            self.assertLess(time.monotonic() - started, 2.0)
            self.assertEqual(ack.json()["status"], ExecStatus.STARTED)

            stop_all = client.get("/run", params={"action": "stopAll"})
            self.assertEqual(stop_all.status_code, 200)
            self.assertEqual(stop_all.json()["message"], f"stopped {blocking + 1} executions")

            for thread in threads:
                thread.join(15)
            services.orchestrator.join_loops(timeout=5)

        self.assertEqual(len(responses), blocking)
        self.assertTrue(all(response.json()["message"] == "cancelled" for response in responses))
        self.assertEqual(len(services.registry), 0)

    def test_execution_limit_returns_429(self) -> None:
        services = _services("sleep 10", max_executions=1)
        with TestClient(create_app(services)) as client:
            self.assertEqual(client.get("/run", params={"action": "loop"}).status_code, 200)
            response = client.get("/run", params={"action": "loop"})
            self.assertEqual(response.status_code, 429)
            self.assertIn("too many active executions", response.json()["error"])


@unittest.skipUnless(os.name == "posix", "api tests use sh")
class AuthTests(unittest.TestCase):
    def setUp(self) -> None:
        self.services = _services(token="s3cret")
        self.client = TestClient(create_app(self.services))

    def test_missing_token_is_forbidden(self) -> None:
        response = self.client.get("/run")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json(), {"error": "unauthorized"})

    def test_wrong_token_is_forbidden(self) -> None:
        response = self.client.get("/run", headers={"Authorization": "Bearer nope"})
        self.assertEqual(response.status_code, 403)

    def test_bearer_token_is_accepted(self) -> None:
        response = self.client.get("/run", headers={"Authorization": "Bearer s3cret"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], ExecStatus.COMPLETED)

    def test_failed_auth_log_omits_header_value(self) -> None:
        with self.assertLogs("remotec.api", level="WARNING") as captured:
            self.client.get("/run", headers={"Authorization": "Bearer leaked-value"})

        logged = "\n".join(captured.output)
        self.assertNotIn("leaked-value", logged)
        self.assertIn("present=True", logged)

    def test_stop_also_requires_token(self) -> None:
        response = self.client.get("/run", params={"action": "stopAll"})
        self.assertEqual(response.status_code, 403)


if __name__ == "__main__":
    unittest.main()
