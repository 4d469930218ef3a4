"""
Unit Tests for the Violation Transport and Local Fallback Store
"""
import json

import httpx
import pytest


def make_violation(kind="TAB_SWITCH", severity="HIGH", count=1, attempt_id="t-1"):
    from proctoring.violations import Violation, ViolationSeverity, ViolationType

    return Violation(
        assessment_id="a-1",
        attempt_id=attempt_id,
        type=ViolationType(kind),
        severity=ViolationSeverity(severity),
        count=count,
        details={"event": "test"},
    )


def make_transport(handler):
    from proctoring.delivery import ViolationTransport

    client = httpx.AsyncClient(
        base_url="http://server/api",
        transport=httpx.MockTransport(handler)
    )
    return ViolationTransport(base_url="http://server/api", client=client)


class TestViolationTransport:
    """Tests for HTTP delivery"""

    @pytest.mark.asyncio
    async def test_send_batch(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"success": True})

        transport = make_transport(handler)
        violations = [make_violation(), make_violation("COPY_PASTE", "MEDIUM")]

        assert await transport.send_batch("a-1", "t-1", violations) is True

        request = requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/assessments/a-1/attempts/t-1/violations/batch"
        body = json.loads(request.content)
        assert [v["type"] for v in body["violations"]] == ["TAB_SWITCH", "COPY_PASTE"]
        assert set(body["violations"][0]) == {"type", "timestamp", "details", "severity", "count"}

    @pytest.mark.asyncio
    async def test_empty_batch_skips_request(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200)

        transport = make_transport(handler)

        assert await transport.send_batch("a-1", "t-1", []) is True
        assert requests == []

    @pytest.mark.asyncio
    async def test_send_batch_server_error(self):
        transport = make_transport(lambda request: httpx.Response(500))

        assert await transport.send_batch("a-1", "t-1", [make_violation()]) is False

    @pytest.mark.asyncio
    async def test_send_batch_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport = make_transport(handler)

        assert await transport.send_batch("a-1", "t-1", [make_violation()]) is False

    @pytest.mark.asyncio
    async def test_send_immediate_uses_violation_ids(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(201)

        transport = make_transport(handler)
        violation = make_violation("DEVTOOLS_OPEN", "CRITICAL", attempt_id="t-9")

        assert await transport.send_immediate(violation) is True
        assert requests[0].url.path == "/api/assessments/a-1/attempts/t-9/violations"
        assert json.loads(requests[0].content)["severity"] == "CRITICAL"

    @pytest.mark.asyncio
    async def test_log_face_comparison(self):
        transport = make_transport(lambda request: httpx.Response(200, json={"logged": True}))

        result = await transport.log_face_comparison("t-1", {"matched": True, "matchScore": 0.3})

        assert result == {"logged": True}

    @pytest.mark.asyncio
    async def test_log_face_comparison_failure(self):
        transport = make_transport(lambda request: httpx.Response(503))

        assert await transport.log_face_comparison("t-1", {"matched": False}) is None

    @pytest.mark.asyncio
    async def test_get_reference_descriptor(self):
        def handler(request):
            assert request.url.path == "/api/identity-verification/t-1/descriptor"
            return httpx.Response(200, json={"data": {"descriptor": [0.1, 0.2]}})

        transport = make_transport(handler)

        assert await transport.get_reference_descriptor("t-1") == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_get_reference_descriptor_missing(self):
        transport = make_transport(lambda request: httpx.Response(200, json={"data": {}}))

        assert await transport.get_reference_descriptor("t-1") is None

    @pytest.mark.asyncio
    async def test_bearer_token(self):
        from proctoring.delivery import ViolationTransport

        transport = ViolationTransport(base_url="http://server/api", token="secret")
        assert transport.client.headers["Authorization"] == "Bearer secret"
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self):
        transport = make_transport(lambda request: httpx.Response(200))
        client = transport.client

        await transport.aclose()

        assert client.is_closed is False
        await client.aclose()


class TestLocalFallbackStore:
    """Tests for on-device persistence"""

    def test_key_and_path(self, fallback_store):
        assert fallback_store.key_for("t-1") == "violations_t-1"
        assert fallback_store.path_for("t-1").name == "violations_t-1.json"

    def test_append_only(self, fallback_store):
        first = make_violation()
        second = make_violation("PAGE_BLUR", count=2)

        assert fallback_store.append("t-1", first) is True
        assert fallback_store.extend("t-1", [second]) is True

        records = fallback_store.load("t-1")
        assert [r["id"] for r in records] == [first.id, second.id]
        assert records[0]["attemptId"] == "t-1"
        assert records[1]["type"] == "PAGE_BLUR"

    def test_attempts_are_separate(self, fallback_store):
        fallback_store.append("t-1", make_violation())
        fallback_store.append("t-2", make_violation(attempt_id="t-2"))

        assert len(fallback_store.load("t-1")) == 1
        assert len(fallback_store.load("t-2")) == 1

    def test_load_missing_attempt(self, fallback_store):
        assert fallback_store.load("unknown") == []

    def test_write_failure_is_swallowed(self, tmp_path):
        from proctoring.delivery import LocalFallbackStore

        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file")
        store = LocalFallbackStore(blocker)

        assert store.append("t-1", make_violation()) is False

    def test_corrupt_file_is_set_aside(self, fallback_store):
        path = fallback_store.path_for("t-1")
        path.parent.mkdir(parents=True)
        path.write_text('{"not": "a list"}')

        first = make_violation()
        second = make_violation(count=2)

        assert fallback_store.append("t-1", first) is True
        assert fallback_store.append("t-1", second) is True

        assert [r["id"] for r in fallback_store.load("t-1")] == [first.id, second.id]
        corrupt = path.with_name("violations_t-1.json.corrupt")
        assert corrupt.read_text() == '{"not": "a list"}'

    def test_unparseable_file_is_set_aside(self, fallback_store):
        path = fallback_store.path_for("t-1")
        path.parent.mkdir(parents=True)
        path.write_text("[{truncated")

        assert fallback_store.append("t-1", make_violation()) is True
        assert len(fallback_store.load("t-1")) == 1
