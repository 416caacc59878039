"""Tests for the httpx-backed session manager over MockTransport."""

from __future__ import annotations

import io
import plistlib

import httpx
import pytest

from RequestKit.Dispatch.api import Dispatcher, MultipartOptions, RequestOptions
from RequestKit.Dispatch.download import ResumeToken, fixed_destination
from RequestKit.Dispatch.errors import DispatchError, DownloadFailure, OperationCancelled
from RequestKit.Dispatch.locators import AddressString
from RequestKit.Dispatch.models import CanonicalRequest, DataBody, FileBody, StreamBody
from RequestKit.Dispatch.net import RESUME_FORMAT, HttpxSessionManager, Operation, ResumeState
from tests.fixtures.http_mocking import RangedResource

pytestmark = pytest.mark.network

BASE = "https://files.example.org"


def _request(path: str = "/", method: str = "GET", **kwargs) -> CanonicalRequest:
    return CanonicalRequest(method, f"{BASE}{path}", **kwargs)


class TestDispatch:
    """Plain requests and uploads."""

    def test_request_returns_response(self, session_manager, http_routes):
        http_routes.register("GET", f"{BASE}/hello", 200, "hi")
        response = session_manager.dispatch(_request("/hello", headers={"X-A": "1"})).result(5)
        assert response.status_code == 200
        assert response.text == "hi"
        assert http_routes.last_request.headers["x-a"] == "1"

    def test_user_agent_from_config(self, session_manager, http_routes):
        http_routes.register("GET", BASE, 200)
        session_manager.dispatch(_request("/")).result(5)
        assert http_routes.last_request.headers["user-agent"] == "RequestKit/Dispatch"

    def test_http_error_status_is_a_response(self, session_manager, http_routes):
        response = session_manager.dispatch(_request("/missing")).result(5)
        assert response.status_code == 404

    def test_unsubmitted_operation_result_fails(self):
        operation = Operation("request", f"{BASE}/")
        assert operation.done() is False
        with pytest.raises(DispatchError, match="never submitted"):
            operation.result()

    def test_transport_error_wrapped(self, dispatch_config):
        def explode(request):
            raise httpx.ConnectError("refused", request=request)

        transport = httpx.MockTransport(explode)
        with HttpxSessionManager(dispatch_config, transport=transport) as manager:
            operation = manager.dispatch(_request("/"))
            with pytest.raises(DispatchError) as excinfo:
                operation.result(5)
        assert isinstance(excinfo.value.__cause__, httpx.ConnectError)

    @pytest.mark.parametrize("kind", ["data", "file", "stream"])
    def test_upload_bodies(self, session_manager, http_routes, tmp_path, kind):
        http_routes.register("POST", f"{BASE}/upload", 201)
        payload = b"upload-payload"
        if kind == "data":
            body = DataBody(payload)
        elif kind == "file":
            path = tmp_path / "body.bin"
            path.write_bytes(payload)
            body = FileBody(path)
        else:
            body = StreamBody(io.BytesIO(payload), len(payload))

        response = session_manager.dispatch_upload(_request("/upload", "POST"), body).result(5)
        assert response.status_code == 201
        sent = http_routes.last_request
        assert sent.content == payload
        assert sent.headers["content-length"] == str(len(payload))

    def test_inline_when_no_workers(self, dispatch_config, http_routes):
        config = dispatch_config.model_copy(
            update={"executor": dispatch_config.executor.model_copy(update={"workers": 0})}
        )
        http_routes.register("GET", BASE, 200, "inline")
        with HttpxSessionManager(config, transport=http_routes.transport) as manager:
            operation = manager.dispatch(_request("/"))
            assert operation.done()
            assert operation.result().text == "inline"


class TestDownloads:
    """Downloads land at the decided destination."""

    def test_download_to_fixed_destination(self, session_manager, http_routes, tmp_path):
        http_routes.register_handler("GET", f"{BASE}/data.bin", RangedResource(b"0123456789"))
        target = tmp_path / "out" / "data.bin"
        result = session_manager.dispatch_download(
            _request("/data.bin"), fixed_destination(target)
        ).result(5)
        assert result.destination == target
        assert target.read_bytes() == b"0123456789"
        assert result.metadata.status_code == 200
        assert list((tmp_path / "dl" / "requestkit" / "downloads").iterdir()) == []

    def test_decision_sees_response_metadata(self, session_manager, http_routes, tmp_path):
        http_routes.register(
            "GET",
            f"{BASE}/export",
            200,
            b"a,b",
            headers={"Content-Disposition": 'attachment; filename="export.csv"'},
        )
        seen = []

        def decide(temporary, metadata):
            seen.append((temporary.read_bytes(), metadata.suggested_filename))
            return tmp_path / metadata.suggested_filename

        result = session_manager.dispatch_download(_request("/export"), decide).result(5)
        assert seen == [(b"a,b", "export.csv")]
        assert result.destination == tmp_path / "export.csv"

    def test_error_status_fails_download(self, session_manager, http_routes, tmp_path):
        http_routes.register("GET", f"{BASE}/gone", 410, b"gone")
        operation = session_manager.dispatch_download(
            _request("/gone"), fixed_destination(tmp_path / "x")
        )
        with pytest.raises(DownloadFailure) as excinfo:
            operation.result(5)
        assert excinfo.value.status_code == 410
        assert not (tmp_path / "x").exists()
        assert list((tmp_path / "dl" / "requestkit" / "downloads").iterdir()) == []

    def test_destination_failure_removes_partial(self, session_manager, http_routes, tmp_path):
        http_routes.register("GET", f"{BASE}/f", 200, b"abc")
        operation = session_manager.dispatch_download(_request("/f"), lambda path, metadata: None)
        with pytest.raises(DownloadFailure):
            operation.result(5)
        assert list((tmp_path / "dl" / "requestkit" / "downloads").iterdir()) == []

    def test_redirect_status_fails_download(
        self, session_manager, http_routes, http_mock, tmp_path
    ):
        moved = http_mock(302, b"moved").with_header("Content-Type", "text/plain")
        http_routes.register_handler("GET", f"{BASE}/moved", lambda request: moved.build())
        target = tmp_path / "moved.bin"
        operation = session_manager.dispatch_download(
            _request("/moved"), fixed_destination(target)
        )
        with pytest.raises(DownloadFailure) as excinfo:
            operation.result(5)
        assert excinfo.value.status_code == 302
        assert not target.exists()
        assert list((tmp_path / "dl" / "requestkit" / "downloads").iterdir()) == []

    def test_raising_decision_is_wrapped(self, session_manager, http_routes, tmp_path):
        http_routes.register("GET", f"{BASE}/f", 200, b"abc")

        def decide(temporary, metadata):
            raise ValueError("bad decision")

        operation = session_manager.dispatch_download(_request("/f"), decide)
        with pytest.raises(DownloadFailure) as excinfo:
            operation.result(5)
        assert isinstance(excinfo.value.__cause__, ValueError)
        assert list((tmp_path / "dl" / "requestkit" / "downloads").iterdir()) == []


class TestResume:
    """Cancel with resume data, then continue with Range/If-Range."""

    PAYLOAD = b"abcdefgh" + b"ijklmnopqrstuvwxyz"

    def _cancel_midway(self, session_manager, http_routes, tmp_path, resource):
        http_routes.register_handler("GET", f"{BASE}/big.bin", resource)
        operation = session_manager.dispatch_download(
            _request("/big.bin"), fixed_destination(tmp_path / "big.bin")
        )
        assert resource.first_chunk_sent.wait(5)
        operation.cancel()
        resource.release.set()
        token = operation.cancel_producing_resume_data(timeout=5)
        with pytest.raises(OperationCancelled) as excinfo:
            operation.result(5)
        return token, excinfo.value

    def test_cancel_then_resume(self, session_manager, http_routes, tmp_path):
        resource = RangedResource(self.PAYLOAD, pause_after=8)
        token, cancelled = self._cancel_midway(session_manager, http_routes, tmp_path, resource)

        assert isinstance(token, ResumeToken)
        assert cancelled.resume_token == token
        state = ResumeState.from_token(token)
        assert state.bytes_received == 8
        assert state.etag == '"v1"'
        assert state.temporary_file.read_bytes() == b"abcdefgh"
        assert plistlib.loads(bytes(token))["format"] == RESUME_FORMAT

        target = tmp_path / "resumed.bin"
        result = session_manager.dispatch_resume(token, fixed_destination(target)).result(5)
        assert target.read_bytes() == self.PAYLOAD
        assert result.metadata.status_code == 206
        assert resource.range_headers[-1] == "bytes=8-"
        assert http_routes.last_request.headers["if-range"] == '"v1"'

    def test_changed_resource_restarts(self, session_manager, http_routes, tmp_path):
        resource = RangedResource(self.PAYLOAD, pause_after=8)
        token, _ = self._cancel_midway(session_manager, http_routes, tmp_path, resource)
        resource.etag = '"v2"'
        resource.payload = b"fresh content"

        target = tmp_path / "resumed.bin"
        result = session_manager.dispatch_resume(token, fixed_destination(target)).result(5)
        assert result.metadata.status_code == 200
        assert target.read_bytes() == b"fresh content"

    def test_no_token_without_range_support(self, session_manager, http_routes, tmp_path):
        resource = RangedResource(self.PAYLOAD, accept_ranges=False, pause_after=8)
        token, cancelled = self._cancel_midway(session_manager, http_routes, tmp_path, resource)
        assert token is None
        assert cancelled.resume_token is None
        assert list((tmp_path / "dl" / "requestkit" / "downloads").iterdir()) == []

    def test_stale_token_rejected_synchronously(self, session_manager, http_routes, tmp_path):
        resource = RangedResource(self.PAYLOAD, pause_after=8)
        token, _ = self._cancel_midway(session_manager, http_routes, tmp_path, resource)
        ResumeState.from_token(token).temporary_file.unlink()
        with pytest.raises(DispatchError, match="stale"):
            session_manager.dispatch_resume(token, fixed_destination(tmp_path / "x"))

    @pytest.mark.parametrize(
        "data",
        [
            b"not a plist",
            plistlib.dumps({"format": "someone.else", "version": 1}),
            plistlib.dumps({"format": RESUME_FORMAT, "version": 99}),
            plistlib.dumps({"format": RESUME_FORMAT, "version": 1, "url": BASE}),
        ],
    )
    def test_foreign_or_corrupt_token(self, session_manager, tmp_path, data):
        with pytest.raises(DispatchError):
            session_manager.dispatch_resume(ResumeToken(data), fixed_destination(tmp_path / "x"))

    def test_cancel_after_completion_returns_no_token(self, session_manager, http_routes, tmp_path):
        http_routes.register("GET", f"{BASE}/small", 200, b"abc")
        operation = session_manager.dispatch_download(
            _request("/small"), fixed_destination(tmp_path / "small")
        )
        operation.result(5)
        assert operation.cancel() is False
        assert operation.cancel_producing_resume_data() is None

    def test_resume_rejects_misaligned_content_range(self, session_manager, http_routes, tmp_path):
        partial = tmp_path / "dl" / "requestkit" / "downloads" / "six.part"
        partial.parent.mkdir(parents=True, exist_ok=True)
        partial.write_bytes(b"abc")
        token = ResumeState(
            url=f"{BASE}/six.bin",
            method="GET",
            headers=[],
            temporary_file=partial,
            bytes_received=3,
            etag='"v1"',
        ).to_token()
        http_routes.register(
            "GET", f"{BASE}/six.bin", 206, b"abcdef", headers={"Content-Range": "bytes 0-5/6"}
        )
        target = tmp_path / "six.bin"
        operation = session_manager.dispatch_resume(token, fixed_destination(target))
        with pytest.raises(DownloadFailure, match="Content-Range"):
            operation.result(5)
        assert http_routes.last_request.headers["range"] == "bytes=3-"
        assert not target.exists()
        assert not partial.exists()


class TestThroughDispatcher:
    """End-to-end through the public facade."""

    def test_query_request(self, session_manager, http_routes, dispatch_config):
        http_routes.register("GET", f"{BASE}/search", 200, {"hits": 1})
        with Dispatcher(session_manager, config=dispatch_config) as dispatcher:
            response = dispatcher.request(
                "GET", AddressString(f"{BASE}/search"), RequestOptions(parameters={"q": "a b"})
            ).result(5)
        assert response.json() == {"hits": 1}
        assert str(http_routes.last_request.url) == f"{BASE}/search?q=a%20b"

    @pytest.mark.parametrize("threshold", [1 << 20, 0])
    def test_multipart_upload(
        self, session_manager, http_routes, dispatch_config, tmp_path, threshold
    ):
        http_routes.register("POST", f"{BASE}/upload", 201)
        path = tmp_path / "notes.txt"
        path.write_text("some notes")

        def configure(form):
            form.append_data(b"42", "id")
            form.append_file(path, "attachment")

        with Dispatcher(session_manager, config=dispatch_config) as dispatcher:
            outcome = dispatcher.upload_multipart(
                "POST",
                AddressString(f"{BASE}/upload"),
                configure,
                MultipartOptions(memory_threshold=threshold),
            ).result(5)
            assert outcome.ok
            assert outcome.operation.result(5).status_code == 201

        sent = http_routes.last_request
        assert sent.headers["content-type"].startswith("multipart/form-data; boundary=")
        assert int(sent.headers["content-length"]) == len(sent.content) == outcome.stream_length
        assert b'name="attachment"; filename="notes.txt"' in sent.content
        assert b"Content-Type: text/plain" in sent.content
        assert b"some notes" in sent.content
        assert outcome.streaming_from_disk is (threshold == 0)
