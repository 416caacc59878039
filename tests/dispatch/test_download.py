"""Tests for download destinations, suggested names and resume tokens."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest
from hypothesis import given
from hypothesis import strategies as st

from RequestKit.Dispatch.download import (
    DEFAULT_FILENAME,
    ResponseMetadata,
    ResumeContinuation,
    ResumeToken,
    apply_destination,
    fixed_destination,
    suggested_download_destination,
    suggested_filename,
)
from RequestKit.Dispatch.errors import DownloadFailure


def _metadata(url: str = "https://example.org/files/report.pdf") -> ResponseMetadata:
    return ResponseMetadata(url=url, status_code=200)


class TestSuggestedFilename:
    """Server-suggested names come from Content-Disposition, then the URL."""

    def test_from_url_path(self):
        assert suggested_filename("https://example.org/files/report.pdf") == "report.pdf"

    def test_url_path_is_unquoted(self):
        assert suggested_filename("https://example.org/a%20b.txt") == "a b.txt"

    def test_content_disposition_wins(self):
        headers = {"Content-Disposition": 'attachment; filename="data.csv"'}
        assert suggested_filename("https://example.org/export", headers) == "data.csv"

    def test_content_disposition_case_insensitive(self):
        headers = {"content-disposition": "attachment; filename=plain.txt"}
        assert suggested_filename("https://example.org/x", headers) == "plain.txt"

    def test_rfc5987_filename(self):
        headers = {"Content-Disposition": "attachment; filename*=UTF-8''na%C3%AFve.txt"}
        assert suggested_filename("https://example.org/x", headers) == "naïve.txt"

    @pytest.mark.parametrize("name", ["../../etc/passwd", "..\\..\\boot.ini", "/abs/evil.sh"])
    def test_directory_components_stripped(self, name):
        headers = {"Content-Disposition": f'attachment; filename="{name}"'}
        result = suggested_filename("https://example.org/x", headers)
        assert "/" not in result and "\\" not in result
        assert result not in ("", ".", "..")

    @pytest.mark.parametrize(
        "url", ["https://example.org", "https://example.org/", "https://example.org/a/.."]
    )
    def test_fallback(self, url):
        assert suggested_filename(url) == DEFAULT_FILENAME


class TestDestinations:
    """Destination decisions and the move that applies them."""

    def test_fixed_destination_ignores_response(self, tmp_path):
        decide = fixed_destination(tmp_path / "out.bin")
        assert decide(tmp_path / "tmp", _metadata()) == tmp_path / "out.bin"

    def test_suggested_destination(self, tmp_path):
        decide = suggested_download_destination(tmp_path)
        assert decide(tmp_path / "tmp", _metadata()) == tmp_path / "report.pdf"

    def test_apply_moves_file_and_creates_parents(self, tmp_path):
        temporary = tmp_path / "partial"
        temporary.write_bytes(b"payload")
        target = apply_destination(
            fixed_destination(tmp_path / "deep" / "dir" / "file.bin"), temporary, _metadata()
        )
        assert target.read_bytes() == b"payload"
        assert not temporary.exists()

    def test_decision_called_once(self, tmp_path):
        calls = []
        temporary = tmp_path / "partial"
        temporary.write_bytes(b"x")

        def decide(path, metadata):
            calls.append((path, metadata.status_code))
            return tmp_path / "final"

        apply_destination(decide, temporary, _metadata())
        assert calls == [(temporary, 200)]

    def test_non_path_decision(self, tmp_path):
        temporary = tmp_path / "partial"
        temporary.write_bytes(b"x")
        with pytest.raises(DownloadFailure):
            apply_destination(lambda path, metadata: 42, temporary, _metadata())

    def test_raising_decision_becomes_download_failure(self, tmp_path):
        temporary = tmp_path / "partial"
        temporary.write_bytes(b"x")

        def decide(path, metadata):
            raise ValueError("no room")

        with pytest.raises(DownloadFailure, match="no room") as excinfo:
            apply_destination(decide, temporary, _metadata())
        assert isinstance(excinfo.value.__cause__, ValueError)
        assert excinfo.value.status_code == 200

    def test_unwritable_destination(self, tmp_path):
        temporary = tmp_path / "partial"
        temporary.write_bytes(b"x")
        blocker = tmp_path / "blocker"
        blocker.write_bytes(b"")
        with pytest.raises(DownloadFailure) as excinfo:
            apply_destination(fixed_destination(blocker / "child"), temporary, _metadata())
        assert excinfo.value.url == "https://example.org/files/report.pdf"


@given(
    name=st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789_-", min_size=1, max_size=16),
    status=st.sampled_from([200, 203, 206]),
    disposition=st.one_of(st.none(), st.just('attachment; filename="other.bin"')),
)
def test_fixed_destination_always_answers_same_path(name, status, disposition):
    target = Path("/downloads") / name
    decide = fixed_destination(target)
    headers = {"Content-Disposition": disposition} if disposition else {}
    metadata = ResponseMetadata(
        url="https://example.org/x", status_code=status, headers=httpx.Headers(headers)
    )
    assert decide(Path("/tmp/partial"), metadata) == target


class TestResumeToken:
    """Resume tokens are opaque bytes."""

    def test_bytes_round_trip(self):
        token = ResumeToken(bytearray(b"\x00\x01opaque"))
        assert bytes(token) == b"\x00\x01opaque"
        assert len(token) == 8

    def test_rejects_text(self):
        with pytest.raises(TypeError):
            ResumeToken("not bytes")  # type: ignore[arg-type]

    def test_repr_hides_data(self):
        assert "opaque" not in repr(ResumeToken(b"opaque"))


def test_resume_continuation_holds_token_unmodified():
    token = ResumeToken(b"resume-me")
    decide = fixed_destination("/downloads/file.bin")
    continuation = ResumeContinuation(token, decide)
    assert continuation.token is token
    assert continuation.destination is decide
    with pytest.raises(AttributeError):
        continuation.token = ResumeToken(b"other")  # type: ignore[misc]
