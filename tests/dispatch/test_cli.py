"""Tests for the Typer CLI using a MockTransport-backed session manager."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from RequestKit import __version__
from RequestKit.Dispatch import cli
from RequestKit.Dispatch.net import HttpxSessionManager

BASE = "https://api.example.org"

runner = CliRunner()


@pytest.fixture(autouse=True)
def _mock_session(monkeypatch, http_routes, tmp_path):
    monkeypatch.setenv("REQUESTKIT_DOWNLOAD__TEMP_DIR", str(tmp_path / "dl"))
    monkeypatch.setenv("REQUESTKIT_MULTIPART__TEMP_DIR", str(tmp_path / "mp"))
    monkeypatch.setattr(
        cli,
        "_open_session",
        lambda cfg: HttpxSessionManager(cfg, transport=http_routes.transport),
    )


def test_version():
    result = runner.invoke(cli.app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output


class TestRequestCommand:
    def test_get_prints_body(self, http_routes):
        http_routes.register("GET", f"{BASE}/ping", 200, "pong")
        result = runner.invoke(cli.app, ["request", "GET", f"{BASE}/ping"])
        assert result.exit_code == 0, result.output
        assert "200 OK" in result.output
        assert "pong" in result.output

    def test_parameters_and_headers(self, http_routes):
        http_routes.register("POST", f"{BASE}/items", 201, {"id": 7})
        result = runner.invoke(
            cli.app,
            [
                "request",
                "post",
                f"{BASE}/items",
                "-p",
                "name=widget",
                "-e",
                "json",
                "-H",
                "X-Api-Key: k",
            ],
        )
        assert result.exit_code == 0, result.output
        sent = http_routes.last_request
        assert json.loads(sent.content) == {"name": "widget"}
        assert sent.headers["content-type"] == "application/json"
        assert sent.headers["x-api-key"] == "k"

    def test_error_status_exits_nonzero(self, http_routes):
        result = runner.invoke(cli.app, ["request", "GET", f"{BASE}/missing"])
        assert result.exit_code == 1
        assert "404" in result.output

    def test_invalid_address(self):
        result = runner.invoke(cli.app, ["request", "GET", "not-a-url"])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_unknown_method_is_a_usage_error(self, http_routes):
        result = runner.invoke(cli.app, ["request", "FOO", f"{BASE}/ping"])
        assert result.exit_code == 2
        assert not isinstance(result.exception, ValueError)
        assert http_routes.requests == []

    def test_lowercase_method_accepted(self, http_routes):
        http_routes.register("DELETE", f"{BASE}/items/1", 204)
        result = runner.invoke(cli.app, ["request", "delete", f"{BASE}/items/1"])
        assert result.exit_code == 0, result.output
        assert http_routes.last_request.method == "DELETE"

    def test_unknown_encoding(self):
        result = runner.invoke(
            cli.app, ["request", "GET", f"{BASE}/x", "-p", "a=1", "-e", "yaml"]
        )
        assert result.exit_code != 0


class TestDownloadCommand:
    def test_download_to_output(self, http_routes, tmp_path):
        http_routes.register("GET", f"{BASE}/file.txt", 200, "contents")
        target = tmp_path / "saved.txt"
        result = runner.invoke(cli.app, ["download", f"{BASE}/file.txt", "-o", str(target)])
        assert result.exit_code == 0, result.output
        assert target.read_text() == "contents"

    def test_download_to_directory_uses_suggested_name(self, http_routes, tmp_path):
        http_routes.register(
            "GET",
            f"{BASE}/reports/latest",
            200,
            "r",
            headers={"Content-Disposition": 'attachment; filename="q3.csv"'},
        )
        result = runner.invoke(
            cli.app, ["download", f"{BASE}/reports/latest", "-d", str(tmp_path)]
        )
        assert result.exit_code == 0, result.output
        assert (tmp_path / "q3.csv").read_text() == "r"

    def test_download_failure(self, http_routes, tmp_path):
        http_routes.register("GET", f"{BASE}/forbidden", 403)
        result = runner.invoke(cli.app, ["download", f"{BASE}/forbidden", "-d", str(tmp_path)])
        assert result.exit_code == 1
        assert "Download failed" in result.output


class TestUploadCommand:
    def test_raw_upload(self, http_routes, tmp_path):
        http_routes.register("PUT", f"{BASE}/blob", 200)
        path = tmp_path / "blob.bin"
        path.write_bytes(b"\x00\x01\x02")
        result = runner.invoke(cli.app, ["upload", f"{BASE}/blob", str(path), "-X", "PUT"])
        assert result.exit_code == 0, result.output
        assert http_routes.last_request.content == b"\x00\x01\x02"

    def test_multipart_upload(self, http_routes, tmp_path):
        http_routes.register("POST", f"{BASE}/form", 201)
        first = tmp_path / "a.txt"
        first.write_text("alpha")
        second = tmp_path / "b.txt"
        second.write_text("beta")
        result = runner.invoke(
            cli.app,
            ["upload", f"{BASE}/form", str(first), str(second), "-m", "-F", "note=hello"],
        )
        assert result.exit_code == 0, result.output
        sent = http_routes.last_request
        assert sent.headers["content-type"].startswith("multipart/form-data")
        assert b'filename="a.txt"' in sent.content
        assert b'filename="b.txt"' in sent.content
        assert b'name="note"' in sent.content

    def test_unknown_upload_method(self, tmp_path):
        path = tmp_path / "a.txt"
        path.write_text("x")
        result = runner.invoke(cli.app, ["upload", f"{BASE}/blob", str(path), "-X", "SEND"])
        assert result.exit_code == 2
        assert not isinstance(result.exception, ValueError)

    def test_multiple_files_need_multipart(self, tmp_path):
        path = tmp_path / "a.txt"
        path.write_text("x")
        result = runner.invoke(cli.app, ["upload", f"{BASE}/form", str(path), str(path)])
        assert result.exit_code != 0


class TestConfigCommands:
    def test_show_raw(self):
        result = runner.invoke(cli.app, ["config", "show", "--raw"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["multipart"]["memory_threshold_bytes"] == 10485760

    def test_show_table(self, tmp_path):
        path = tmp_path / "requestkit.yaml"
        path.write_text("executor:\n  workers: 9\n")
        result = runner.invoke(cli.app, ["config", "show", "-c", str(path)])
        assert result.exit_code == 0, result.output
        assert "executor.workers" in result.output

    def test_show_bad_file(self, tmp_path):
        result = runner.invoke(cli.app, ["config", "show", "-c", str(tmp_path / "nope.yaml")])
        assert result.exit_code == 1

    def test_schema_to_file(self, tmp_path):
        output = tmp_path / "schema.json"
        result = runner.invoke(cli.app, ["config", "schema", "-o", str(output)])
        assert result.exit_code == 0, result.output
        assert "multipart" in json.loads(output.read_text())["properties"]
