"""Unit tests for artifact publishers."""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

from enginepack.build.runner import BuildStageRunner
from enginepack.config import PublishSettings
from enginepack.errors import ConfigError
from enginepack.deploy.publisher import (
    CommandPublisher,
    HttpPublisher,
    PublishError,
    collect_files,
    create_publisher,
)

COPY_SCRIPT = """
import shutil, sys
shutil.copytree(sys.argv[1], sys.argv[2], dirs_exist_ok=True)
print("Transferred")
"""


@pytest.fixture
def output_dir(tmp_path):
    """An output directory with the usual layout."""
    root = tmp_path / "dist"
    (root / "packages").mkdir(parents=True)
    (root / "packages" / "MyPlugin_5.3.zip").write_bytes(b"primary")
    (root / "packages" / "MyPlugin_5.4.zip.tmp").write_bytes(b"partial")
    (root / "examples" / "5.3").mkdir(parents=True)
    (root / "examples" / "5.3" / "MyPlugin_full 5.3.zip").write_bytes(b"variant")
    return root


@pytest.fixture
def runner():
    return BuildStageRunner(sink=lambda line: None)


class TestCollectFiles:
    def test_skips_temporary_files(self, output_dir):
        files = [p.relative_to(output_dir).as_posix() for p in collect_files(output_dir)]
        assert files == ["examples/5.3/MyPlugin_full 5.3.zip", "packages/MyPlugin_5.3.zip"]


class TestCommandPublisher:
    """Test cases for publishing through an external sync client."""

    def test_publish(self, output_dir, runner, tmp_path):
        """Test that the directory is handed to the command with its layout."""
        script = tmp_path / "sync.py"
        script.write_text(COPY_SCRIPT)
        remote = tmp_path / "remote"
        publisher = CommandPublisher(
            str(remote),
            f'"{sys.executable}" "{script}" {{source}} {{remote}}',
            runner,
            tmp_path / "logs" / "publish.log",
        )

        result = publisher.publish(output_dir)

        assert result.success, result.message
        assert result.files == 2
        assert (remote / "examples" / "5.3" / "MyPlugin_full 5.3.zip").read_bytes() == b"variant"
        assert "Transferred" in (tmp_path / "logs" / "publish.log").read_text()

    def test_command_failure(self, output_dir, runner, tmp_path):
        publisher = CommandPublisher(
            "remote:bucket",
            f'"{sys.executable}" -c "import sys; sys.exit(5)"',
            runner,
            tmp_path / "publish.log",
        )

        result = publisher.publish(output_dir)

        assert not result.success
        assert "exit code 5" in result.message

    def test_unknown_placeholder_rejected(self, runner, tmp_path):
        """Test that a template typo is reported before anything is published."""
        with pytest.raises(ConfigError, match="src"):
            CommandPublisher("remote:bucket", "sync {src} {remote}", runner, tmp_path / "p.log")

    def test_missing_source(self, runner, tmp_path):
        publisher = CommandPublisher("remote:bucket", "rclone copy {source} {remote}", runner, tmp_path / "p.log")
        result = publisher.publish(tmp_path / "missing")
        assert not result.success
        assert "does not exist" in result.message


class TestHttpPublisher:
    """Test cases for HTTP uploads."""

    @pytest.fixture
    def session(self):
        session = MagicMock(spec=requests.Session)
        session.put.return_value = MagicMock(status_code=201)
        return session

    def test_publish(self, output_dir, session):
        """Test that every file is PUT below the base URL."""
        publisher = HttpPublisher(
            "https://uploads.example.com/MyPlugin/",
            token="secret",
            show_progress=False,
            session=session,
        )

        result = publisher.publish(output_dir)

        assert result.success
        assert result.files == 2
        urls = [call.args[0] for call in session.put.call_args_list]
        assert urls == [
            "https://uploads.example.com/MyPlugin/examples/5.3/MyPlugin_full%205.3.zip",
            "https://uploads.example.com/MyPlugin/packages/MyPlugin_5.3.zip",
        ]
        for call in session.put.call_args_list:
            assert call.kwargs["headers"] == {"Authorization": "Bearer secret"}
            assert call.kwargs["timeout"] == 300

    def test_no_token(self, output_dir, session):
        HttpPublisher("https://uploads.example.com", show_progress=False, session=session).publish(output_dir)
        assert session.put.call_args.kwargs["headers"] == {}

    def test_http_error(self, output_dir, session):
        """Test that a rejected upload fails the publish."""
        response = MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError("403 Forbidden")
        session.put.return_value = response

        result = HttpPublisher("https://uploads.example.com", show_progress=False, session=session).publish(
            output_dir
        )

        assert not result.success
        assert "403 Forbidden" in result.message
        assert session.put.call_count == 1

    def test_connection_error(self, output_dir, session):
        session.put.side_effect = requests.ConnectionError("connection refused")

        result = HttpPublisher("https://uploads.example.com", show_progress=True, session=session).publish(
            output_dir
        )

        assert not result.success
        assert "connection refused" in result.message

    def test_file_removed_during_upload(self, output_dir, session):
        """Test that a file vanishing mid-upload fails the publish instead of raising."""
        second = output_dir / "packages" / "MyPlugin_5.3.zip"
        response = MagicMock(status_code=201)

        def put(url, **kwargs):
            second.unlink(missing_ok=True)
            return response

        session.put.side_effect = put

        result = HttpPublisher("https://uploads.example.com", show_progress=False, session=session).publish(
            output_dir
        )

        assert not result.success
        assert "MyPlugin_5.3.zip" in result.message
        assert session.put.call_count == 1

    def test_url_for(self, session):
        publisher = HttpPublisher("https://uploads.example.com/base/", session=session)
        assert publisher.url_for(Path("packages/My Plugin.zip")) == (
            "https://uploads.example.com/base/packages/My%20Plugin.zip"
        )


class TestCreatePublisher:
    """Test cases for picking a publisher from settings."""

    def test_command(self, runner, tmp_path):
        publisher = create_publisher(
            PublishSettings(remote="remote:bucket", command="rclone copy {source} {remote}"),
            runner,
            tmp_path / "publish.log",
        )
        assert isinstance(publisher, CommandPublisher)
        assert publisher.remote == "remote:bucket"

    def test_http_with_token(self, runner, tmp_path, monkeypatch):
        monkeypatch.setenv("ENGINEPACK_UPLOAD_TOKEN", "abc123")
        publisher = create_publisher(
            PublishSettings(remote="https://uploads.example.com", token_env="ENGINEPACK_UPLOAD_TOKEN"),
            runner,
            tmp_path / "publish.log",
        )
        assert isinstance(publisher, HttpPublisher)
        assert publisher.token == "abc123"

    def test_http_token_missing(self, runner, tmp_path, monkeypatch):
        monkeypatch.delenv("ENGINEPACK_UPLOAD_TOKEN", raising=False)
        publisher = create_publisher(
            PublishSettings(remote="https://uploads.example.com", token_env="ENGINEPACK_UPLOAD_TOKEN"),
            runner,
            tmp_path / "publish.log",
        )
        assert publisher.token is None

    def test_unsupported_remote(self, runner, tmp_path):
        with pytest.raises(PublishError, match="Cannot publish"):
            create_publisher(PublishSettings(remote="s3://bucket"), runner, tmp_path / "publish.log")

    def test_command_with_unknown_placeholder(self, runner, tmp_path):
        with pytest.raises(ConfigError, match="Unknown placeholder"):
            create_publisher(
                PublishSettings(remote="remote:bucket", command="sync {src} {remote}"),
                runner,
                tmp_path / "publish.log",
            )
