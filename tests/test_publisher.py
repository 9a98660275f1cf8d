"""
Publisher tests — gates, command sequence and error paths.

All tests are hermetic: git is replaced by a recording fake.
"""

from __future__ import annotations

import base64
from pathlib import Path

import pytest

from bookpress.config import PublishEnvironment, Settings, parse_settings
from bookpress.process import CommandError
from bookpress.publisher import (
    PublishError,
    PublishOutcome,
    commit_message,
    publish_book,
    remote_url,
)

from tests.fakes.fake_runner import FakeRunner, git_subcommand


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _settings(root: Path, **publish) -> Settings:
    return parse_settings({"publish": publish} if publish else {}, root=root)


def _environment(**overrides) -> PublishEnvironment:
    values = {
        "token": "s3cr3t",
        "branch": "master",
        "repo_slug": "someone/adv-r",
        "build_number": "42",
    }
    values.update(overrides)
    return PublishEnvironment(**values)


def _basic(token: str) -> str:
    return base64.b64encode(f"x-access-token:{token}".encode()).decode()


def _write_book(root: Path) -> Path:
    book = root / "_book"
    (book / "libs").mkdir(parents=True)
    (book / "index.html").write_text("<h1>Advanced R</h1>", encoding="utf-8")
    (book / "libs" / "style.css").write_text("body {}", encoding="utf-8")
    (book / ".nojekyll").write_text("", encoding="utf-8")
    return book


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------

class TestGates:
    @pytest.mark.parametrize("token", [None, ""])
    def test_no_credential_does_nothing(self, tmp_path: Path, token):
        runner = FakeRunner()
        outcome = publish_book(_settings(tmp_path), _environment(token=token), runner=runner)
        assert outcome is PublishOutcome.SKIPPED_NO_CREDENTIAL
        assert runner.calls == []

    @pytest.mark.parametrize("branch", ["feature/x", None, "main"])
    def test_wrong_branch_does_nothing(self, tmp_path: Path, branch):
        runner = FakeRunner()
        outcome = publish_book(_settings(tmp_path), _environment(branch=branch), runner=runner)
        assert outcome is PublishOutcome.SKIPPED_BRANCH
        assert runner.calls == []

    def test_credential_checked_before_branch(self, tmp_path: Path):
        outcome = publish_book(
            _settings(tmp_path), _environment(token=None, branch="other"), runner=FakeRunner()
        )
        assert outcome is PublishOutcome.SKIPPED_NO_CREDENTIAL

    def test_gates_skip_before_artifact_checks(self, tmp_path: Path):
        # No _book directory at all; a skip must still be neutral.
        outcome = publish_book(_settings(tmp_path), _environment(branch="dev"), runner=FakeRunner())
        assert outcome is PublishOutcome.SKIPPED_BRANCH

    def test_configured_source_branch(self, tmp_path: Path):
        _write_book(tmp_path)
        runner = FakeRunner()
        outcome = publish_book(
            _settings(tmp_path, source_branch="main"), _environment(branch="main"), runner=runner, base_env={}
        )
        assert outcome is PublishOutcome.PUBLISHED


# ---------------------------------------------------------------------------
# Publish sequence
# ---------------------------------------------------------------------------

class TestSequence:
    def test_command_order(self, tmp_path: Path):
        _write_book(tmp_path)
        runner = FakeRunner()
        outcome = publish_book(
            _settings(tmp_path, clone_dir="book-output"), _environment(), runner=runner, base_env={}
        )

        assert outcome is PublishOutcome.PUBLISHED
        clone_dir = str((tmp_path / "book-output").resolve())
        auth = ["-c", f"http.extraHeader=Authorization: Basic {_basic('s3cr3t')}"]
        assert runner.commands == [
            ["git", *auth, "clone", "-q", "-b", "gh-pages", "https://github.com/someone/adv-r.git", clone_dir],
            ["git", "rm", "-r", "-f", "-q", "--ignore-unmatch", "."],
            ["git", "add", "--all"],
            ["git", "commit", "--allow-empty", "-q", "-m", "Update the book (travis build 42)"],
            ["git", *auth, "push", "-q", "origin", "gh-pages"],
        ]
        assert runner.calls[0].cwd == tmp_path.resolve()
        assert all(c.cwd == Path(clone_dir) for c in runner.calls[1:])

    def test_default_clone_is_temporary(self, tmp_path: Path):
        _write_book(tmp_path)
        runner = FakeRunner()
        publish_book(_settings(tmp_path), _environment(), runner=runner, base_env={})

        clone_dir = Path(runner.commands[0][-1])
        assert tmp_path not in clone_dir.parents
        assert not clone_dir.exists()
        assert sorted(p.name for p in tmp_path.iterdir()) == ["_book"]

    def test_commit_identity_in_env(self, tmp_path: Path):
        _write_book(tmp_path)
        runner = FakeRunner()
        settings = _settings(tmp_path, user_name="Book Bot", user_email="bot@example.invalid")
        publish_book(settings, _environment(), runner=runner, base_env={"PATH": "/usr/bin"})

        for call in runner.calls:
            assert call.env["GIT_AUTHOR_NAME"] == "Book Bot"
            assert call.env["GIT_COMMITTER_EMAIL"] == "bot@example.invalid"
            assert call.env["PATH"] == "/usr/bin"
            assert call.env["GIT_TERMINAL_PROMPT"] == "0"

    def test_artifacts_copied_including_hidden_files(self, tmp_path: Path):
        _write_book(tmp_path)
        publish_book(
            _settings(tmp_path, clone_dir="book-output"), _environment(), runner=FakeRunner(), base_env={}
        )
        clone = tmp_path / "book-output"
        assert (clone / "index.html").read_text(encoding="utf-8") == "<h1>Advanced R</h1>"
        assert (clone / "libs" / "style.css").exists()
        assert (clone / ".nojekyll").exists()

    def test_explicit_remote_url(self, tmp_path: Path):
        _write_book(tmp_path)
        runner = FakeRunner()
        publish_book(
            _settings(tmp_path, remote_url="/srv/git/book.git"),
            _environment(repo_slug=None),
            runner=runner,
            base_env={},
        )
        assert runner.commands[0][-2] == "/srv/git/book.git"

    def test_failed_push_raises(self, tmp_path: Path):
        _write_book(tmp_path)
        runner = FakeRunner(fail_on_call=4, returncode=128)
        with pytest.raises(CommandError) as exc_info:
            publish_book(_settings(tmp_path), _environment(), runner=runner, base_env={})
        assert exc_info.value.returncode == 128
        assert git_subcommand(exc_info.value.cmd) == "push"

    def test_failed_clone_stops_and_hides_token(self, tmp_path: Path):
        _write_book(tmp_path)
        runner = FakeRunner(fail_on_call=0, returncode=128)
        with pytest.raises(CommandError) as exc_info:
            publish_book(_settings(tmp_path), _environment(), runner=runner, base_env={})
        assert len(runner.calls) == 1
        assert "s3cr3t" not in str(exc_info.value)
        assert _basic("s3cr3t") not in str(exc_info.value)

    def test_token_never_in_remote_url(self, tmp_path: Path):
        _write_book(tmp_path)
        runner = FakeRunner()
        publish_book(_settings(tmp_path), _environment(), runner=runner, base_env={})
        assert all("s3cr3t" not in part for cmd in runner.commands for part in cmd)


# ---------------------------------------------------------------------------
# Preconditions after the gates
# ---------------------------------------------------------------------------

class TestPreconditions:
    def test_missing_artifacts(self, tmp_path: Path):
        runner = FakeRunner()
        with pytest.raises(PublishError, match="not found"):
            publish_book(_settings(tmp_path), _environment(), runner=runner, base_env={})
        assert runner.calls == []

    def test_empty_artifacts(self, tmp_path: Path):
        (tmp_path / "_book").mkdir()
        with pytest.raises(PublishError, match="empty"):
            publish_book(_settings(tmp_path), _environment(), runner=FakeRunner(), base_env={})

    def test_stale_clone_dir_is_cleared(self, tmp_path: Path):
        _write_book(tmp_path)
        (tmp_path / "book-output").mkdir()
        (tmp_path / "book-output" / "stale.html").write_text("x", encoding="utf-8")

        outcome = publish_book(
            _settings(tmp_path, clone_dir="book-output"), _environment(), runner=FakeRunner(), base_env={}
        )

        assert outcome is PublishOutcome.PUBLISHED
        assert not (tmp_path / "book-output" / "stale.html").exists()
        assert (tmp_path / "book-output" / "index.html").exists()

    def test_clone_dir_that_is_a_file(self, tmp_path: Path):
        _write_book(tmp_path)
        (tmp_path / "book-output").write_text("x", encoding="utf-8")
        runner = FakeRunner()
        with pytest.raises(PublishError, match="not a directory"):
            publish_book(
                _settings(tmp_path, clone_dir="book-output"), _environment(), runner=runner, base_env={}
            )
        assert runner.calls == []

    def test_missing_slug_without_remote(self, tmp_path: Path):
        with pytest.raises(PublishError, match="TRAVIS_REPO_SLUG"):
            remote_url(_settings(tmp_path), _environment(repo_slug=None))


def test_commit_message_template(tmp_path: Path):
    settings = _settings(tmp_path, commit_message="Deploy {{ repo_slug }}@{{ branch }} #{{ build_number }}")
    assert commit_message(settings, _environment()) == "Deploy someone/adv-r@master #42"
