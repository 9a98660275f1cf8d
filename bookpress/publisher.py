"""
publisher.py

Responsibility: Publish the rendered artifact directory to the hosting branch.

High-level flow:
1) Gate: no credential -> nothing to do
2) Gate: not the publishing branch -> nothing to do
3) Clone the hosting branch into a fresh directory, replace its tree with the artifacts, commit, push

Skips are not errors: callers see the same exit status for "skipped" and
"published". Any failing git command is fatal and nothing is rolled back;
the remote only changes at the final push.
"""

from __future__ import annotations

import base64
import contextlib
import enum
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterator

from bookpress.config import PublishEnvironment, Settings, render_text
from bookpress.process import CommandRunner, SubprocessRunner, run_checked

logger = logging.getLogger("bookpress.publish")


class PublishError(RuntimeError):
    pass


class PublishOutcome(enum.Enum):
    SKIPPED_NO_CREDENTIAL = "skipped-no-credential"
    SKIPPED_BRANCH = "skipped-branch"
    PUBLISHED = "published"


def _git_env(settings: Settings, base_env: dict[str, str]) -> dict[str, str]:
    """
    Commit identity for the automated publish, passed per command so the
    user's global git configuration is left alone.
    """
    env = dict(base_env)
    env["GIT_AUTHOR_NAME"] = settings.publish.user_name
    env["GIT_AUTHOR_EMAIL"] = settings.publish.user_email
    env["GIT_COMMITTER_NAME"] = settings.publish.user_name
    env["GIT_COMMITTER_EMAIL"] = settings.publish.user_email
    # Never block on an interactive credential prompt in CI.
    env.setdefault("GIT_TERMINAL_PROMPT", "0")
    return env


def _auth_header(token: str) -> str:
    # GitHub accepts x-access-token as the basic-auth user for a token.
    basic = base64.b64encode(f"x-access-token:{token}".encode("utf-8")).decode("ascii")
    return f"Authorization: Basic {basic}"


def remote_url(settings: Settings, environment: PublishEnvironment) -> str:
    if settings.publish.remote_url:
        return settings.publish.remote_url
    if not environment.repo_slug:
        raise PublishError(
            f"Repository slug is required (set {settings.env.repo_slug} or publish.remote_url)"
        )
    return f"https://github.com/{environment.repo_slug}.git"


def commit_message(settings: Settings, environment: PublishEnvironment) -> str:
    return render_text(
        settings.publish.commit_message,
        build_number=environment.build_number or "",
        branch=environment.branch or "",
        repo_slug=environment.repo_slug or "",
    )


def should_publish(settings: Settings, environment: PublishEnvironment) -> PublishOutcome | None:
    """Return the skip outcome if a gate is not met, otherwise None."""
    if not environment.token:
        logger.info("No credential in %s; nothing to publish", settings.env.token)
        return PublishOutcome.SKIPPED_NO_CREDENTIAL
    if environment.branch != settings.publish.source_branch:
        logger.info(
            "Branch %r is not the publishing branch %r; nothing to publish",
            environment.branch,
            settings.publish.source_branch,
        )
        return PublishOutcome.SKIPPED_BRANCH
    return None


def _check_artifacts(output_dir: Path) -> None:
    if not output_dir.is_dir():
        raise PublishError(f"Artifact directory not found: {output_dir} (run `bookpress build` first)")
    if not any(output_dir.iterdir()):
        raise PublishError(f"Artifact directory is empty: {output_dir}")


@contextlib.contextmanager
def _working_dir(settings: Settings) -> Iterator[Path]:
    """
    Yield an empty, not-yet-existing directory to clone into.

    A configured `publish.clone_dir` is scratch space: whatever an earlier run
    left there is removed first. Otherwise the clone lives in a temporary
    directory that is removed after the run.
    """
    clone_dir = settings.clone_path
    if clone_dir is not None:
        if clone_dir.is_dir():
            shutil.rmtree(clone_dir)
        elif clone_dir.exists():
            raise PublishError(f"Clone directory is not a directory: {clone_dir}")
        yield clone_dir
        return
    with tempfile.TemporaryDirectory(prefix="bookpress-") as tmp:
        yield Path(tmp) / "site"


def sync_artifacts(output_dir: Path, clone_dir: Path) -> int:
    """Copy the whole artifact tree, hidden files included, into the clone. Returns the file count."""
    shutil.copytree(output_dir, clone_dir, dirs_exist_ok=True, ignore=shutil.ignore_patterns(".git"))
    return sum(1 for p in output_dir.rglob("*") if p.is_file() and ".git" not in p.relative_to(output_dir).parts)


def publish_book(
    settings: Settings,
    environment: PublishEnvironment,
    *,
    runner: CommandRunner | None = None,
    base_env: dict[str, str] | None = None,
) -> PublishOutcome:
    skipped = should_publish(settings, environment)
    if skipped is not None:
        return skipped

    runner = runner or SubprocessRunner()
    output_dir = settings.output_path
    branch = settings.publish.pages_branch

    url = remote_url(settings, environment)
    message = commit_message(settings, environment)
    _check_artifacts(output_dir)

    env = _git_env(settings, os.environ.copy() if base_env is None else base_env)
    # The credential only travels on the command line of the network commands,
    # never into the clone's .git/config.
    header = _auth_header(environment.token or "")
    auth = ("-c", f"http.extraHeader={header}")
    secrets = (environment.token, header.split()[-1])

    def git(*args: str, cwd: Path) -> None:
        run_checked(runner, ["git", *args], cwd=cwd, env=env, secrets=secrets)

    with _working_dir(settings) as clone_dir:
        logger.info("Cloning %s into %s", branch, clone_dir)
        git(*auth, "clone", "-q", "-b", branch, url, str(clone_dir), cwd=settings.root)
        git("rm", "-r", "-f", "-q", "--ignore-unmatch", ".", cwd=clone_dir)

        copied = sync_artifacts(output_dir, clone_dir)
        logger.info("Copied %d file(s) from %s", copied, output_dir)

        git("add", "--all", cwd=clone_dir)
        git("commit", "--allow-empty", "-q", "-m", message, cwd=clone_dir)
        git(*auth, "push", "-q", "origin", branch, cwd=clone_dir)

    logger.info("Published to %s: %s", branch, message)
    return PublishOutcome.PUBLISHED
