"""
cli.py

Responsibility: CLI entrypoint for bookpress.

Commands:
- `build`: render the book to every configured output target (web, PDF, EPUB)
- `publish`: copy the rendered book onto the hosting branch and push it
- `status`: show the commit currently at the head of the hosting branch

This module should orchestrate behavior but keep concerns isolated:
- Settings: `config.py`
- Rendering: `renderer.py`
- Publishing: `publisher.py`
- GitHub API: `github_client.py`
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import sys

from bookpress import __version__
from bookpress.config import ConfigError, PublishEnvironment, Settings, load_settings
from bookpress.github_client import GitHubClient, GitHubError, split_slug
from bookpress.process import CommandError
from bookpress.publisher import PublishError, publish_book
from bookpress.renderer import render_book

logger = logging.getLogger("bookpress")


def _configure_logging(verbose: bool) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    logger.handlers[:] = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False


def _settings(args: argparse.Namespace) -> Settings:
    settings = load_settings(args.config, root=args.root)
    if getattr(args, "output_dir", None):
        settings = dataclasses.replace(settings, output_dir=args.output_dir)
    return settings


def build_cmd(args: argparse.Namespace) -> int:
    settings = _settings(args)
    result = render_book(settings, targets=args.target or None)
    logger.info("Rendered %d target(s) into %s", len(result.targets), result.output_dir)
    return 0


def publish_cmd(args: argparse.Namespace) -> int:
    settings = _settings(args)
    environment = PublishEnvironment.from_env(os.environ, settings.env)
    outcome = publish_book(settings, environment)
    logger.debug("Publish outcome: %s", outcome.value)
    return 0


def status_cmd(args: argparse.Namespace) -> int:
    settings = _settings(args)
    environment = PublishEnvironment.from_env(os.environ, settings.env)
    slug = args.repo or environment.repo_slug
    if not slug:
        raise GitHubError(f"Repository slug is required (use --repo or set {settings.env.repo_slug})")
    owner, name = split_slug(slug)

    branch = settings.publish.pages_branch
    info = GitHubClient(environment.token).get_branch(owner, name, branch)
    if info is None:
        print(f"{owner}/{name}: branch {branch!r} not found")
        return 1
    summary = info.message.splitlines()[0] if info.message else ""
    print(f"{owner}/{name}@{info.name} {info.sha[:7]} {summary}".rstrip())
    if info.html_url:
        print(info.html_url)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="bookpress", description="Build a bookdown book and publish it to a pages branch")
    p.add_argument("--version", action="version", version=f"bookpress {__version__}")
    p.add_argument("-v", "--verbose", action="store_true", help="Log every external command and its output")
    sub = p.add_subparsers(dest="command", required=True)

    def common(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("--config", default=None, help="Settings file (default: <root>/_bookpress.yml if present)")
        sp.add_argument("--root", default=".", help="Book root directory (default: current directory)")

    b = sub.add_parser("build", help="Render the web book, PDF and EPUB, stopping at the first failure")
    common(b)
    b.add_argument(
        "--target",
        action="append",
        default=None,
        metavar="FORMAT",
        help="Only render this output format (repeatable; configured order is kept)",
    )
    b.set_defaults(func=build_cmd)

    pub = sub.add_parser("publish", help="Replace the pages branch with the rendered book and push it")
    common(pub)
    pub.add_argument("--output-dir", default=None, help="Artifact directory (overrides output_dir)")
    pub.set_defaults(func=publish_cmd)

    s = sub.add_parser("status", help="Show the head commit of the pages branch on GitHub")
    common(s)
    s.add_argument("--repo", default=None, help="owner/name (default: slug from the environment)")
    s.set_defaults(func=status_cmd)

    return p


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    try:
        return int(args.func(args))
    except CommandError as e:
        print(str(e), file=sys.stderr)
        return e.returncode if e.returncode > 0 else 1
    except (ConfigError, PublishError, GitHubError) as e:
        print(str(e), file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
