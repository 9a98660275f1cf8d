"""
bookpress package

This package builds a bookdown book and publishes it to a hosting branch.

Key responsibilities are split across modules:
- `config.py`: settings file + CI environment into a typed configuration
- `process.py`: mockable runner for external commands (Rscript, git)
- `renderer.py`: render every output target in order, stopping at the first failure
- `publisher.py`: gated sync of the rendered book onto the pages branch
- `github_client.py`: isolated GitHub REST API interactions (pages branch lookup)
- `cli.py`: CLI entrypoint and orchestration (build, publish, status)
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
