# projects/prism/prism/__main__.py
"""`python -m prism …` forwards to the Typer CLI in `prism.cli`."""

from __future__ import annotations

from prism.cli import app

if __name__ == "__main__":  # pragma: no cover
    app()
