"""Module entrypoint for the plano CLI."""

from __future__ import annotations

from cli.app import app


def main() -> None:
    """Run the plano CLI."""
    app.meta()


if __name__ == "__main__":
    main()
