"""Entry point for `python -m docserver` and the `docserver` script."""

import docserver.sentry  # noqa: F401  (must initialize before anything is instrumented)
from docserver.cli import run_server


def main():
    """Start the documentation server."""
    run_server()


if __name__ == "__main__":
    main()
