"""Error reporting. Imported by __main__ ahead of the transports so the
starlette and httpx integrations are installed before those libraries load.

Nothing is sent unless SENTRY_DSN is set. Session crashes and handler
failures are reported explicitly from the SSE session manager.
"""

import os

import sentry_sdk

sentry_sdk.init(
    dsn=os.environ.get("SENTRY_DSN"),
    environment=os.environ.get("DOCSERVER_ENVIRONMENT", "dev"),
    release=f"mcp-doc-server@{os.environ.get('DOCSERVER_VERSION', '1.0.0')}",
)
