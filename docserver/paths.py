"""Filesystem locations for the documentation store.

Topic content lives as llms.txt files in one directory, alongside an optional
topics.json catalog. Deployments that mount the store elsewhere point
DOCSERVER_DOCS_DIR at it; everything else hangs off DOCSERVER_HOME.
"""

import os
from pathlib import Path


def get_docserver_home() -> Path:
    """Root directory for server state, ~/.docserver unless DOCSERVER_HOME is set."""
    if env_home := os.environ.get("DOCSERVER_HOME"):
        return Path(env_home)
    return Path.home() / ".docserver"


def get_docs_dir() -> Path:
    """Directory holding the llms.txt files and topics.json.

    DOCSERVER_DOCS_DIR wins over the home-relative llm-docs directory, so a
    read-only volume can be served without relocating the rest of the state.
    """
    if docs_dir := os.environ.get("DOCSERVER_DOCS_DIR"):
        return Path(docs_dir)
    return get_docserver_home() / "llm-docs"
