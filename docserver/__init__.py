"""MCP Documentation Server - documentation lookup and scraping tools over MCP.

Usage:
    python -m docserver                      # stdio (default)
    python -m docserver -t sse               # SSE on port 3000
    python -m docserver --transport=sse -p 9000

Usage as library:
    from docserver.server import create_server
    create_server().run()  # stdio transport

    from docserver.transport import SseTransportServer
    await SseTransportServer(port=9000).serve()
"""
