"""Configuration management for docserver using pydantic-settings."""

from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from docserver.paths import get_docs_dir


class ServerSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="DOCSERVER_",
        case_sensitive=False,
        extra="ignore",
    )

    name: str = Field(default="MCP Documentation Server", description="Server name reported to clients")
    version: str = Field(default="1.0.0", description="Server version reported to clients")
    capabilities: dict[str, Any] = Field(
        default_factory=lambda: {"resources": {}, "tools": {"listChanged": True}},
        description="Capabilities advertised on the info endpoint",
    )
    log_level: str = Field(default="INFO", description="Log level for the docserver and fastmcp loggers")


class TransportSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="DOCSERVER_SSE_",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = Field(default="localhost", description="Host to bind the SSE transport to")
    port: int = Field(default=3000, ge=1, le=65535, description="Port to bind the SSE transport to")

    # Endpoints
    sse_endpoint: str = Field(default="/sse", description="Push channel and control message path")
    health_endpoint: str = Field(default="/health", description="Liveness endpoint")
    info_endpoint: str = Field(default="/info", description="Server metadata endpoint")

    # CORS
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    cors_methods: list[str] = Field(default_factory=lambda: ["GET", "POST", "OPTIONS"])
    cors_headers: list[str] = Field(default_factory=lambda: ["Content-Type", "Authorization"])

    # Session lifecycle
    idle_timeout: float = Field(
        default=300.0,
        ge=0,
        description="Seconds without traffic before a push channel is closed (0 disables)",
    )
    ping_interval: int = Field(default=15, ge=1, description="Seconds between keep-alive pings")
    drain_timeout: float = Field(
        default=5.0,
        ge=0,
        description="Seconds to wait for open sessions to close on shutdown",
    )

    @property
    def endpoints(self) -> dict[str, str]:
        return {
            "sse": self.sse_endpoint,
            "health": self.health_endpoint,
            "info": self.info_endpoint,
        }


class DocSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="DOCSERVER_DOCS_",
        case_sensitive=False,
        extra="ignore",
    )

    max_retries: int = Field(default=3, ge=0, description="Retries for failed page fetches")
    timeout_seconds: float = Field(default=15.0, gt=0, description="Timeout for a single page fetch")
    max_content_length: int = Field(default=50_000, gt=0, description="Maximum characters of scraped content")
    local_store_dir: Path = Field(
        default_factory=get_docs_dir,
        description="Directory holding llms.txt files and the optional topics.json catalog",
    )

    # Scraping
    scraping_user_agent: str = Field(default="MCP-Doc-Server/1.0")
    max_depth: int = Field(default=1, ge=1, le=3, description="Default link depth when scraping")
    respect_robots: bool = Field(default=True, description="Honor robots.txt when scraping")


server_settings = ServerSettings()
transport_settings = TransportSettings()
doc_settings = DocSettings()
