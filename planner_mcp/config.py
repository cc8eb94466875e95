"""Runtime configuration, read once from the environment."""

import os
from pathlib import Path
from typing import List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
DEFAULT_TOKEN_CACHE_PATH = Path.home() / ".planner_mcp_token_cache.json"

REQUIRED_CREDENTIALS = ("AZURE_CLIENT_ID", "AZURE_CLIENT_SECRET")


class Settings(BaseModel):
    """Immutable settings shared by the MCP server and the event service."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    tenant_id: str = "common"
    client_id: str = ""
    client_secret: str = ""
    user_id: str = "me"
    default_plan_id: Optional[str] = None
    default_bucket_id: Optional[str] = None
    graph_base_url: str = GRAPH_BASE_URL
    graph_timeout: float = Field(default=30.0, gt=0)
    token_cache_path: Path = DEFAULT_TOKEN_CACHE_PATH
    events_host: str = "127.0.0.1"
    events_port: int = Field(default=3000, ge=1, le=65535)
    events_queue_size: int = Field(default=256, ge=1)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        values = {
            "tenant_id": env.get("AZURE_TENANT_ID") or "common",
            "client_id": env.get("AZURE_CLIENT_ID", ""),
            "client_secret": env.get("AZURE_CLIENT_SECRET", ""),
            "user_id": env.get("USER_ID") or "me",
            "default_plan_id": env.get("DEFAULT_PLAN_ID") or None,
            "default_bucket_id": env.get("DEFAULT_BUCKET_ID") or None,
            "graph_base_url": (env.get("GRAPH_BASE_URL") or GRAPH_BASE_URL).rstrip("/"),
            "log_level": (env.get("LOG_LEVEL") or "INFO").upper(),
        }
        optional = {
            "graph_timeout": env.get("GRAPH_TIMEOUT"),
            "token_cache_path": env.get("PLANNER_MCP_TOKEN_CACHE"),
            "events_host": env.get("PLANNER_EVENTS_HOST"),
            "events_port": env.get("PLANNER_EVENTS_PORT"),
            "events_queue_size": env.get("PLANNER_EVENTS_QUEUE_SIZE"),
        }
        values.update({k: v for k, v in optional.items() if v})
        return cls(**values)

    @property
    def authority(self) -> str:
        return f"https://login.microsoftonline.com/{self.tenant_id}"

    @property
    def missing_credentials(self) -> List[str]:
        present = {
            "AZURE_CLIENT_ID": self.client_id,
            "AZURE_CLIENT_SECRET": self.client_secret,
        }
        return [name for name in REQUIRED_CREDENTIALS if not present[name]]

    @property
    def is_configured(self) -> bool:
        return not self.missing_credentials
