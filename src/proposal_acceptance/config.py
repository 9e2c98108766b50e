from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field


class Settings(BaseModel):
    environment: str = "dev"
    project_id: str | None = None
    log_level: str | None = None
    api_base_url: str = "http://localhost:3000/api"
    request_timeout: float = Field(default=15.0, gt=0)
    exit_url: str = "/"
    fixtures_dir: Path = Path("data/proposals")
    signature_height: int = Field(default=250, gt=0)
    signature_init_attempts: int = Field(default=10, ge=0)
    signature_init_delay: float = Field(default=0.2, ge=0)
    session_ttl: float = Field(default=1800.0, gt=0)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from process environment variables."""
        env = os.environ
        values: dict[str, object] = {
            "environment": env.get("ENVIRONMENT", "dev"),
            "project_id": env.get("PROJECT_ID"),
            "log_level": env.get("LOG_LEVEL"),
            "api_base_url": env.get("PROPOSAL_API_URL", cls.model_fields["api_base_url"].default),
            "exit_url": env.get("PROPOSAL_EXIT_URL", "/"),
            "fixtures_dir": Path(env.get("PROPOSAL_FIXTURES_DIR", "data/proposals")).resolve(),
        }
        optional = {
            "request_timeout": "PROPOSAL_API_TIMEOUT",
            "signature_height": "SIGNATURE_HEIGHT",
            "signature_init_attempts": "SIGNATURE_INIT_ATTEMPTS",
            "signature_init_delay": "SIGNATURE_INIT_DELAY",
            "session_ttl": "SESSION_TTL_SECONDS",
        }
        for field, name in optional.items():
            if env.get(name):
                values[field] = env[name]
        return cls.model_validate(values)

    @property
    def is_dev(self) -> bool:
        return self.environment == "dev"


__all__ = ["Settings"]
