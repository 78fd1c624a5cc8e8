"""Configuration schema using Pydantic."""

import os

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Config(BaseModel):
    """Root configuration, stored as ``config.json`` in the data directory.

    Keys may be written in camelCase (``recentMessageCount``) or snake_case.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    owner: int
    allow_users: list[int] = Field(default_factory=list)
    allow_groups: list[int] = Field(default_factory=list)
    model: str | None = None
    recent_message_count: int = 100
    job_max_turns: int = 100
    job_timeout_ms: int = 600_000
    telegram_token: str = ""

    @property
    def bot_token(self) -> str:
        """Bot token from config, falling back to the TELEGRAM_BOT_TOKEN env var."""
        return self.telegram_token or os.environ.get("TELEGRAM_BOT_TOKEN", "")
