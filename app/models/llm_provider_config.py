"""
LlmProviderConfig model - one row per LLM provider the AI extractor may use.

The AI extractor walks enabled rows in ascending `priority` order.
"""
import enum
from typing import Optional

from sqlalchemy import Boolean, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, JSONType


class ProviderType(str, enum.Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"


class LlmProviderConfig(BaseModel):
    """LLM provider configuration entity."""

    __tablename__ = "llm_provider_configs"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    provider_type: Mapped[str] = mapped_column(String(50), nullable=False)
    llm_model: Mapped[str] = mapped_column(String(100), nullable=False)

    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=100, index=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    timeout_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    max_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=4096)
    temperature: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    api_endpoint: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    settings: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    def __repr__(self) -> str:
        return f"<LlmProviderConfig {self.name} ({self.provider_type}/{self.llm_model}) p={self.priority}>"
