"""Runtime configuration loaded from the environment (and a local .env file)."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from rag.errors import ConfigurationError

PROJECT_ROOT = Path(__file__).parent
DEFAULT_NAMESPACE = "content-library"
DEFAULT_DATA_DIR = PROJECT_ROOT / "data"


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


@dataclass
class Settings:
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    pinecone_api_key: Optional[str] = None
    pinecone_index: Optional[str] = None
    namespace: str = DEFAULT_NAMESPACE
    llm_provider: str = "openai"
    llm_model: Optional[str] = None
    data_dir: Path = field(default=DEFAULT_DATA_DIR)
    search_timeout_s: float = 15.0
    generation_timeout_s: float = 60.0

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Settings":
        load_dotenv(env_file or PROJECT_ROOT / ".env")
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
            pinecone_api_key=os.getenv("PINECONE_API_KEY") or None,
            pinecone_index=os.getenv("PINECONE_INDEX") or None,
            namespace=os.getenv("PINECONE_NAMESPACE", DEFAULT_NAMESPACE),
            llm_provider=os.getenv("LLM_PROVIDER", "openai"),
            llm_model=os.getenv("LLM_MODEL") or None,
            data_dir=Path(os.getenv("CONTENT_DATA_DIR") or DEFAULT_DATA_DIR),
            search_timeout_s=_float_env("SEARCH_TIMEOUT_S", 15.0),
            generation_timeout_s=_float_env("GENERATION_TIMEOUT_S", 60.0),
        )

    @property
    def llm_api_key(self) -> Optional[str]:
        if self.llm_provider == "anthropic":
            return self.anthropic_api_key
        return self.openai_api_key

    def require_pinecone(self) -> tuple[str, str]:
        if not self.pinecone_api_key or not self.pinecone_index:
            raise ConfigurationError("Pinecone API key and index name are required")
        return self.pinecone_api_key, self.pinecone_index

    def require_llm_key(self) -> str:
        if not self.llm_api_key:
            raise ConfigurationError(f"An API key for provider '{self.llm_provider}' is required")
        return self.llm_api_key

    def describe(self) -> dict:
        """Which credentials are configured (never the secrets themselves)."""
        return {
            "openai_api_key": "set" if self.openai_api_key else "missing",
            "anthropic_api_key": "set" if self.anthropic_api_key else "missing",
            "pinecone_api_key": "set" if self.pinecone_api_key else "missing",
            "pinecone_index": self.pinecone_index or "missing",
            "namespace": self.namespace or "(default)",
            "llm_provider": self.llm_provider,
            "llm_model": self.llm_model or "(provider default)",
        }
