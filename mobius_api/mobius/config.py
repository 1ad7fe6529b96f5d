from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

# Load environment variables from .env (if present)
load_dotenv()


def _split(value: str) -> list[str]:
    return [v.strip().lower() for v in value.split(",") if v.strip()]


class ProviderSettings(BaseModel):
    name: str
    base_url: str
    model: str
    api_key: str = ""
    vision: bool = False


class Settings(BaseModel):
    # API key for this FastAPI server (sent via X-API-Key header)
    api_key: str = os.getenv("MOBIUS_API_KEY", "")

    # CORS origins (comma-separated or "*")
    cors_origins: str = os.getenv("CORS_ORIGINS", "*")

    # Markdown vault that backs the document store
    vault_root: str = os.getenv("VAULT_ROOT", "/srv/mobius/Vault")

    # Managed workspace folder inside the vault (focus copies / new files)
    workspace_folder: str = os.getenv("WORKSPACE_FOLDER", "Mobius")

    # Folder offered when the user runs a bare "access"
    access_root: str = os.getenv("ACCESS_ROOT", "")

    # Single-slot store for the granted folder
    capability_store: str = os.getenv(
        "CAPABILITY_STORE", str(Path.home() / ".mobius" / "handles.json")
    )

    commands_file: str = os.getenv(
        "COMMANDS_FILE", str(Path(__file__).parent.parent / "commands.yml")
    )

    # Provider priority order, first entry is the chain head
    provider_chain: list[str] = _split(os.getenv("PROVIDER_CHAIN", "groq,gemini,mistral"))
    default_provider: str = os.getenv("DEFAULT_PROVIDER", "groq").strip().lower()

    groq_api_key: str = os.getenv("GROQ_API_KEY", "")
    groq_model: str = os.getenv("GROQ_MODEL", "openai/gpt-oss-120b")
    groq_base_url: str = os.getenv("GROQ_BASE_URL", "https://api.groq.com/openai/v1")

    gemini_api_key: str = os.getenv("GEMINI_API_KEY", "")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    gemini_base_url: str = os.getenv(
        "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/openai/"
    )

    mistral_api_key: str = os.getenv("MISTRAL_API_KEY", "")
    mistral_model: str = os.getenv("MISTRAL_MODEL", "codestral-latest")
    mistral_base_url: str = os.getenv("MISTRAL_BASE_URL", "https://api.mistral.ai/v1")

    provider_timeout: float = float(os.getenv("PROVIDER_TIMEOUT", "60"))

    search_limit: int = int(os.getenv("SEARCH_LIMIT", "200"))

    location_url: str = os.getenv("LOCATION_URL", "https://ipapi.co/json/")
    location_timeout: float = float(os.getenv("LOCATION_TIMEOUT", "4"))

    # Web search for "ask: websearch ..."
    tavily_api_key: str = os.getenv("TAVILY_API_KEY", "")
    tavily_url: str = os.getenv("TAVILY_URL", "https://api.tavily.com/search")
    websearch_max_results: int = int(os.getenv("WEBSEARCH_MAX_RESULTS", "5"))
    websearch_timeout: float = float(os.getenv("WEBSEARCH_TIMEOUT", "15"))

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    def providers(self) -> list[ProviderSettings]:
        """Provider definitions in chain order; unknown names are skipped."""
        known = {
            "groq": ProviderSettings(
                name="groq", base_url=self.groq_base_url,
                model=self.groq_model, api_key=self.groq_api_key,
            ),
            "gemini": ProviderSettings(
                name="gemini", base_url=self.gemini_base_url,
                model=self.gemini_model, api_key=self.gemini_api_key, vision=True,
            ),
            "mistral": ProviderSettings(
                name="mistral", base_url=self.mistral_base_url,
                model=self.mistral_model, api_key=self.mistral_api_key,
            ),
        }
        return [known[name] for name in self.provider_chain if name in known]


settings = Settings()
