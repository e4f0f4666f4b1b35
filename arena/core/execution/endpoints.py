"""Provider-specific endpoint defaults."""
from __future__ import annotations

from ..models import ProviderRecord

DEFAULT_ENDPOINTS: dict[str, str] = {
    "openai": "https://api.openai.com/v1",
    "deepseek": "https://api.deepseek.com/v1",
    "openrouter": "https://openrouter.ai/api/v1",
    "ollama": "http://localhost:11434/v1",
    "aihubmix": "https://aihubmix.com/v1",
}


def resolve_endpoint(record: ProviderRecord) -> str | None:
    configured = (record.base_url or "").strip()
    if configured:
        return configured.rstrip("/")
    return DEFAULT_ENDPOINTS.get(record.provider.strip().lower())


__all__ = ["DEFAULT_ENDPOINTS", "resolve_endpoint"]
