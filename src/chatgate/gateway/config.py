from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class ProviderSettings:
    """Declarative description of one upstream provider."""

    id: str
    kind: str = "openai"
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    models: List[str] = field(default_factory=list)
    owned_by: Optional[str] = None
    enabled: bool = True


def _default_providers() -> Dict[str, ProviderSettings]:
    return {"demo": ProviderSettings(id="demo", kind="echo", models=["echo"])}


@dataclass
class GatewayConfig:
    host: str = "127.0.0.1"
    port: int = 13333
    log_path: str = "logs/chatgate.jsonl"
    max_log_bytes: int = 25_000_000
    log_requests: bool = False
    provider_timeout_ms: int = 120_000
    id_strategy: str = "random"  # "random" | "counter"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    providers: Dict[str, ProviderSettings] = field(default_factory=_default_providers)
    config_file_path: Optional[str] = None

    @classmethod
    def load(cls) -> "GatewayConfig":
        from .config_loader import load_gateway_config

        return load_gateway_config()

    def enabled_providers(self) -> List[ProviderSettings]:
        return [p for p in self.providers.values() if p.enabled]
