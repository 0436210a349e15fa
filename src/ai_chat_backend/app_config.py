from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from ai_chat_backend.capability import ProviderCapability
from ai_chat_backend.providers.openai_client import DEFAULT_BASE_URL
from ai_chat_backend.providers.request_builder import DEFAULT_MODEL_ALIASES, DEFAULT_MODELS

DEFAULT_PUBLIC_FILE_BASE_URL = "http://localhost:8080/api/files/"


@dataclass
class RuntimeEnv:
    provider_api_key: str
    provider_env_var: str


@dataclass
class AppConfig:
    provider_name: str
    provider_base_url: str
    models: dict[str, str]
    model_aliases: dict[str, dict[str, str]]
    max_tokens: int
    temperature: float
    text_timeout_seconds: float
    image_timeout_seconds: float
    image_size: str
    image_quality: str
    image_detail: str
    public_file_base_url: str | None
    upload_dir: str
    db_path: str
    orphan_retention_hours: int
    prune_on_startup: bool
    owner_id: str
    session_id: str | None
    log_level: str
    log_consumers: list | None = field(default=None)


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def _parse_models(raw: object) -> dict[str, str]:
    models = dict(DEFAULT_MODELS)
    if isinstance(raw, dict):
        known = {c.value for c in ProviderCapability}
        for key, value in raw.items():
            name = str(key).strip().lower()
            if name in known and str(value).strip():
                models[name] = str(value).strip()
    return models


def _parse_aliases(raw: object) -> dict[str, dict[str, str]]:
    if not isinstance(raw, dict):
        return {alias: dict(targets) for alias, targets in DEFAULT_MODEL_ALIASES.items()}
    aliases: dict[str, dict[str, str]] = {}
    for alias, targets in raw.items():
        if isinstance(targets, str):
            # A bare string aliases every capability to the same model.
            aliases[str(alias)] = {c.value: targets for c in ProviderCapability}
        elif isinstance(targets, dict):
            aliases[str(alias)] = {str(k).strip().lower(): str(v) for k, v in targets.items()}
    return aliases


def parse_app_config(config: dict) -> AppConfig:
    return AppConfig(
        provider_name=config.get("Provider", "openrouter").strip().lower(),
        provider_base_url=str(config.get("ProviderBaseUrl", DEFAULT_BASE_URL)).strip(),
        models=_parse_models(config.get("Models")),
        model_aliases=_parse_aliases(config.get("ModelAliases")),
        max_tokens=int(config.get("MaxTokens", 1000)),
        temperature=float(config.get("Temperature", 0.7)),
        text_timeout_seconds=float(config.get("TextTimeoutSeconds", 30)),
        image_timeout_seconds=float(config.get("ImageTimeoutSeconds", 60)),
        image_size=str(config.get("ImageSize", "1024x1024")),
        image_quality=str(config.get("ImageQuality", "standard")),
        image_detail=str(config.get("ImageDetail", "auto")),
        public_file_base_url=str(config.get("PublicFileBaseUrl", DEFAULT_PUBLIC_FILE_BASE_URL)).strip() or None,
        upload_dir=str(config.get("UploadDir", ".ai_chat/uploads")),
        db_path=str(config.get("DbPath", ".ai_chat/chat.db")),
        orphan_retention_hours=int(config.get("OrphanRetentionHours", 24)),
        prune_on_startup=_to_bool(config.get("PruneOnStartup", True), default=True),
        owner_id=str(config.get("OwnerId", "local-user")).strip() or "local-user",
        session_id=str(config.get("SessionId", "")).strip() or None,
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    for env_var in ("OPENROUTER_API_KEY", "OPENAI_API_KEY"):
        value = os.environ.get(env_var, "").strip()
        if value:
            return RuntimeEnv(provider_api_key=value, provider_env_var=env_var)
    return RuntimeEnv(provider_api_key="", provider_env_var="OPENROUTER_API_KEY")
