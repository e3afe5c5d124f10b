"""Application configuration loader.

Loads centralized configuration from data/config/app_config_v1.yaml
with fallback to built-in defaults.

Usage:
    from quizdesk.config.app_config import load_app_config, get_sync_config

    config = load_app_config()
    url = config.document_store.collection_url("users")
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/app_config_v1.yaml")


@dataclass
class DocumentStoreConfig:
    """Where the user profile documents live."""

    base_url: str = "https://firestore.googleapis.com/v1"
    project_id: str = "quiz-app-ff0ab"
    database: str = "(default)"
    users_collection: str = "users"
    timeout: float = 15.0
    api_key_env: str | None = None

    def collection_url(self, collection: str | None = None) -> str:
        """Build the REST URL for a collection (users by default)."""
        name = collection or self.users_collection
        return (
            f"{self.base_url.rstrip('/')}/projects/{self.project_id}"
            f"/databases/{self.database}/documents/{name}"
        )

    def get_api_key(self) -> str | None:
        """Get API key from environment variable."""
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        return None


@dataclass
class SyncConfig:
    """Profile synchronizer settings."""

    refresh_interval: float = 30.0
    sessions_key: str = "multitab_sessions"
    tab_id_key: str = "tab_id"
    storage_path: str | None = None


@dataclass
class QuestionApiConfig:
    """Question CRUD endpoints per portal."""

    base_url: str = "http://localhost:3000"
    teacher_endpoint: str = "/api/teacher/questions"
    creator_endpoint: str = "/api/oup-creator/questions"

    def endpoint_for(self, role: str) -> str:
        if role == "content_creator":
            return self.creator_endpoint
        return self.teacher_endpoint


@dataclass
class AppConfig:
    """Application-wide configuration."""

    document_store: DocumentStoreConfig = field(default_factory=DocumentStoreConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    question_api: QuestionApiConfig = field(default_factory=QuestionApiConfig)


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "document_store": {
            "base_url": "https://firestore.googleapis.com/v1",
            "project_id": "quiz-app-ff0ab",
            "database": "(default)",
            "users_collection": "users",
            "timeout": 15.0,
            "api_key_env": None,
        },
        "sync": {
            "refresh_interval": 30.0,
            "sessions_key": "multitab_sessions",
            "tab_id_key": "tab_id",
            "storage_path": None,
        },
        "question_api": {
            "base_url": "http://localhost:3000",
            "teacher_endpoint": "/api/teacher/questions",
            "creator_endpoint": "/api/oup-creator/questions",
        },
    }


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    defaults = _get_defaults()

    store_data = {**defaults["document_store"], **(data.get("document_store") or {})}
    document_store = DocumentStoreConfig(
        base_url=store_data["base_url"],
        project_id=store_data["project_id"],
        database=store_data["database"],
        users_collection=store_data["users_collection"],
        timeout=float(store_data["timeout"]),
        api_key_env=store_data.get("api_key_env"),
    )

    sync_data = {**defaults["sync"], **(data.get("sync") or {})}
    sync = SyncConfig(
        refresh_interval=float(sync_data["refresh_interval"]),
        sessions_key=sync_data["sessions_key"],
        tab_id_key=sync_data["tab_id_key"],
        storage_path=sync_data.get("storage_path"),
    )

    api_data = {**defaults["question_api"], **(data.get("question_api") or {})}
    question_api = QuestionApiConfig(
        base_url=api_data["base_url"],
        teacher_endpoint=api_data["teacher_endpoint"],
        creator_endpoint=api_data["creator_endpoint"],
    )

    return AppConfig(document_store=document_store, sync=sync, question_api=question_api)


def load_app_config(force_reload: bool = False, config_path: Path | None = None) -> AppConfig:
    """Load application config, falling back to defaults.

    Args:
        force_reload: If True, ignore cached config and reload from file.
        config_path: Alternate YAML file (defaults to CONFIG_FILE).

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload and config_path is None:
        return _cached_config

    path = config_path or CONFIG_FILE
    data: dict[str, Any]

    if path.exists():
        logger.debug("loading_app_config", source=str(path))
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    else:
        logger.info("using_default_config", missing=str(path))
        data = _get_defaults()

    _cached_config = _parse_config(data)
    return _cached_config


def get_sync_config() -> SyncConfig:
    """Get synchronizer settings from the loaded config."""
    return load_app_config().sync


def get_document_store_config() -> DocumentStoreConfig:
    """Get document store settings from the loaded config."""
    return load_app_config().document_store


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
