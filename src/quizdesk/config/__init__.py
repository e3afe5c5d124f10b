"""Configuration package for quizdesk."""

from quizdesk.config.app_config import (
    AppConfig,
    DocumentStoreConfig,
    QuestionApiConfig,
    SyncConfig,
    clear_config_cache,
    get_document_store_config,
    get_sync_config,
    load_app_config,
)

__all__ = [
    "AppConfig",
    "DocumentStoreConfig",
    "QuestionApiConfig",
    "SyncConfig",
    "clear_config_cache",
    "get_document_store_config",
    "get_sync_config",
    "load_app_config",
]
