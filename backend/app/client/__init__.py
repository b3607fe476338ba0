"""
Client-side helpers for presenting and acting on rule suggestions.
"""

from app.client.dismissals import (
    DISMISSED_PATTERNS_KEY,
    DismissalStore,
    KeyValueDismissalStore,
    JsonFileStore,
)
from app.client.suggestions import (
    AcceptInProgressError,
    ApiSuggestionBackend,
    SuggestionBackend,
    SuggestionLifecycleManager,
    SuggestionState,
    create_lifecycle_manager,
)

__all__ = [
    "DISMISSED_PATTERNS_KEY",
    "DismissalStore",
    "KeyValueDismissalStore",
    "JsonFileStore",
    "AcceptInProgressError",
    "ApiSuggestionBackend",
    "SuggestionBackend",
    "SuggestionLifecycleManager",
    "SuggestionState",
    "create_lifecycle_manager",
]
