from __future__ import annotations

from typing import Any, Dict, Optional, Type

from ..config import backend_settings
from .base import Backend
from .supabase import SupabaseBackend

AVAILABLE_BACKENDS: Dict[str, Type[SupabaseBackend]] = {
    "supabase": SupabaseBackend,
}


def get_backend(config: Dict[str, Any]) -> Optional[Backend]:
    """Build the configured backend, or None when its settings are missing."""
    name = config.get("backend", "supabase")
    backend_class = AVAILABLE_BACKENDS.get(name)
    if not backend_class:
        raise ValueError(f"Unknown backend: {name}")
    url, key = backend_settings(config)
    if not url or not key:
        return None
    return backend_class(url, key)
