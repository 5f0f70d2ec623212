# backend/utils/preferences_utils.py
import json
import logging
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# --- Store keys ---
USER_NAME_KEY = "user_name"
API_KEY_KEY = "api_key"
YOUTUBE_URL_KEY = "default_youtube_url"
INSTAGRAM_URL_KEY = "default_instagram_url"


class UserPreferences(BaseModel):
    user_name: str = Field("", alias="userName")
    api_key: Optional[str] = Field(None, alias="apiKey", description="Overrides GOOGLE_API_KEY for this user's runs.")
    default_youtube_url: str = Field("", alias="defaultYoutubeUrl")
    default_instagram_url: str = Field("", alias="defaultInstagramUrl")

    model_config = {"populate_by_name": True}

    def channel_url_for(self, platform: str) -> str:
        """Instagram and Reels targets use the Instagram channel, everything else YouTube."""
        if "instagram" in (platform or "").lower() or "reels" in (platform or "").lower():
            return self.default_instagram_url
        return self.default_youtube_url


class PublicPreferences(BaseModel):
    """What the HTTP API returns. The API key itself never leaves the server."""
    user_name: str = Field("", alias="userName")
    api_key_set: bool = Field(False, alias="apiKeySet")
    default_youtube_url: str = Field("", alias="defaultYoutubeUrl")
    default_instagram_url: str = Field("", alias="defaultInstagramUrl")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_preferences(cls, preferences: UserPreferences) -> "PublicPreferences":
        return cls(
            user_name=preferences.user_name,
            api_key_set=bool(preferences.api_key),
            default_youtube_url=preferences.default_youtube_url,
            default_instagram_url=preferences.default_instagram_url,
        )


# --- Key-value store abstraction ---
class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, value: str) -> None: ...


class InMemoryStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileStore:
    """Flat string map persisted as a JSON object. Writes replace the whole file."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read preferences file {self.path}: {e}. Using empty preferences.")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Preferences file {self.path} is not a JSON object. Ignoring it.")
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)


# --- Load / Save ---
def load_preferences(store: KeyValueStore) -> UserPreferences:
    return UserPreferences(
        user_name=store.get(USER_NAME_KEY) or "",
        api_key=store.get(API_KEY_KEY) or None,
        default_youtube_url=store.get(YOUTUBE_URL_KEY) or "",
        default_instagram_url=store.get(INSTAGRAM_URL_KEY) or "",
    )


def save_preferences(store: KeyValueStore, preferences: UserPreferences) -> None:
    store.set(USER_NAME_KEY, preferences.user_name)
    store.set(API_KEY_KEY, preferences.api_key or "")
    store.set(YOUTUBE_URL_KEY, preferences.default_youtube_url)
    store.set(INSTAGRAM_URL_KEY, preferences.default_instagram_url)
    logger.info(f"Saved preferences for user '{preferences.user_name or '[anonymous]'}'")
