import json

from utils.preferences_utils import (
    InMemoryStore,
    PublicPreferences,
    JsonFileStore,
    UserPreferences,
    load_preferences,
    save_preferences,
)


def test_empty_store_gives_defaults():
    prefs = load_preferences(InMemoryStore())
    assert prefs.user_name == ""
    assert prefs.api_key is None
    assert prefs.default_youtube_url == ""


def test_save_then_load_in_memory():
    store = InMemoryStore()
    save_preferences(store, UserPreferences(user_name="Asha", api_key="key-1",
                                            default_youtube_url="https://youtube.com/@pw"))
    prefs = load_preferences(store)
    assert prefs.user_name == "Asha"
    assert prefs.api_key == "key-1"
    assert prefs.default_youtube_url == "https://youtube.com/@pw"


def test_blank_api_key_loads_as_none():
    store = InMemoryStore({"api_key": ""})
    assert load_preferences(store).api_key is None


def test_channel_url_for_platform():
    prefs = UserPreferences(default_youtube_url="yt", default_instagram_url="ig")
    assert prefs.channel_url_for("YouTube") == "yt"
    assert prefs.channel_url_for("Shorts") == "yt"
    assert prefs.channel_url_for("Instagram") == "ig"
    assert prefs.channel_url_for("Reels") == "ig"


def test_json_file_store_persists(tmp_path):
    path = tmp_path / "nested" / "prefs.json"
    save_preferences(JsonFileStore(path), UserPreferences(user_name="Asha", default_instagram_url="ig"))
    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk["user_name"] == "Asha"
    assert load_preferences(JsonFileStore(path)).default_instagram_url == "ig"


def test_json_file_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / "prefs.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonFileStore(path)
    assert store.get("user_name") is None
    store.set("user_name", "Asha")
    assert store.get("user_name") == "Asha"


def test_wire_aliases():
    prefs = UserPreferences.model_validate({"userName": "Asha", "defaultInstagramUrl": "ig"})
    assert prefs.user_name == "Asha"
    assert prefs.model_dump(by_alias=True)["defaultInstagramUrl"] == "ig"


def test_public_view_hides_api_key():
    public = PublicPreferences.from_preferences(UserPreferences(user_name="Asha", api_key="key-1"))
    dumped = public.model_dump(by_alias=True)
    assert dumped["apiKeySet"] is True
    assert "apiKey" not in dumped
    assert "key-1" not in public.model_dump_json()
    assert PublicPreferences.from_preferences(UserPreferences()).api_key_set is False
