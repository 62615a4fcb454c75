import json
import threading

from lumina.config import Settings, SettingsStore, UsageCounter


class TestSettingsStore:

    def test_missing_file_gives_defaults(self, tmp_path):
        store = SettingsStore(tmp_path / "nope" / "settings.json")
        settings = store.get_settings()
        assert settings == Settings()
        assert settings.name == "Student"

    def test_round_trip_ignores_unknown_keys(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"name": "Asha", "groq_api_key": "g", "profileImage": None}))
        settings = SettingsStore(path).get_settings()
        assert settings.name == "Asha"
        assert settings.groq_api_key == "g"

    def test_corrupt_file_gives_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        assert SettingsStore(path).get_settings() == Settings()

    def test_default_path_uses_lumina_home(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LUMINA_HOME", str(tmp_path))
        assert SettingsStore().path == tmp_path / "settings.json"

    def test_groq_usage_persists(self, make_store):
        store = make_store(groq_usage=5)
        assert store.update_groq_usage(20) == 25
        assert SettingsStore(store.path).get_settings().groq_usage == 25


class TestUsageCounter:

    def test_add_and_reset_at_threshold(self):
        counter = UsageCounter(threshold=100)
        assert counter.add(60) == 60
        assert counter.add(50) == 0
        assert counter.add(10) == 10

    def test_non_positive_ignored(self):
        seen = []
        counter = UsageCounter(initial=7, on_change=seen.append)
        assert counter.add(0) == 7
        assert seen == []

    def test_concurrent_adds_are_not_lost(self):
        counter = UsageCounter(threshold=10**9)

        def worker():
            for _ in range(1000):
                counter.add(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert counter.value == 8000
