"""Local Cache Tests"""

from teamtodo.services.cache import LocalCache

from tests.factories import create_task


class TestLocalCache:
    """Tests for the TinyDB-backed cache"""

    def test_save_replaces_task_list(self, cache):
        cache.save_tasks([create_task(text="a"), create_task(text="b")])
        cache.save_tasks([create_task(text="c")])

        assert [row["text"] for row in cache.load_tasks()] == ["c"]

    def test_clear_tasks(self, cache):
        cache.save_tasks([create_task()])

        cache.clear_tasks()

        assert cache.load_tasks() == []

    def test_dark_mode_defaults_off(self, cache):
        assert cache.get_dark_mode() is False

    def test_dark_mode_round_trip_keeps_single_document(self, cache):
        cache.set_dark_mode(True)
        cache.set_dark_mode(False)
        cache.set_dark_mode(True)

        assert cache.get_dark_mode() is True
        assert len(cache.preferences.all()) == 1

    def test_survives_restart(self, tmp_path):
        path = tmp_path / "nested" / "cache.json"
        rows = [create_task(text="persisted", priority="高")]

        first = LocalCache(path)
        first.save_tasks(rows)
        first.set_dark_mode(True)
        first.close()

        second = LocalCache(path)
        try:
            assert second.load_tasks() == rows
            assert second.get_dark_mode() is True
        finally:
            second.close()
