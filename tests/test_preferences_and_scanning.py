from scanner_client.preferences import PreferenceStore
from scanner_client.scanning import ScanStream


class TestPreferenceStore:
    def test_values_persist_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "preferences.json"
        store = PreferenceStore(path)
        store.set("identity", "dana@example.com")
        store.set("location", "Warehouse B")

        reopened = PreferenceStore(path)
        assert reopened.remembered_identity == "dana@example.com"
        assert reopened.get("location") == "Warehouse B"

        reopened.delete("location")
        assert PreferenceStore(path).get("location") is None

    def test_unreadable_file_starts_empty(self, tmp_path):
        path = tmp_path / "preferences.json"
        path.write_text("{not json", encoding="utf-8")
        assert PreferenceStore(path).get("identity", "none") == "none"

    def test_in_memory_store(self):
        store = PreferenceStore()
        store.set("identity", "lee@example.com")
        assert store.remembered_identity == "lee@example.com"


class TestScanStream:
    def test_blank_codes_are_skipped(self):
        stream = ScanStream(lambda: ["", " A-1 ", "   ", "B-2"]).start()
        assert list(stream) == ["A-1", "B-2"]
        assert not stream.active

    def test_not_started_yields_nothing(self):
        stream = ScanStream(lambda: ["A-1"])
        assert stream.next_code() is None

    def test_stop_closes_the_source(self):
        closed = []

        def camera():
            try:
                while True:
                    yield "A-1"
            finally:
                closed.append(True)

        stream = ScanStream(camera).start()
        assert stream.next_code() == "A-1"
        stream.stop()
        assert closed == [True]
        assert stream.next_code() is None

    def test_restart_calls_the_factory_again(self):
        starts = []

        def source():
            starts.append(1)
            return iter(["A-1", "B-2"])

        stream = ScanStream(source)
        assert stream.start().next_code() == "A-1"
        stream.stop()
        assert stream.start().next_code() == "A-1"
        assert len(starts) == 2
