import os
import threading

import pytest

from bluegreen.errors import ConfigMissingError, MalformedRecordError, NotFoundError, PersistError
from bluegreen.models import Pool
from bluegreen.store import ConfigStore, MemoryBackend, parse_record, strip_quotes


def memory_store(text: str, writable: bool = True) -> ConfigStore:
    return ConfigStore(MemoryBackend(text, writable=writable))


class TestGet:

    def test_reads_plain_value(self, store):
        assert store.get("ACTIVE_POOL") == "blue"
        assert store.get("NGINX_PORT") == "8080"

    def test_strips_surrounding_double_and_single_quotes(self, store):
        assert store.get("BLUE_APP_PORT") == "8081"
        assert store.get("GREEN_APP_PORT") == "8082"

    def test_keeps_embedded_quotes(self):
        store = memory_store("MOTTO=\"it's live\"\n")
        assert store.get("MOTTO") == "it's live"

    def test_first_matching_key_wins(self):
        store = memory_store("ACTIVE_POOL=green\nACTIVE_POOL=blue\n")
        assert store.get("ACTIVE_POOL") == "green"

    def test_longer_key_with_same_prefix_is_not_a_match(self):
        store = memory_store("ACTIVE_POOL_PREVIOUS=green\nACTIVE_POOL=blue\n")
        assert store.get("ACTIVE_POOL") == "blue"

    def test_value_may_contain_equals_sign(self):
        store = memory_store("DSN=postgres://u:p@db/app?sslmode=require\n")
        assert store.get("DSN") == "postgres://u:p@db/app?sslmode=require"

    def test_missing_key_raises_not_found(self, store):
        with pytest.raises(NotFoundError) as exc_info:
            store.get("RELEASE_ID")
        assert exc_info.value.key == "RELEASE_ID"

    def test_always_rereads_the_file(self, env_file, store):
        assert store.get("ACTIVE_POOL") == "blue"
        env_file.write_text(env_file.read_text().replace("ACTIVE_POOL=blue", "ACTIVE_POOL=green"))
        assert store.get("ACTIVE_POOL") == "green"

    def test_missing_file_is_a_config_error(self, tmp_path):
        store = ConfigStore.from_path(tmp_path / "absent.env")
        assert not store.exists()
        with pytest.raises(ConfigMissingError):
            store.get("ACTIVE_POOL")


class TestSet:

    def test_set_then_get_returns_new_value(self, store):
        store.set("ACTIVE_POOL", "green")
        assert store.get("ACTIVE_POOL") == "green"

    def test_round_trip_of_quoted_key(self, store):
        store.set("BLUE_APP_PORT", "9091")
        assert store.get("BLUE_APP_PORT") == "9091"

    def test_preserves_other_lines_and_order(self, env_file, store):
        before = env_file.read_text().splitlines()
        store.set("NGINX_PORT", "9090")
        after = env_file.read_text().splitlines()

        assert len(after) == len(before)
        assert after[2] == "NGINX_PORT=9090"
        assert [l for i, l in enumerate(after) if i != 2] == [l for i, l in enumerate(before) if i != 2]

    def test_replaces_only_the_first_matching_line(self):
        backend = MemoryBackend("ACTIVE_POOL=blue\nACTIVE_POOL=blue\n")
        ConfigStore(backend).set("ACTIVE_POOL", "green")
        assert backend.text == "ACTIVE_POOL=green\nACTIVE_POOL=blue\n"

    def test_last_line_without_newline(self):
        backend = MemoryBackend("NGINX_PORT=8080\nACTIVE_POOL=blue")
        ConfigStore(backend).set("ACTIVE_POOL", "green")
        assert backend.text == "NGINX_PORT=8080\nACTIVE_POOL=green\n"

    def test_missing_key_is_not_appended(self):
        backend = MemoryBackend("NGINX_PORT=8080\n")
        with pytest.raises(NotFoundError):
            ConfigStore(backend).set("ACTIVE_POOL", "green")
        assert backend.writes == 0
        assert backend.text == "NGINX_PORT=8080\n"

    def test_read_only_storage_raises_persist_error(self):
        store = memory_store("ACTIVE_POOL=blue\n", writable=False)
        with pytest.raises(PersistError):
            store.set("ACTIVE_POOL", "green")
        assert store.get("ACTIVE_POOL") == "blue"

    def test_multiline_value_is_rejected(self, store):
        with pytest.raises(PersistError):
            store.set("ACTIVE_POOL", "green\nNGINX_PORT=1")
        assert store.get("ACTIVE_POOL") == "blue"

    def test_write_replaces_file_instead_of_patching_it(self, env_file, store):
        inode_before = os.stat(env_file).st_ino
        store.set("ACTIVE_POOL", "green")
        assert os.stat(env_file).st_ino != inode_before

    def test_no_temporary_files_left_behind(self, env_file, store):
        store.set("ACTIVE_POOL", "green")
        leftovers = [p.name for p in env_file.parent.iterdir() if p.name.endswith(".tmp")]
        assert leftovers == []

    def test_failed_rename_keeps_record_and_cleans_up(self, env_file, store, monkeypatch):
        def fail_replace(src, dst):
            raise OSError(30, "Read-only file system")

        monkeypatch.setattr(os, "replace", fail_replace)
        with pytest.raises(PersistError) as exc_info:
            store.set("ACTIVE_POOL", "green")
        monkeypatch.undo()

        assert "Read-only file system" in str(exc_info.value)
        assert store.get("ACTIVE_POOL") == "blue"
        leftovers = [p.name for p in env_file.parent.iterdir() if p.name.endswith(".tmp")]
        assert leftovers == []

    def test_file_mode_is_preserved(self, env_file, store):
        os.chmod(env_file, 0o640)
        store.set("ACTIVE_POOL", "green")
        assert os.stat(env_file).st_mode & 0o777 == 0o640


class TestWriteGuard:

    def test_guard_is_reentrant_for_set(self, env_file, store):
        with store.write_guard():
            store.set("ACTIVE_POOL", "green")
            with store.write_guard():
                store.set("NGINX_PORT", "9090")
        assert store.get("ACTIVE_POOL") == "green"
        assert store.get("NGINX_PORT") == "9090"

    def test_creates_sidecar_lock_file(self, env_file, store):
        with store.write_guard():
            pass
        assert env_file.with_name(env_file.name + ".lock").exists()

    def test_concurrent_writers_never_corrupt_the_record(self, env_file, store):
        def writer(value):
            for _ in range(20):
                store.set("ACTIVE_POOL", value)

        threads = [threading.Thread(target=writer, args=(p,)) for p in ("blue", "green") * 3]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        record = parse_record(env_file.read_text())
        assert record["ACTIVE_POOL"] in {"blue", "green"}
        assert env_file.read_text().count("ACTIVE_POOL=") == 1


class TestSnapshot:

    def test_snapshot_parses_whole_record(self, store):
        config = store.snapshot()
        assert config.active_pool is Pool.BLUE
        assert config.nginx_port == 8080
        assert config.port_for(Pool.GREEN) == 8082
        assert config.app_internal_port is None

    def test_invalid_active_pool_is_malformed(self):
        store = memory_store("ACTIVE_POOL=yellow\nNGINX_PORT=1\nBLUE_APP_PORT=2\nGREEN_APP_PORT=3\n")
        with pytest.raises(MalformedRecordError) as exc_info:
            store.snapshot()
        assert exc_info.value.key == "ACTIVE_POOL"

    def test_missing_port_is_not_found(self):
        store = memory_store("ACTIVE_POOL=blue\nNGINX_PORT=1\nBLUE_APP_PORT=2\n")
        with pytest.raises(NotFoundError) as exc_info:
            store.snapshot()
        assert exc_info.value.key == "GREEN_APP_PORT"

    def test_non_numeric_port_is_malformed(self):
        store = memory_store("ACTIVE_POOL=blue\nNGINX_PORT=http\nBLUE_APP_PORT=2\nGREEN_APP_PORT=3\n")
        with pytest.raises(MalformedRecordError):
            store.snapshot()


class TestHelpers:

    def test_active_pool_rejects_unknown_value(self):
        with pytest.raises(MalformedRecordError):
            memory_store("ACTIVE_POOL=\n").active_pool()

    def test_strip_quotes(self):
        assert strip_quotes(' "blue" ') == "blue"
        assert strip_quotes("'green'") == "green"
        assert strip_quotes('a"b') == 'a"b'

    def test_parse_record_skips_comments_and_blank_lines(self):
        record = parse_record("# comment\n\nA=1\nA=2\nB='x'\n")
        assert record == {"A": "1", "B": "x"}
