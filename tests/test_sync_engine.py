"""Tests for the sync engine."""

import io
import itertools
import os

import pytest
from rich.console import Console

from mfssync.exceptions import MfsAPIError, MfsConfigError, MfsNetworkError
from mfssync.output import OutputFormatter
from mfssync.sync import RunOutcome, SyncConfig, SyncEngine, SyncPhase


def write(path, content):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content.encode() if isinstance(content, str) else content)
    return path


@pytest.fixture
def sync_engine(fake_mfs, mock_output):
    """Create a sync engine bound to the in-memory store."""
    return SyncEngine(fake_mfs, mock_output)


class TestRunValidation:
    """Argument checks before anything touches the store."""

    def test_create_sync_engine(self, fake_mfs, mock_output):
        engine = SyncEngine(fake_mfs, mock_output)
        assert engine.client is fake_mfs
        assert engine.output is mock_output
        assert engine.operations is not None
        assert engine.phase == SyncPhase.INIT

    def test_missing_source(self, sync_engine, temp_dir):
        with pytest.raises(ValueError, match="does not exist"):
            sync_engine.run(temp_dir / "nonexistent", "/dst", SyncConfig())

    def test_source_is_file(self, sync_engine, temp_dir):
        test_file = write(temp_dir / "test.txt", "test")
        with pytest.raises(ValueError, match="not a directory"):
            sync_engine.run(test_file, "/dst", SyncConfig())

    def test_relative_destination(self, sync_engine, temp_dir, fake_mfs):
        with pytest.raises(MfsConfigError, match="absolute"):
            sync_engine.run(temp_dir, "dst", SyncConfig())
        assert fake_mfs.calls == []


class TestInitialSync:
    """Syncing into a destination that does not exist yet."""

    def test_mirrors_tree(self, sync_engine, temp_dir, fake_mfs):
        src = temp_dir / "src"
        write(src / "a.txt", "alpha")
        write(src / "docs" / "b.txt", "bravo")
        write(src / "docs" / "deep" / "c.txt", "charlie")
        (src / "empty").mkdir()

        result = sync_engine.run(src, "/backup/src", SyncConfig())

        assert fake_mfs.snapshot("/backup/src") == {
            "a.txt": b"alpha",
            "docs": {"b.txt": b"bravo", "deep": {"c.txt": b"charlie"}},
            "empty": {},
        }
        assert result.errors == 0
        assert result.exit_code == 0
        assert result.outcome == RunOutcome.SUCCESS
        assert result.root_hash == fake_mfs.files_stat("/backup/src").hash
        assert result.stats["uploads"] == 3
        assert result.stats["directories_created"] == 4

    def test_uploads_are_unpinned(self, sync_engine, temp_dir, fake_mfs):
        write(temp_dir / "a.txt", "alpha")
        calls = []
        real_add = fake_mfs.add

        def add(file_path, nocopy=False, pin=False):
            calls.append((nocopy, pin))
            return real_add(file_path, nocopy=nocopy, pin=pin)

        fake_mfs.add = add
        sync_engine.run(temp_dir, "/dst", SyncConfig(nocopy=True))
        assert calls == [(True, False)]

    def test_phases_run_in_order(self, sync_engine, temp_dir, fake_mfs):
        write(temp_dir / "a.txt", "alpha")
        result = sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert sync_engine.phase == SyncPhase.REPORT
        # One flush after the walk, one after the symlink pass
        assert fake_mfs.flushed == ["/dst", "/dst"]
        assert result.stats["flushes"] == 2


class TestIdempotence:
    """A second run over an unchanged tree changes nothing."""

    def test_second_run_uploads_nothing(self, sync_engine, temp_dir, fake_mfs):
        write(temp_dir / "a.txt", "alpha")
        write(temp_dir / "sub" / "b.txt", "bravo")

        first = sync_engine.run(temp_dir, "/dst", SyncConfig())
        fake_mfs.calls.clear()
        second = sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert second.root_hash == first.root_hash
        assert second.stats["uploads"] == 0
        assert second.stats["skips"] == 2
        assert fake_mfs.call_count("add") == 0
        assert fake_mfs.call_count("cp") == 0
        assert fake_mfs.call_count("rm") == 0
        assert fake_mfs.call_count("mkdir") == 0

    def test_matches_independently_built_tree(self, sync_engine, temp_dir, fake_mfs):
        write(temp_dir / "a.txt", "alpha")
        write(temp_dir / "sub" / "b.txt", "bravo")
        result = sync_engine.run(temp_dir, "/dst", SyncConfig())

        fake_mfs.put("/expected/a.txt", "alpha")
        fake_mfs.put("/expected/sub/b.txt", "bravo")
        assert result.root_hash == fake_mfs.files_stat("/expected").hash


class TestReconciliation:
    """Remote state differing from the local tree."""

    def test_stale_entries_removed_recursively(
        self, sync_engine, temp_dir, fake_mfs
    ):
        write(temp_dir / "keep.txt", "keep")
        fake_mfs.put("/dst/keep.txt", "keep")
        fake_mfs.put("/dst/old.txt", "old")
        fake_mfs.put("/dst/olddir/nested/x.txt", "x")
        fake_mfs.put("/dst/olddir/y.txt", "y")

        result = sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert fake_mfs.snapshot("/dst") == {"keep.txt": b"keep"}
        assert result.stats["deletes_remote"] == 2
        assert result.errors == 0

    def test_remote_names_equal_local_names(self, sync_engine, temp_dir, fake_mfs):
        for name in ("one", "two", "three"):
            write(temp_dir / name, name)
        fake_mfs.put("/dst/two", "two")
        fake_mfs.put("/dst/four", "four")
        fake_mfs.put("/dst/five", {})

        sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert set(fake_mfs.snapshot("/dst")) == set(os.listdir(temp_dir))

    def test_remote_directory_replaced_by_file(
        self, sync_engine, temp_dir, fake_mfs
    ):
        write(temp_dir / "thing", "now a file")
        fake_mfs.put("/dst/thing/inner.txt", "old")

        result = sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert fake_mfs.snapshot("/dst") == {"thing": b"now a file"}
        assert result.stats["uploads"] == 1

    def test_remote_file_replaced_by_directory(
        self, sync_engine, temp_dir, fake_mfs
    ):
        write(temp_dir / "thing" / "inner.txt", "inner")
        fake_mfs.put("/dst/thing", "was a file")

        result = sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert fake_mfs.snapshot("/dst") == {"thing": {"inner.txt": b"inner"}}
        assert result.errors == 0

    def test_destination_that_is_a_file_is_replaced(
        self, sync_engine, temp_dir, fake_mfs
    ):
        write(temp_dir / "a.txt", "alpha")
        fake_mfs.put("/dst", "not a directory")

        result = sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert fake_mfs.snapshot("/dst") == {"a.txt": b"alpha"}
        assert result.stats["directories_created"] == 1
        assert result.errors == 0

    def test_directory_holding_its_namesake_is_kept(
        self, sync_engine, temp_dir, fake_mfs
    ):
        write(temp_dir / "dst", "same name")
        fake_mfs.put("/dst/dst", "same name")

        result = sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert fake_mfs.snapshot("/dst") == {"dst": b"same name"}
        assert result.stats["directories_created"] == 0
        assert fake_mfs.call_count("add") == 0

    def test_unlistable_directory_is_recreated(
        self, sync_engine, temp_dir, fake_mfs
    ):
        write(temp_dir / "sub" / "a.txt", "alpha")
        fake_mfs.put("/dst/sub/old.txt", "old")
        fake_mfs.fail_ls.add("/dst/sub")

        result = sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert fake_mfs.snapshot("/dst") == {"sub": {"a.txt": b"alpha"}}
        assert result.stats["directories_created"] == 1
        assert result.errors == 0

    def test_network_error_while_listing_is_fatal(
        self, sync_engine, temp_dir, fake_mfs
    ):
        write(temp_dir / "a.txt", "alpha")

        def unreachable(path):
            raise MfsNetworkError("Network error: connection refused")

        fake_mfs.files_ls = unreachable
        with pytest.raises(MfsNetworkError):
            sync_engine.run(temp_dir, "/dst", SyncConfig())


class TestChangeDetection:
    """Size comparison and change-time gating."""

    def test_size_change_is_uploaded(self, sync_engine, temp_dir, fake_mfs):
        path = write(temp_dir / "a.txt", "alpha")
        sync_engine.run(temp_dir, "/dst", SyncConfig())
        path.write_text("alphabet")

        result = sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert fake_mfs.snapshot("/dst") == {"a.txt": b"alphabet"}
        assert result.stats["uploads"] == 1

    def test_same_size_edit_is_not_detected(self, sync_engine, temp_dir, fake_mfs):
        path = write(temp_dir / "a.txt", "alpha")
        sync_engine.run(temp_dir, "/dst", SyncConfig())
        path.write_text("ALPHA")

        result = sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert fake_mfs.snapshot("/dst") == {"a.txt": b"alpha"}
        assert result.stats["uploads"] == 0

    def test_threshold_in_future_skips_existing(
        self, sync_engine, temp_dir, fake_mfs
    ):
        path = write(temp_dir / "a.txt", "alpha")
        sync_engine.run(temp_dir, "/dst", SyncConfig())
        path.write_text("changed length")
        write(temp_dir / "new.txt", "new")

        config = SyncConfig(sync_from=2**40)
        result = sync_engine.run(temp_dir, "/dst", config)

        assert fake_mfs.snapshot("/dst") == {
            "a.txt": b"alpha",
            "new.txt": b"new",
        }
        assert fake_mfs.added[-1:] == ["new.txt"]
        assert result.stats["uploads"] == 1

    def test_threshold_zero_uploads_everything(
        self, sync_engine, temp_dir, fake_mfs
    ):
        write(temp_dir / "a.txt", "alpha")
        write(temp_dir / "b.txt", "bravo")
        sync_engine.run(temp_dir, "/dst", SyncConfig())
        fake_mfs.added.clear()

        result = sync_engine.run(temp_dir, "/dst", SyncConfig(sync_from=0))

        assert sorted(fake_mfs.added) == ["a.txt", "b.txt"]
        assert result.stats["uploads"] == 2


class TestSymlinks:
    """Symlinks are materialized as copies of their target."""

    def test_file_symlink_copied(self, sync_engine, temp_dir, fake_mfs):
        write(temp_dir / "data" / "file.txt", "payload")
        (temp_dir / "docs").mkdir()
        os.symlink("../data/file.txt", temp_dir / "docs" / "link")

        result = sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert fake_mfs.snapshot("/dst/docs") == {"link": b"payload"}
        assert result.stats["symlinks_deferred"] == 1
        assert result.stats["symlinks_copied"] == 1
        assert result.errors == 0

    def test_directory_symlink_copied(self, sync_engine, temp_dir, fake_mfs):
        write(temp_dir / "real" / "x.txt", "x")
        os.symlink("real", temp_dir / "alias")

        sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert fake_mfs.snapshot("/dst/alias") == {"x.txt": b"x"}

    def test_symlink_target_synced_in_same_run(
        self, sync_engine, temp_dir, fake_mfs
    ):
        write(temp_dir / "z_target.txt", "fresh")
        os.symlink("z_target.txt", temp_dir / "a_link")

        sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert fake_mfs.snapshot("/dst")["a_link"] == b"fresh"

    def test_second_run_leaves_symlink_alone(self, sync_engine, temp_dir, fake_mfs):
        write(temp_dir / "file.txt", "payload")
        os.symlink("file.txt", temp_dir / "link")
        first = sync_engine.run(temp_dir, "/dst", SyncConfig())
        fake_mfs.calls.clear()

        second = sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert second.root_hash == first.root_hash
        assert second.stats["symlinks_unchanged"] == 1
        assert second.stats["symlinks_copied"] == 0
        assert fake_mfs.call_count("cp") == 0
        assert fake_mfs.call_count("rm") == 0

    def test_changed_target_updates_symlink_copy(
        self, sync_engine, temp_dir, fake_mfs
    ):
        target = write(temp_dir / "file.txt", "payload")
        os.symlink("file.txt", temp_dir / "link")
        sync_engine.run(temp_dir, "/dst", SyncConfig())
        target.write_text("new payload")

        sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert fake_mfs.snapshot("/dst")["link"] == b"new payload"

    def test_dangling_symlink_is_an_error(self, sync_engine, temp_dir, fake_mfs):
        write(temp_dir / "a.txt", "alpha")
        os.symlink("missing.txt", temp_dir / "broken")

        result = sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert result.errors == 1
        assert result.exit_code == 1
        assert fake_mfs.snapshot("/dst") == {"a.txt": b"alpha"}

    def test_symlink_to_own_directory_does_not_nest(
        self, sync_engine, temp_dir, fake_mfs
    ):
        write(temp_dir / "sub" / "f.txt", "f")
        os.symlink(".", temp_dir / "sub" / "self")

        hashes = []
        for _ in range(3):
            result = sync_engine.run(temp_dir, "/dst", SyncConfig())
            hashes.append(result.root_hash)
            assert result.errors == 1
            assert result.stats["symlinks_copied"] == 0

        assert len(set(hashes)) == 1
        assert fake_mfs.snapshot("/dst") == {"sub": {"f.txt": b"f"}}

    def test_symlink_outside_root_is_an_error(self, sync_engine, temp_dir, fake_mfs):
        outside = write(temp_dir / "outside.txt", "secret")
        src = temp_dir / "src"
        src.mkdir()
        os.symlink(outside, src / "escape")

        result = sync_engine.run(src, "/dst", SyncConfig())

        assert result.errors == 1
        assert "outside" in result.failures[0].cause
        assert fake_mfs.snapshot("/dst") == {}


class TestContinueOnError:
    """A failing entry never aborts the run."""

    def test_failed_upload_counted(self, sync_engine, temp_dir, fake_mfs, mock_output):
        write(temp_dir / "good.txt", "good")
        write(temp_dir / "bad.txt", "bad")
        write(temp_dir / "sub" / "also_good.txt", "fine")
        fake_mfs.fail_add.add("bad.txt")

        result = sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert result.errors == 1
        assert result.exit_code == 1
        assert result.outcome == RunOutcome.SUCCESS_WITH_ERRORS
        assert fake_mfs.snapshot("/dst") == {
            "good.txt": b"good",
            "sub": {"also_good.txt": b"fine"},
        }
        assert result.failures[0].identity.endswith("bad.txt")
        message = mock_output.error.call_args[0][0]
        assert message.startswith("Error processing ")
        assert "bad.txt" in message

    def test_failed_entry_keeps_remote_copy(self, sync_engine, temp_dir, fake_mfs):
        path = write(temp_dir / "bad.txt", "bad")
        sync_engine.run(temp_dir, "/dst", SyncConfig())
        path.write_text("bad and longer")
        fake_mfs.fail_add.add("bad.txt")

        result = sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert result.errors == 1
        assert fake_mfs.snapshot("/dst") == {"bad.txt": b"bad"}

    def test_errors_in_nested_directories_are_summed(
        self, sync_engine, temp_dir, fake_mfs
    ):
        write(temp_dir / "a" / "bad1", "1")
        write(temp_dir / "a" / "b" / "bad2", "2")
        write(temp_dir / "bad3", "3")
        fake_mfs.fail_add.update({"bad1", "bad2", "bad3"})

        result = sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert result.errors == 3
        assert len(result.failures) == 3


class TestFlushing:
    """Explicit flushes during the walk."""

    def test_store_autoflush_follows_interval(self, sync_engine, temp_dir, fake_mfs):
        write(temp_dir / "a.txt", "alpha")

        sync_engine.run(temp_dir, "/dst", SyncConfig())
        assert fake_mfs.autoflush is False

        sync_engine.run(temp_dir, "/dst", SyncConfig(flush_interval=0))
        assert fake_mfs.autoflush is True

    def test_interval_flushes_during_walk(self, sync_engine, temp_dir, fake_mfs):
        for i in range(6):
            write(temp_dir / f"f{i}.txt", str(i))
        ticks = itertools.count()

        result = sync_engine.run(
            temp_dir,
            "/dst",
            SyncConfig(flush_interval=2.5),
            clock=lambda: float(next(ticks)),
        )

        # Clock reads 1..6 on the six uploads: flushes at 1 and at 4
        assert result.stats["flushes"] == 4
        assert len(fake_mfs.flushed) == 4

    def test_failed_interval_flush_is_its_own_error(
        self, sync_engine, temp_dir, fake_mfs
    ):
        write(temp_dir / "a.txt", "alpha")
        ticks = itertools.count(1)
        real_flush = fake_mfs.files_flush
        attempts = []

        def flaky_flush(path="/"):
            attempts.append(path)
            if len(attempts) == 1:
                raise MfsAPIError("flush failed")
            return real_flush(path)

        fake_mfs.files_flush = flaky_flush
        result = sync_engine.run(
            temp_dir,
            "/dst",
            SyncConfig(flush_interval=2.5),
            clock=lambda: float(next(ticks)),
        )

        assert result.errors == 1
        assert result.failures[0].identity == "flush /dst"
        assert "flush failed" in result.failures[0].cause
        assert result.stats["uploads"] == 1
        assert fake_mfs.snapshot("/dst") == {"a.txt": b"alpha"}

    def test_no_interval_only_phase_flushes(self, sync_engine, temp_dir, fake_mfs):
        for i in range(5):
            write(temp_dir / f"f{i}.txt", str(i))

        result = sync_engine.run(temp_dir, "/dst", SyncConfig())

        assert result.stats["flushes"] == 2
        assert len(fake_mfs.flushed) == 2


class TestPhases:
    """Phase ordering."""

    def test_reentering_phase_raises(self, sync_engine):
        sync_engine._enter_phase(SyncPhase.TREE_WALK)
        with pytest.raises(RuntimeError, match="Cannot enter phase"):
            sync_engine._enter_phase(SyncPhase.TREE_WALK)

    def test_skipping_phase_raises(self, sync_engine):
        with pytest.raises(RuntimeError):
            sync_engine._enter_phase(SyncPhase.SYMLINK_PASS)

    def test_engine_can_run_twice(self, sync_engine, temp_dir):
        write(temp_dir / "a.txt", "alpha")
        sync_engine.run(temp_dir, "/dst", SyncConfig())
        sync_engine.run(temp_dir, "/dst", SyncConfig())
        assert sync_engine.phase == SyncPhase.REPORT


class TestProgressOutput:
    """Verbosity-controlled progress lines."""

    def _formatter(self, verbosity):
        stdout = io.StringIO()
        output = OutputFormatter(
            verbosity=verbosity,
            console=Console(file=stdout, highlight=False, soft_wrap=True),
            err_console=Console(file=io.StringIO()),
        )
        return output, stdout

    def test_quiet_run_prints_nothing(self, fake_mfs, temp_dir):
        write(temp_dir / "a.txt", "alpha")
        output, stdout = self._formatter(0)

        SyncEngine(fake_mfs, output).run(temp_dir, "/dst", SyncConfig())

        assert stdout.getvalue() == ""

    def test_verbose_run_prints_uploads(self, fake_mfs, temp_dir):
        write(temp_dir / "a.txt", "alpha")
        output, stdout = self._formatter(1)

        SyncEngine(fake_mfs, output).run(temp_dir, "/dst", SyncConfig())

        lines = stdout.getvalue().splitlines()
        assert any(line.endswith("→ /dst/a.txt") for line in lines)
        assert not any(line.startswith("Entering") for line in lines)

    def test_very_verbose_run_prints_directories(self, fake_mfs, temp_dir):
        write(temp_dir / "sub" / "a.txt", "alpha")
        os.symlink("sub/a.txt", temp_dir / "link")
        output, stdout = self._formatter(2)

        SyncEngine(fake_mfs, output).run(temp_dir, "/dst", SyncConfig())

        text = stdout.getvalue()
        assert "Entering /dst/sub" in text
        assert "Postponing symlink link" in text
