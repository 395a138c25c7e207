"""Tests for the sync engine."""

import json
from pathlib import Path
from unittest.mock import Mock

import click
import pytest

from dirsync.exceptions import (
    DirsyncConfigError,
    DirsyncCopyError,
    DirsyncPreconditionError,
    DirsyncUnsupportedError,
)
from dirsync.output import OutputFormatter
from dirsync.sync import (
    CONFIG_FILE_NAME,
    ERROR_REPORT_FILE_NAME,
    ConfigStore,
    DecisionKind,
    ScriptedDecisionProvider,
    StaticDecisionProvider,
    SyncEngine,
    SyncOperations,
    validate_roots,
)


def make_root(path: Path, entries=()) -> Path:
    """Create a root with the given files (folders end with '/')."""
    path.mkdir(parents=True, exist_ok=True)
    for entry in entries:
        if entry.endswith("/"):
            (path / entry).mkdir(parents=True, exist_ok=True)
        else:
            (path / entry).parent.mkdir(parents=True, exist_ok=True)
            (path / entry).write_text(entry)
    return path


def read_config(root: Path) -> dict:
    return json.loads((root / CONFIG_FILE_NAME).read_text())


def policy_of(root: Path, identity_root: Path) -> dict:
    """Get the stored policy of ``identity_root`` from the config of ``root``."""
    identity = read_config(identity_root)["thisDirUuid"]
    for entry in read_config(root)["dirs"]:
        if entry["uuid"] == identity:
            return entry
    raise AssertionError(f"no policy for {identity_root}")


def kinds(decider):
    return [request.kind for request in decider.requests]


@pytest.fixture
def mock_output():
    """Create a mock output formatter."""
    output = Mock(spec=OutputFormatter)
    output.silent = True  # Suppress the progress spinner during tests
    return output


@pytest.fixture
def run_sync(mock_output, tmp_path):
    """Run one sync with the given decision provider."""

    def _run(roots, decider, operations=None):
        engine = SyncEngine(decider, operations=operations, output=mock_output)
        return engine.sync_roots(roots, report_dir=tmp_path)

    return _run


class TestValidateRoots:
    """Tests for validate_roots."""

    def test_valid_roots(self, tmp_path):
        a = make_root(tmp_path / "a")
        b = make_root(tmp_path / "b")

        assert validate_roots([a, b]) == []

    def test_fewer_than_two_roots(self, tmp_path):
        a = make_root(tmp_path / "a")

        assert validate_roots([a]) == ["At least two directories are required."]

    def test_missing_and_file_roots(self, tmp_path):
        """Test that every problem is reported, not just the first one."""
        (tmp_path / "file.txt").write_text("x")

        errors = validate_roots([tmp_path / "missing", tmp_path / "file.txt"])

        assert len(errors) == 2
        assert "does not exist" in errors[0]
        assert "is not a directory" in errors[1]

    def test_same_root_twice(self, tmp_path):
        a = make_root(tmp_path / "a")

        errors = validate_roots([a, tmp_path / "a" / ".." / "a"])

        assert len(errors) == 1
        assert "is the same as" in errors[0]

    def test_nested_roots(self, tmp_path):
        a = make_root(tmp_path / "a", ["sub/"])

        errors = validate_roots([a / "sub", a])

        assert len(errors) == 1
        assert "is inside" in errors[0]


class TestSyncPreconditions:
    """Tests for checks made before anything is read or written."""

    def test_invalid_roots_raise(self, mock_output, tmp_path):
        a = make_root(tmp_path / "a")
        engine = SyncEngine(StaticDecisionProvider(True), output=mock_output)

        with pytest.raises(DirsyncPreconditionError) as exc_info:
            engine.sync_roots([a, tmp_path / "missing"])

        assert len(exc_info.value.errors) == 1
        assert not (a / CONFIG_FILE_NAME).exists()

    def test_force_is_unsupported(self, mock_output, tmp_path):
        a = make_root(tmp_path / "a", ["x.txt"])
        b = make_root(tmp_path / "b")
        engine = SyncEngine(StaticDecisionProvider(True), output=mock_output)

        with pytest.raises(DirsyncUnsupportedError):
            engine.sync_roots([a, b], force=True)

        assert not (b / "x.txt").exists()
        assert not (a / CONFIG_FILE_NAME).exists()

    def test_malformed_config_aborts(self, run_sync, tmp_path):
        a = make_root(tmp_path / "a", ["x.txt"])
        b = make_root(tmp_path / "b")
        (a / CONFIG_FILE_NAME).write_text("{broken")

        with pytest.raises(DirsyncConfigError):
            run_sync([a, b], StaticDecisionProvider(True))

        assert (a / CONFIG_FILE_NAME).read_text() == "{broken"
        assert not (b / "x.txt").exists()
        assert not (b / CONFIG_FILE_NAME).exists()

    def test_abort_saves_nothing(self, run_sync, tmp_path):
        """Test that cancelling mid-run leaves the config files untouched."""
        a = make_root(tmp_path / "a", ["x.txt"])
        b = make_root(tmp_path / "b")

        def abort(request):
            raise click.Abort()

        with pytest.raises(click.Abort):
            run_sync([a, b], ScriptedDecisionProvider(abort))

        assert not (a / CONFIG_FILE_NAME).exists()
        assert not (b / CONFIG_FILE_NAME).exists()

    def test_differing_root_names_warn(self, run_sync, mock_output, tmp_path):
        a = make_root(tmp_path / "photos")
        b = make_root(tmp_path / "backup")

        run_sync([a, b], StaticDecisionProvider(True))

        warnings = [call.args[0] for call in mock_output.warning.call_args_list]
        assert any("Root folder names differ" in w for w in warnings)


class TestTwoRootSync:
    """Tests for syncing exactly two roots."""

    def test_scenario_all_yes(self, run_sync, tmp_path):
        """Test the common case: one missing file, one shared folder."""
        a = make_root(tmp_path / "A", ["x.txt", "y.txt", "sub/"])
        b = make_root(tmp_path / "B", ["y.txt", "sub/"])
        decider = StaticDecisionProvider(True, record=True)

        stats = run_sync([a, b], decider)

        assert (b / "x.txt").read_text() == "x.txt"
        assert (a / "sub").is_dir() and (b / "sub").is_dir()
        assert [r.path for r in decider.requests] == ["x.txt"]
        assert stats["files_copied"] == 1

        config_a = read_config(a)
        config_b = read_config(b)
        identities = {config_a["thisDirUuid"], config_b["thisDirUuid"]}
        assert len(identities) == 2
        for config in (config_a, config_b):
            assert {entry["uuid"] for entry in config["dirs"]} == identities
            for entry in config["dirs"]:
                assert entry["excludeFromSync"] == []
                assert entry["skipSyncing"] == []

    def test_no_destination_confirmation(self, run_sync, tmp_path):
        a = make_root(tmp_path / "a", ["x.txt", "sub/y.txt"])
        b = make_root(tmp_path / "b")
        decider = StaticDecisionProvider(True, record=True)

        stats = run_sync([a, b], decider)

        assert kinds(decider) == [
            DecisionKind.COPY_FILE,
            DecisionKind.COPY_FOLDER,
            DecisionKind.COPY_FILE,
        ]
        assert (b / "sub" / "y.txt").exists()
        assert stats["folders_created"] == 1
        assert stats["files_copied"] == 2

    def test_second_run_is_silent(self, run_sync, tmp_path):
        """Test that a run after an all-yes run has nothing to propose."""
        a = make_root(tmp_path / "a", ["x.txt", "sub/deep/z.md"])
        b = make_root(tmp_path / "b", ["only-b.jpg"])
        run_sync([a, b], StaticDecisionProvider(True))

        decider = StaticDecisionProvider(True, record=True)
        stats = run_sync([a, b], decider)

        assert decider.requests == []
        assert stats["files_copied"] == 0
        assert stats["folders_created"] == 0

    def test_identities_are_stable(self, run_sync, tmp_path):
        a = make_root(tmp_path / "a", ["x.txt"])
        b = make_root(tmp_path / "b")
        run_sync([a, b], StaticDecisionProvider(True))
        first = read_config(a)["thisDirUuid"], read_config(b)["thisDirUuid"]

        run_sync([a, b], StaticDecisionProvider(True))

        assert (read_config(a)["thisDirUuid"], read_config(b)["thisDirUuid"]) == first

    def test_decline_adds_skip_to_other_root(self, run_sync, tmp_path):
        a = make_root(tmp_path / "a", ["x.txt"])
        b = make_root(tmp_path / "b")

        stats = run_sync([a, b], StaticDecisionProvider(False))

        assert not (b / "x.txt").exists()
        assert policy_of(a, b)["skipSyncing"] == ["x.txt"]
        assert policy_of(a, a)["excludeFromSync"] == []
        assert stats["skipped"] == 1

        decider = StaticDecisionProvider(True, record=True)
        run_sync([a, b], decider)
        assert decider.requests == []

    def test_skip_only_blocks_its_own_root(self, run_sync, tmp_path):
        """Test that a skip on B does not stop the same path flowing into A."""
        a = make_root(tmp_path / "a", ["x.txt"])
        b = make_root(tmp_path / "b")
        run_sync([a, b], StaticDecisionProvider(False))

        (a / "x.txt").unlink()
        (b / "x.txt").write_text("from b")
        run_sync([a, b], StaticDecisionProvider(True))

        assert (a / "x.txt").read_text() == "from b"

    def test_declined_folder_is_not_proposed_again(self, run_sync, tmp_path):
        a = make_root(tmp_path / "a", ["sub/x.txt"])
        b = make_root(tmp_path / "b")

        run_sync([a, b], StaticDecisionProvider(False))

        assert not (b / "sub").exists()
        assert policy_of(a, b)["skipSyncing"] == ["sub"]

        decider = StaticDecisionProvider(True, record=True)
        run_sync([a, b], decider)
        assert decider.requests == []
        assert not (b / "sub").exists()

    def test_file_in_both_roots_is_untouched(self, run_sync, tmp_path):
        """Test that only presence is compared, never content."""
        a = make_root(tmp_path / "a")
        b = make_root(tmp_path / "b")
        (a / "same.txt").write_text("version a")
        (b / "same.txt").write_text("version b")
        decider = StaticDecisionProvider(True, record=True)

        run_sync([a, b], decider)

        assert decider.requests == []
        assert (b / "same.txt").read_text() == "version b"


class TestBatching:
    """Tests for grouping many files of one extension into one question."""

    def test_eleven_files_one_prompt(self, run_sync, tmp_path):
        a = make_root(tmp_path / "a", [f"img{i:02d}.jpg" for i in range(11)])
        b = make_root(tmp_path / "b")
        decider = StaticDecisionProvider(True, record=True)

        stats = run_sync([a, b], decider)

        assert kinds(decider) == [DecisionKind.COPY_BATCH]
        assert "total of 11 .jpg files" in decider.requests[0].prompt
        assert stats["files_copied"] == 11
        assert len(list(b.glob("*.jpg"))) == 11

    def test_ten_files_ten_prompts(self, run_sync, tmp_path):
        a = make_root(tmp_path / "a", [f"img{i:02d}.jpg" for i in range(10)])
        b = make_root(tmp_path / "b")
        decider = StaticDecisionProvider(True, record=True)

        run_sync([a, b], decider)

        assert kinds(decider) == [DecisionKind.COPY_FILE] * 10

    def test_groups_are_per_extension(self, run_sync, tmp_path):
        entries = [f"img{i:02d}.jpg" for i in range(11)] + ["a.txt", "b.txt"]
        a = make_root(tmp_path / "a", entries)
        b = make_root(tmp_path / "b")
        decider = StaticDecisionProvider(True, record=True)

        run_sync([a, b], decider)

        assert kinds(decider) == [
            DecisionKind.COPY_FILE,
            DecisionKind.COPY_FILE,
            DecisionKind.COPY_BATCH,
        ]

    def test_declined_batch_skips_extension(self, run_sync, tmp_path):
        """Test that a refused batch blocks the extension in that folder."""
        a = make_root(tmp_path / "a", [f"img{i:02d}.jpg" for i in range(11)])
        b = make_root(tmp_path / "b")
        run_sync([a, b], StaticDecisionProvider(False))

        assert policy_of(a, b)["skipSyncing"] == ["*.jpg"]

        (a / "new.jpg").write_text("new")
        decider = StaticDecisionProvider(True, record=True)
        run_sync([a, b], decider)

        assert decider.requests == []
        assert not (b / "new.jpg").exists()


class TestMultiRootSync:
    """Tests for syncing three roots."""

    @pytest.fixture
    def roots(self, tmp_path):
        return (
            make_root(tmp_path / "r1" / "data", ["x.txt"]),
            make_root(tmp_path / "r2" / "data"),
            make_root(tmp_path / "r3" / "data"),
        )

    def test_each_destination_is_confirmed(self, run_sync, roots):
        a, b, c = roots

        def answer(request):
            if request.kind == DecisionKind.COPY_TO:
                return request.to_index == 1
            return True

        decider = ScriptedDecisionProvider(answer)
        run_sync(roots, decider)

        assert kinds(decider) == [
            DecisionKind.COPY_FILE,
            DecisionKind.COPY_TO,
            DecisionKind.COPY_TO,
        ]
        assert decider.requests[0].prompt.startswith("dir2, dir3 <=")
        assert (b / "x.txt").exists()
        assert not (c / "x.txt").exists()
        assert policy_of(a, c)["skipSyncing"] == ["x.txt"]

    def test_decline_with_extension_exclusion(self, run_sync, roots):
        """Test that excluding an extension keeps new files of it local."""
        a, b, c = roots
        decider = ScriptedDecisionProvider(
            lambda request: request.kind == DecisionKind.EXCLUDE_EXTENSION
        )

        stats = run_sync(roots, decider)

        assert kinds(decider) == [
            DecisionKind.COPY_FILE,
            DecisionKind.EXCLUDE_EXTENSION,
        ]
        assert policy_of(b, a)["excludeFromSync"] == ["*.txt"]
        assert stats["excluded"] == 1

        (a / "y.txt").write_text("y")
        decider = StaticDecisionProvider(True, record=True)
        run_sync(roots, decider)

        assert decider.requests == []
        assert not (b / "y.txt").exists()

    def test_decline_without_extension_exclusion(self, run_sync, roots):
        a, b, c = roots

        run_sync(roots, StaticDecisionProvider(False))

        assert policy_of(a, a)["excludeFromSync"] == ["x.txt"]
        assert policy_of(a, b)["skipSyncing"] == []

    def test_extensionless_file_is_excluded_exactly(self, run_sync, roots):
        a, b, c = roots
        (a / "x.txt").unlink()
        (a / "Makefile").write_text("all:")
        decider = StaticDecisionProvider(False, record=True)

        run_sync(roots, decider)

        assert kinds(decider) == [DecisionKind.COPY_FILE]
        assert policy_of(a, a)["excludeFromSync"] == ["Makefile"]

    def test_excluded_root_receives_nothing_matching(self, run_sync, roots):
        """Test that a root's exclusions also block copies into it."""
        a, b, c = roots
        run_sync(
            roots,
            ScriptedDecisionProvider(
                lambda request: request.kind == DecisionKind.EXCLUDE_EXTENSION
            ),
        )

        (b / "z.txt").write_text("z")
        decider = StaticDecisionProvider(True, record=True)
        run_sync(roots, decider)

        assert decider.requests[0].prompt.startswith("dir3 <=")
        assert (c / "z.txt").exists()
        assert not (a / "z.txt").exists()

    def test_new_folder_is_filled_in_same_run(self, run_sync, tmp_path):
        a = make_root(tmp_path / "a" / "data", ["sub/f.txt"])
        b = make_root(tmp_path / "b" / "data", ["sub/"])
        c = make_root(tmp_path / "c" / "data")

        run_sync([a, b, c], StaticDecisionProvider(True))

        assert (b / "sub" / "f.txt").exists()
        assert (c / "sub" / "f.txt").exists()

    def test_folder_created_late_is_filled(self, run_sync, tmp_path):
        """Test a folder created after its siblings were synced gets their files."""
        a = make_root(tmp_path / "a" / "data")
        b = make_root(tmp_path / "b" / "data", ["sub/f.txt"])
        c = make_root(tmp_path / "c" / "data", ["sub/"])

        run_sync([a, b, c], StaticDecisionProvider(True))

        assert (a / "sub" / "f.txt").exists()
        assert (c / "sub" / "f.txt").exists()

        decider = StaticDecisionProvider(True, record=True)
        stats = run_sync([a, b, c], decider)

        assert stats["files_copied"] == 0
        assert decider.requests == []

    def test_nested_folder_created_late_is_filled(self, run_sync, tmp_path):
        a = make_root(tmp_path / "a" / "data")
        b = make_root(tmp_path / "b" / "data", ["sub/deep/g.txt"])
        c = make_root(tmp_path / "c" / "data", ["sub/deep/"])

        run_sync([a, b, c], StaticDecisionProvider(True))

        assert (a / "sub" / "deep" / "g.txt").exists()
        assert (c / "sub" / "deep" / "g.txt").exists()

    def test_declined_folder_is_excluded_on_source(self, run_sync, roots):
        a, b, c = roots
        (a / "x.txt").unlink()
        (a / "private").mkdir()
        (a / "private" / "secret.txt").write_text("s")

        run_sync(roots, StaticDecisionProvider(False))

        assert policy_of(a, a)["excludeFromSync"] == ["private"]
        assert not (b / "private").exists()


class TestExclusionMaintenance:
    """Tests for pruning stored exclusions."""

    def test_unused_exclusions_are_pruned(self, run_sync, tmp_path):
        a = make_root(tmp_path / "a", ["keep.txt"])
        b = make_root(tmp_path / "b")
        (a / CONFIG_FILE_NAME).write_text(
            json.dumps(
                {
                    "thisDirUuid": "uuid-a",
                    "dirs": [
                        {
                            "uuid": "uuid-a",
                            "excludeFromSync": ["keep.txt", "gone.txt"],
                            "skipSyncing": ["never-pruned"],
                        }
                    ],
                }
            )
        )
        decider = StaticDecisionProvider(True, record=True)

        stats = run_sync([a, b], decider)

        assert stats["pruned"] == 1
        assert decider.requests == []
        assert not (b / "keep.txt").exists()
        for root in (a, b):
            policy = policy_of(root, a)
            assert policy["excludeFromSync"] == ["keep.txt"]
            assert policy["skipSyncing"] == ["never-pruned"]

    def test_config_of_absent_root_is_kept(self, run_sync, tmp_path):
        """Test that policies of roots not in this run are carried along."""
        a = make_root(tmp_path / "a")
        b = make_root(tmp_path / "b")
        (a / CONFIG_FILE_NAME).write_text(
            json.dumps(
                {
                    "thisDirUuid": "uuid-a",
                    "dirs": [
                        {"uuid": "uuid-a"},
                        {"uuid": "uuid-z", "skipSyncing": ["big/"]},
                    ],
                }
            )
        )

        run_sync([a, b], StaticDecisionProvider(True))

        uuids = [entry["uuid"] for entry in read_config(b)["dirs"]]
        assert uuids[0] == "uuid-a"
        assert uuids[-1] == "uuid-z"


class TestCopyErrors:
    """Tests for collecting copy failures."""

    def test_errors_are_collected_and_reported(self, run_sync, mock_output, tmp_path):
        a = make_root(tmp_path / "a", ["x.txt", "y.txt"])
        b = make_root(tmp_path / "b")
        operations = Mock(spec=SyncOperations)

        def fail_copy(source, destination):
            cause = PermissionError("denied")
            raise DirsyncCopyError("copy", source, destination, cause)

        operations.copy_file.side_effect = fail_copy

        stats = run_sync([a, b], StaticDecisionProvider(True), operations)

        assert stats["errors"] == 2
        assert stats["files_copied"] == 0
        report = json.loads((tmp_path / ERROR_REPORT_FILE_NAME).read_text())
        assert [entry["source"] for entry in report] == [
            str(a.resolve() / "x.txt"),
            str(a.resolve() / "y.txt"),
        ]
        assert report[0]["error"] == "denied"
        assert mock_output.error.call_count == 2
        assert (b / CONFIG_FILE_NAME).exists()

    def test_no_report_without_errors(self, run_sync, tmp_path):
        a = make_root(tmp_path / "a", ["x.txt"])
        b = make_root(tmp_path / "b")

        stats = run_sync([a, b], StaticDecisionProvider(True))

        assert "error_report" not in stats
        assert not (tmp_path / ERROR_REPORT_FILE_NAME).exists()


class BlockedConfigStore(ConfigStore):
    """Config store whose last root has a folder where its config should be."""

    def save(self, roots, *args, **kwargs):
        self.config_path(roots[-1]).mkdir()
        return super().save(roots, *args, **kwargs)


class TestConfigSaveErrors:
    """Tests for reporting config files that could not be written."""

    def test_failed_save_is_counted_and_reported(self, mock_output, tmp_path):
        a = make_root(tmp_path / "a", ["x.txt"])
        b = make_root(tmp_path / "b")
        engine = SyncEngine(
            StaticDecisionProvider(True),
            output=mock_output,
            store=BlockedConfigStore(),
        )

        stats = engine.sync_roots([a, b], report_dir=tmp_path)

        assert stats["config_errors"] == 1
        assert stats["files_copied"] == 1
        assert (a / CONFIG_FILE_NAME).is_file()
        errors = [call.args[0] for call in mock_output.error.call_args_list]
        blocked = b.resolve() / CONFIG_FILE_NAME
        assert errors == [f"Could not save config file {blocked}"]
        warnings = [call.args[0] for call in mock_output.warning.call_args_list]
        assert any("1 config file(s) could not be saved" in w for w in warnings)

    def test_no_config_errors_by_default(self, run_sync, tmp_path):
        a = make_root(tmp_path / "a", ["x.txt"])
        b = make_root(tmp_path / "b")

        stats = run_sync([a, b], StaticDecisionProvider(True))

        assert stats["config_errors"] == 0
