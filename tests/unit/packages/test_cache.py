"""Unit tests for the output layout and cache gate."""

from pathlib import Path

import pytest

from enginepack.config import make_target
from enginepack.packages.cache import ArtifactCategory, ArtifactRecord, Cache, CacheGate


class TestCache:
    """Test cases for Cache class."""

    def test_init_default_directory(self, monkeypatch):
        """Test initialization with default directory."""
        monkeypatch.delenv(Cache.ENV_VAR, raising=False)
        cache = Cache()
        assert cache.project_dir == Path.cwd().resolve()
        assert cache.output_root == cache.project_dir / "dist"
        assert cache.staging_root == cache.project_dir / ".enginepack" / "staging"

    def test_init_custom_directories(self, tmp_path, monkeypatch):
        """Test relative output and staging directories."""
        monkeypatch.delenv(Cache.ENV_VAR, raising=False)
        cache = Cache(tmp_path, output_dir=Path("out"), staging_dir=Path("build/tmp"))
        assert cache.output_root == (tmp_path / "out").resolve()
        assert cache.staging_root == (tmp_path / "build" / "tmp").resolve()

    def test_init_with_env_override(self, tmp_path, monkeypatch):
        """Test output directory override via environment variable."""
        monkeypatch.setenv(Cache.ENV_VAR, str(tmp_path / "custom"))
        cache = Cache(tmp_path, output_dir=Path("out"))
        assert cache.output_root == (tmp_path / "custom").resolve()

    def test_output_dirs(self, tmp_path):
        cache = Cache(tmp_path)
        assert cache.packages_dir == cache.output_root / "packages"
        assert cache.examples_dir == cache.output_root / "examples"
        assert cache.logs_dir == cache.output_root / "logs"

    def test_per_target_dirs(self, tmp_path):
        """Test that every target gets its own staging and log directory."""
        cache = Cache(tmp_path)
        target = make_target("5.3")
        assert cache.get_staging_dir(target) == cache.staging_root / "5.3"
        assert cache.get_log_path(target, "Build") == cache.logs_dir / "5.3" / "build.log"

    def test_artifact_paths(self, tmp_path):
        cache = Cache(tmp_path)
        target = make_target("5.2")

        primary = cache.primary_artifact("MyPlugin", target)
        variant = cache.variant_artifact("MyPlugin", target, "blueprint", ArtifactCategory.VARIANT_B)

        assert primary.path == cache.packages_dir / "MyPlugin_5.2.zip"
        assert primary.category is ArtifactCategory.PRIMARY
        assert variant.path == cache.examples_dir / "5.2" / "MyPlugin_blueprint_5.2.zip"
        assert variant.variant == "blueprint"
        assert variant.target == "5.2"

    def test_ensure_directories(self, tmp_path):
        cache = Cache(tmp_path)
        cache.ensure_directories()
        assert cache.packages_dir.is_dir()
        assert cache.examples_dir.is_dir()
        assert cache.logs_dir.is_dir()

    def test_clean_staging(self, tmp_path):
        """Test removal of one target's staging and of all staging."""
        cache = Cache(tmp_path)
        for version in ["5.2", "5.3"]:
            (cache.get_staging_dir(make_target(version)) / "source").mkdir(parents=True)

        cache.clean_staging(make_target("5.2"))
        assert not cache.get_staging_dir(make_target("5.2")).exists()
        assert cache.get_staging_dir(make_target("5.3")).exists()

        cache.clean_staging()
        assert not cache.staging_root.exists()

        # Nothing left to clean
        cache.clean_staging()


class TestArtifactCategory:
    """Test cases for ArtifactCategory."""

    def test_from_string(self):
        assert ArtifactCategory.from_string("Variant-B ") is ArtifactCategory.VARIANT_B

    def test_unknown(self):
        with pytest.raises(ValueError):
            ArtifactCategory.from_string("variant-c")


class TestCacheGate:
    """Test cases for CacheGate."""

    @pytest.fixture
    def records(self, tmp_path):
        cache = Cache(tmp_path)
        target = make_target("5.3")
        return [
            cache.primary_artifact("MyPlugin", target),
            cache.variant_artifact("MyPlugin", target, "full", ArtifactCategory.VARIANT_A),
        ]

    @staticmethod
    def create(record: ArtifactRecord):
        record.path.parent.mkdir(parents=True, exist_ok=True)
        record.path.write_bytes(b"zip")

    def test_all_present(self, records):
        for record in records:
            self.create(record)
        assert CacheGate(enabled=True).should_skip(make_target("5.3"), records)

    def test_partial(self, records):
        """Test that one missing artifact means the target is rebuilt."""
        self.create(records[0])
        assert not CacheGate(enabled=True).should_skip(make_target("5.3"), records)

    def test_none_present(self, records):
        assert not CacheGate(enabled=True).should_skip(make_target("5.3"), records)

    def test_disabled(self, records):
        for record in records:
            self.create(record)
        assert not CacheGate(enabled=False).should_skip(make_target("5.3"), records)

    def test_no_expected_artifacts(self):
        assert not CacheGate(enabled=True).should_skip(make_target("5.3"), [])

    def test_other_targets_ignored(self, records):
        """Test that artifacts of another target never satisfy the gate."""
        for record in records:
            self.create(record)
        assert not CacheGate(enabled=True).should_skip(make_target("5.2"), records)

    def test_directory_is_not_an_artifact(self, records):
        for record in records:
            record.path.mkdir(parents=True)
        assert not CacheGate(enabled=True).should_skip(make_target("5.3"), records)
