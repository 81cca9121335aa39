"""Unit tests for acervo.engine.config — AcervoConfig, loading, env overrides."""

from pathlib import Path

import pytest

from acervo.engine.config import (
    AcervoConfig,
    StorageConfig,
    get_config,
    get_environment,
    load_config,
)


class TestAcervoConfig:

    def test_defaults(self):
        cfg = AcervoConfig()
        assert cfg.name == "RC Acervo"
        assert cfg.environment == "dev"
        assert cfg.storage.auth_ttl_hours == 23.0
        assert cfg.uploads.max_upload_size_mb == 500
        assert cfg.logging.level == "INFO"

    def test_valid_environments(self):
        for env in ("dev", "staging", "prod"):
            assert AcervoConfig(environment=env).environment == env

    def test_invalid_environment(self):
        with pytest.raises(ValueError, match="dev/staging/prod"):
            AcervoConfig(environment="test")

    def test_db_file_by_environment(self):
        assert AcervoConfig().db_file == Path("data/media-metadata.json")
        assert AcervoConfig(environment="prod").db_file == Path("/tmp/acervo-data/media-metadata.json")
        assert AcervoConfig(database={"path": "/srv/db.json"}).db_file == Path("/srv/db.json")


class TestStorageConfig:

    def test_incomplete(self):
        cfg = StorageConfig(account_id="a")
        assert not cfg.is_complete
        assert cfg.missing_fields() == ["application_key", "bucket_id"]

    def test_complete(self):
        cfg = StorageConfig(account_id="a", application_key="k", bucket_id="b")
        assert cfg.is_complete
        assert cfg.missing_fields() == []


class TestLoadConfig:

    def test_missing_file_gives_defaults(self, tmp_path):
        cfg = load_config(str(tmp_path / "absent.yaml"))
        assert cfg.name == "RC Acervo"

    def test_loads_yaml(self, tmp_path):
        path = tmp_path / "acervo.yaml"
        path.write_text(
            "app:\n"
            "  name: Acervo Teste\n"
            "  version: 2.1\n"
            "  environment: staging\n"
            "storage:\n"
            "  bucket_name: acervo-media\n"
            "  timeout: 5\n"
            "uploads:\n"
            "  max_upload_size_mb: 100\n",
            encoding="utf-8",
        )
        cfg = load_config(str(path))
        assert cfg.name == "Acervo Teste"
        assert cfg.version == "2.1"
        assert cfg.environment == "staging"
        assert cfg.storage.bucket_name == "acervo-media"
        assert cfg.storage.timeout == 5.0
        assert cfg.uploads.max_upload_size_mb == 100

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "acervo.yaml"
        path.write_text("storage:\n  account_id: from-file\n", encoding="utf-8")
        monkeypatch.setenv("B2_ACCOUNT_ID", "from-env")
        monkeypatch.setenv("B2_APPLICATION_KEY", "key")
        monkeypatch.setenv("ACERVO_DB_FILE", str(tmp_path / "db.json"))

        cfg = load_config(str(path))
        assert cfg.storage.account_id == "from-env"
        assert cfg.storage.application_key == "key"
        assert cfg.db_file == tmp_path / "db.json"

    def test_auto_discovery(self, tmp_path, monkeypatch):
        (tmp_path / "acervo.yaml").write_text("environment: prod\n", encoding="utf-8")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)
        assert load_config().environment == "prod"

    def test_get_config_caches(self, tmp_path):
        loaded = load_config(str(tmp_path / "absent.yaml"))
        assert get_config() is loaded
        assert get_environment() == "dev"
