"""Tests for config loading, validation and credential resolution."""

import json

import pytest

from cdnflow.auth import with_resolved_credentials
from cdnflow.config import (
    CONFIG_FILENAME,
    CdnFlowConfig,
    ExpireConfig,
    config_from_dict,
    load_config,
    save_config,
)
from cdnflow.deploy import prepare_config
from cdnflow.errors import ConfigError
from cdnflow.models import RetentionPolicy


def _config(**overrides):
    values = dict(
        access_key="ak",
        secret_key="sk",
        bucket="assets",
        cdn_host="https://cdn.example.com",
        output_dir="dist",
    )
    values.update(overrides)
    return CdnFlowConfig(**values)


class TestValidation:
    @pytest.mark.parametrize("field", ["access_key", "secret_key", "bucket", "cdn_host", "output_dir"])
    def test_missing_required_field(self, field):
        with pytest.raises(ConfigError, match=field):
            _config(**{field: ""}).validate()

    @pytest.mark.parametrize("host", ["cdn.example.com", "ftp://cdn.example.com", "https:/x"])
    def test_illegal_cdn_host(self, host):
        with pytest.raises(ConfigError, match="Illegal cdn host"):
            _config(cdn_host=host).validate()

    @pytest.mark.parametrize("host", ["http://cdn.example.com", "https://cdn.example.com", "//cdn.example.com"])
    def test_legal_cdn_hosts(self, host):
        _config(cdn_host=host).validate()

    def test_negative_versions_rejected(self):
        with pytest.raises(ConfigError):
            _config(expire=ExpireConfig(versions=-1)).validate()


class TestDerivedPaths:
    def test_public_path_with_dir(self):
        config = _config(dir="static")
        assert config.key_prefix == "static/"
        assert config.public_path == "https://cdn.example.com/static/"
        assert config.url_for("app.js") == "https://cdn.example.com/static/app.js"

    def test_protocol_relative_host_gets_http(self):
        config = _config(cdn_host="//cdn.example.com")
        assert config.public_path == "//cdn.example.com/"
        assert config.remote_base_url == "http://cdn.example.com/"

    def test_no_dir_means_no_prefix(self):
        assert _config().key_prefix == ""

    def test_retention_policy(self):
        assert _config().retention_policy is None
        config = _config(expire=ExpireConfig(time=3600, versions=2))
        assert config.retention_policy == RetentionPolicy(versions=2, time=3600)


class TestLoadSave:
    def test_round_trip(self, tmp_path):
        config = _config(dir="v", exclude=["*.html"], expire=ExpireConfig(versions=3))
        path = save_config(config, tmp_path)
        assert path.name == CONFIG_FILENAME
        assert "base_dir" not in json.loads(path.read_text())

        loaded = load_config(tmp_path)
        assert loaded == config
        assert loaded.base_path == tmp_path.resolve()
        assert loaded.output_path == (tmp_path / "dist").resolve()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path)

    def test_invalid_json(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("{oops")
        with pytest.raises(ConfigError):
            load_config(tmp_path)

    def test_expire_false_disables_policy(self):
        config = config_from_dict({"expire": False, "exclude": "*.map"})
        assert config.expire is None
        assert config.exclude == ["*.map"]
        assert config.log_file == "upload-log.json"

    @pytest.mark.parametrize(
        "data, field_name",
        [
            ({"workers": "many"}, "workers"),
            ({"workers": None}, "workers"),
            ({"expire": {"time": "1 day"}}, "expire.time"),
            ({"expire": {"versions": [3]}}, "expire.versions"),
            ({"expire": {"versions": True}}, "expire.versions"),
        ],
    )
    def test_non_integer_values_are_config_errors(self, data, field_name):
        with pytest.raises(ConfigError, match=field_name):
            config_from_dict(data)

    def test_numeric_strings_are_accepted(self):
        config = config_from_dict({"workers": "4", "expire": {"versions": "2"}})
        assert config.workers == 4
        assert config.expire == ExpireConfig(versions=2)


class TestCredentials:
    def test_env_fallback(self, monkeypatch):
        monkeypatch.setenv("QINIU_ACCESS_KEY", "env-ak")
        monkeypatch.setenv("QINIU_SECRET_KEY", "env-sk")
        resolved = with_resolved_credentials(_config(access_key="", secret_key=""))
        assert resolved.access_key == "env-ak"
        assert resolved.secret_key == "env-sk"

    def test_config_value_wins(self, monkeypatch):
        monkeypatch.setenv("QINIU_ACCESS_KEY", "env-ak")
        assert with_resolved_credentials(_config()).access_key == "ak"

    def test_prepare_config_requires_credentials(self, monkeypatch):
        for name in ("QINIU_ACCESS_KEY", "QINIU_AK", "QINIU_SECRET_KEY", "QINIU_SK"):
            monkeypatch.delenv(name, raising=False)
        with pytest.raises(ConfigError, match="QINIU_ACCESS_KEY"):
            prepare_config(_config(access_key=""))
