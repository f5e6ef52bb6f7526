"""Unit tests for ConfigLoader."""

import os
from unittest.mock import patch

import pytest

from flowhub_core.config import (
    ConfigLoader,
    FlowConfig,
    deep_merge,
    resolve_env_vars,
)
from flowhub_core.errors import FlowError
from flowhub_core.types import ExecutionMode, LogFormat, LogLevel, QueueBackend


class TestResolveEnvVars:
    """Tests for environment variable interpolation."""

    def test_plain_string_unchanged(self):
        assert resolve_env_vars("redis://localhost") == "redis://localhost"

    def test_set_variable(self):
        with patch.dict(os.environ, {"FLOWHUB_TEST_HOST": "cache"}):
            assert resolve_env_vars("redis://${FLOWHUB_TEST_HOST}:6379") == "redis://cache:6379"

    def test_default_used_when_unset(self):
        with patch.dict(os.environ, {}, clear=True):
            assert resolve_env_vars("${FLOWHUB_MISSING:-fallback}") == "fallback"

    def test_required_missing_raises(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(FlowError) as exc_info:
                resolve_env_vars("${FLOWHUB_MISSING}")
        assert exc_info.value.code == "CONFIG_INVALID"

    def test_custom_error_message(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(FlowError) as exc_info:
                resolve_env_vars("${FLOWHUB_MISSING:?set the redis url}")
        assert exc_info.value.detail == "set the redis url"


class TestDeepMerge:
    """Tests for deep_merge."""

    def test_nested_override(self):
        base = {"queue": {"backend": "memory", "concurrency": 5}, "store": {"max_records": 10}}
        override = {"queue": {"concurrency": 2}}

        merged = deep_merge(base, override)

        assert merged == {
            "queue": {"backend": "memory", "concurrency": 2},
            "store": {"max_records": 10},
        }
        assert base["queue"]["concurrency"] == 5


class TestConfigLoader:
    """Tests for loading and validating configuration."""

    @pytest.fixture
    def loader(self):
        return ConfigLoader()

    def test_defaults(self, loader):
        config = loader.load_defaults()

        assert isinstance(config, FlowConfig)
        assert config.execution.default_mode == ExecutionMode.AUTO
        assert config.execution.max_loop_iterations == 100
        assert config.execution.queue_node_threshold == 10
        assert config.queue.backend == QueueBackend.MEMORY
        assert config.queue.concurrency == 5
        assert config.queue.max_attempts == 3
        assert config.queue.backoff_seconds == 2.0
        assert config.redis.resume_channel == "flowhub:resume"

    def test_load_from_dict_converts_enums_and_nested(self, loader):
        config = loader.load_from_dict(
            {
                "execution": {"default_mode": "immediate", "node_timeout": 2.5},
                "logging": {"level": "DEBUG", "format": "json", "components": {"hub": False}},
            }
        )

        assert config.execution.default_mode == ExecutionMode.IMMEDIATE
        assert config.execution.node_timeout == 2.5
        assert config.logging.level == LogLevel.DEBUG
        assert config.logging.format == LogFormat.JSON
        assert config.logging.components.hub is False
        assert config.logging.components.run is True

    def test_load_yaml_file(self, loader, tmp_path):
        path = tmp_path / "flowhub-config.yaml"
        path.write_text("queue:\n  concurrency: 2\n  key: jobs:test\n")

        config = loader.load(path)

        assert config.queue.concurrency == 2
        assert config.queue.key == "jobs:test"

    def test_load_resolves_env_vars(self, loader, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("redis:\n  url: ${FLOWHUB_TEST_REDIS:-redis://example:6379/1}\n")

        with patch.dict(os.environ, {}, clear=True):
            config = loader.load(path)

        assert config.redis.url == "redis://example:6379/1"

    def test_missing_file_uses_defaults(self, loader, tmp_path):
        config = loader.load(tmp_path / "absent.yaml")
        assert config.queue.backend == QueueBackend.MEMORY

    def test_missing_file_without_defaults_raises(self, loader, tmp_path):
        with pytest.raises(FlowError) as exc_info:
            loader.load(tmp_path / "absent.yaml", use_defaults=False)
        assert exc_info.value.code == "CONFIG_INVALID"

    def test_invalid_yaml_raises(self, loader, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("queue: [unclosed\n")

        with pytest.raises(FlowError) as exc_info:
            loader.load(path)
        assert "Invalid YAML" in exc_info.value.detail

    def test_env_path_resolution(self, loader, tmp_path):
        path = tmp_path / "from-env.yaml"
        path.write_text("store:\n  max_records: 7\n")

        with patch.dict(os.environ, {"FLOWHUB_CONFIG_PATH": str(path)}):
            config = loader.load()

        assert config.store.max_records == 7

    def test_validate_rejects_bad_enum(self, loader):
        result = loader.validate({"queue": {"backend": "kafka"}})

        assert result.valid is False
        assert result.errors[0].path == "queue.backend"

    def test_validate_rejects_non_positive(self, loader):
        result = loader.validate({"execution": {"max_loop_iterations": 0}})

        assert result.valid is False
        assert result.errors[0].path == "execution.max_loop_iterations"

    def test_validate_requires_redis_url_for_redis_queue(self, loader):
        result = loader.validate({"queue": {"backend": "redis"}})

        assert result.valid is False
        assert result.errors[0].path == "redis.url"

    def test_validate_warns_on_unknown_section(self, loader):
        result = loader.validate({"workflows": {}})

        assert result.valid is True
        assert result.warnings[0].path == "workflows"

    def test_invalid_config_raises_on_load(self, loader):
        with pytest.raises(FlowError) as exc_info:
            loader.load_from_dict({"queue": {"concurrency": -1}})
        assert "queue.concurrency" in exc_info.value.detail

    def test_get_before_load_raises(self, loader):
        with pytest.raises(FlowError):
            loader.get()

    def test_reload_notifies_callbacks(self, loader, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("queue:\n  concurrency: 1\n")
        loader.load(path)

        seen = []
        loader.on_change(lambda config: seen.append(config.queue.concurrency))
        path.write_text("queue:\n  concurrency: 4\n")

        config = loader.reload()

        assert config.queue.concurrency == 4
        assert seen == [4]

    def test_reload_without_path_raises(self, loader):
        loader.load_defaults()
        with pytest.raises(FlowError):
            loader.reload()
