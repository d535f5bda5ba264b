"""Tests for configuration loading, overrides and validation."""

import pytest
import yaml

from redis_transfer.config import Config, RedisConfig, TransferSettings, create_sample_config, load_config
from redis_transfer.exceptions import ConfigurationError


class TestEnvOverrides:

    def test_env_applies_to_defaults(self):
        config = Config().with_env_overrides({
            'SOURCE_HOST': 'src.internal',
            'SOURCE_PORT': '6390',
            'SOURCE_PASSWORD': 'secret',
            'DESTINATION_DATABASE': '3',
            'DESTINATION_USERNAME': 'migrator',
        })

        assert config.source.host == 'src.internal'
        assert config.source.port == 6390
        assert config.source.password == 'secret'
        assert config.destination.db == 3
        assert config.destination.username == 'migrator'

    def test_explicit_values_win_over_env(self):
        config = Config().with_overrides(source={'host': 'cli-host', 'port': 7000})

        config = config.with_env_overrides({'SOURCE_HOST': 'env-host', 'SOURCE_PORT': '6390'})

        assert config.source.host == 'cli-host'
        assert config.source.port == 7000

    def test_empty_env_value_is_ignored(self):
        config = Config().with_env_overrides({'SOURCE_HOST': ''})
        assert config.source.host == 'localhost'

    def test_invalid_integer(self):
        with pytest.raises(ConfigurationError):
            Config().with_env_overrides({'DESTINATION_PORT': 'abc'})

    def test_log_level_from_env(self):
        config = Config().with_env_overrides({'LOG_LEVEL': 'DEBUG'})
        assert config.logging.level == 'DEBUG'

    def test_original_is_unchanged(self):
        config = Config()
        config.with_env_overrides({'SOURCE_HOST': 'elsewhere'})
        assert config.source.host == 'localhost'


class TestOverrides:

    def test_none_values_are_ignored(self):
        config = Config().with_overrides(transfer={'skip': None, 'snapshot_path': 'out.txt'})

        assert config.transfer.skip == 0
        assert config.transfer.snapshot_path == 'out.txt'

    def test_config_is_frozen(self):
        with pytest.raises(Exception):
            Config().source.host = 'x'


class TestValidation:

    @pytest.mark.parametrize("config", [
        Config(source=RedisConfig(port=0)),
        Config(destination=RedisConfig(port=70000)),
        Config(destination=RedisConfig(db=-1)),
        Config(source=RedisConfig(host='')),
        Config(transfer=TransferSettings(skip=-1)),
        Config(transfer=TransferSettings(max_retries=-1)),
        Config(transfer=TransferSettings(retry_delay=-0.1)),
        Config(transfer=TransferSettings(scan_count=0)),
    ])
    def test_invalid(self, config):
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_defaults_are_valid(self):
        assert Config().validate() == Config()


class TestFiles:

    def test_from_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({
            'source': {'host': 'a', 'port': 6380},
            'transfer': {'skip': 10, 'snapshot_path': 'dump.txt'},
        }))

        config = load_config(str(path))

        assert config.source.host == 'a'
        assert config.source.port == 6380
        assert config.destination == RedisConfig()
        assert config.transfer.skip == 10

    def test_unknown_field(self):
        with pytest.raises(ConfigurationError):
            Config.from_dict({'source': {'hostname': 'a'}})

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert Config.from_file(str(path)) == Config()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            Config.from_file(str(tmp_path / "missing.yaml"))

    def test_save_and_reload(self, tmp_path):
        path = tmp_path / "out" / "config.yaml"
        config = Config(transfer=TransferSettings(skip=7))

        config.save_to_file(str(path))

        assert Config.from_file(str(path)) == config

    def test_sample_config_loads(self):
        config = Config.from_dict(yaml.safe_load(create_sample_config()))
        assert config.destination.port == 6380
        config.validate()

    def test_no_path_gives_defaults(self):
        assert load_config() == Config()
