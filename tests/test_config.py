"""
Unit tests for configuration management.
"""
import json

import pytest
import yaml

from hubnessCV.config import DEFAULT_CONFIG
from hubnessCV.core.base import KMode, ProtoHubnessMode, SecondaryDistance
from hubnessCV.utils.config import Config, ConfigManager


class TestConfigManager:
    """Test suite for ConfigManager."""

    def test_defaults_flatten_onto_config(self):
        """Test that the nested default sections fill the flat configuration."""
        manager = ConfigManager().load_from_dict(
            {key: value for key, value in DEFAULT_CONFIG.items() if key != 'logging'}
        )
        config = manager.get_config()

        assert config.times == 10
        assert config.secondary_k == 50
        assert config.reducer is None
        assert manager.classifier_names() == ['knn', 'hwknn', 'zerorule']

    def test_load_yaml_and_json(self, temp_dir):
        """Test both file formats."""
        document = {'cv': {'times': 3, 'k': 7}, 'selection': {'reducer': 'insight'}}
        (temp_dir / "run.yaml").write_text(yaml.safe_dump(document))
        (temp_dir / "run.json").write_text(json.dumps(document))

        for name in ("run.yaml", "run.json"):
            config = ConfigManager().load_from_file(temp_dir / name).get_config()
            assert config.times == 3
            assert config.k == 7
            assert config.reducer == 'insight'

    def test_file_errors(self, temp_dir):
        """Test missing and unsupported configuration files."""
        with pytest.raises(FileNotFoundError):
            ConfigManager().load_from_file(temp_dir / "absent.yaml")
        (temp_dir / "run.ini").write_text("")
        with pytest.raises(ValueError):
            ConfigManager().load_from_file(temp_dir / "run.ini")

    def test_update_skips_none_and_unknown_keys(self):
        """Test that unset values keep the configuration."""
        manager = ConfigManager().update_config(times=4, k=None, colour='red')

        assert manager.get_config().times == 4
        assert manager.get_config().k == Config().k
        assert not hasattr(manager.get_config(), 'colour')

    def test_save_round_trip(self, temp_dir):
        """Test saving and reloading."""
        manager = ConfigManager().update_config(num_folds=3, classifiers={'knn': {'k': 9}})
        manager.save_to_file(temp_dir / "saved.yaml")

        restored = ConfigManager().load_from_file(temp_dir / "saved.yaml").get_config()
        assert restored.num_folds == 3
        assert restored.classifiers == {'knn': {'k': 9}}

    def test_to_cv_config(self):
        """Test conversion to the engine configuration."""
        manager = ConfigManager().update_config(
            k_mode='interval', secondary_distance='MP', proto_hubness_mode='biased', k_min=2, k_max=9
        )
        cv_config = manager.to_cv_config()

        assert cv_config.k_mode == KMode.INTERVAL
        assert cv_config.secondary_distance == SecondaryDistance.MP
        assert cv_config.proto_hubness_mode == ProtoHubnessMode.BIASED
        assert cv_config.k_range == (2, 9)
        assert cv_config.total_tests == cv_config.times * cv_config.num_folds
