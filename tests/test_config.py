"""
Unit tests for imagebump.config module
"""
import unittest
import tempfile
import os
import shutil
import json
from pathlib import Path
from unittest.mock import patch

from imagebump.config import (
    load_config,
    get_config_path,
    get_default_config,
    merge_configs,
    apply_env_overrides,
)
from imagebump.exit_codes import ConfigError


class TestConfigManagement(unittest.TestCase):
    """Test configuration management functionality"""

    def setUp(self):
        """Set up test environment"""
        self.temp_dir = tempfile.mkdtemp()
        self.env = patch.dict(os.environ, {'HOME': self.temp_dir})
        self.env.start()
        for key in list(os.environ):
            if key.startswith('IMAGEBUMP_'):
                del os.environ[key]
        self.config_dir = Path(self.temp_dir) / '.imagebump'

    def tearDown(self):
        """Clean up test environment"""
        self.env.stop()
        shutil.rmtree(self.temp_dir)

    def write_config(self, name, content):
        self.config_dir.mkdir(exist_ok=True)
        path = self.config_dir / name
        path.write_text(content)
        return path

    def test_get_default_config(self):
        """Test default configuration structure"""
        config = get_default_config()

        self.assertIn('git', config)
        self.assertIn('manifests', config)
        self.assertIn('registry', config)
        self.assertIn('logging', config)

        self.assertEqual(config['git']['remote'], 'origin')
        self.assertEqual(config['git']['max_attempts'], 3)
        self.assertEqual(config['manifests']['image_keys'], ['image'])

    def test_load_config_no_file(self):
        """Test loading config when no file exists"""
        config = load_config()
        self.assertEqual(config, get_default_config())

    def test_load_config_json_file(self):
        """Test loading config from JSON file"""
        self.write_config('config.json', json.dumps({
            'git': {'max_attempts': 5},
            'manifests': {'paths': ['deploy/app.yaml']},
        }))

        config = load_config()

        self.assertEqual(config['git']['max_attempts'], 5)
        # Untouched keys keep their defaults
        self.assertEqual(config['git']['remote'], 'origin')
        self.assertEqual(config['manifests']['paths'], ['deploy/app.yaml'])
        self.assertEqual(config['manifests']['image_keys'], ['image'])

    def test_load_config_yaml_file(self):
        """Test loading config from YAML file"""
        self.write_config('config.yaml', "git:\n  branch: release\nmanifests:\n  image_keys: [image, sidecarImage]\n")

        config = load_config()

        self.assertEqual(config['git']['branch'], 'release')
        self.assertEqual(config['manifests']['image_keys'], ['image', 'sidecarImage'])

    def test_load_config_toml_file(self):
        """Test loading config from TOML file"""
        self.write_config('config.toml', '[git]\nremote = "deploy"\ntimeout_seconds = 30\n')

        config = load_config()

        self.assertEqual(config['git']['remote'], 'deploy')
        self.assertEqual(config['git']['timeout_seconds'], 30)

    def test_invalid_json_raises(self):
        """Test that a broken config file is a ConfigError"""
        self.write_config('config.json', '{ invalid json }')
        with self.assertRaises(ConfigError):
            load_config()

    def test_explicit_missing_path_raises(self):
        with self.assertRaises(ConfigError):
            load_config(Path(self.temp_dir) / 'missing.json')

    def test_explicit_path(self):
        path = Path(self.temp_dir) / 'ci.json'
        path.write_text(json.dumps({'git': {'branch': 'env/prod'}}))
        config = load_config(path)
        self.assertEqual(config['git']['branch'], 'env/prod')

    def test_config_env_variable(self):
        """Test IMAGEBUMP_CONFIG selects the file"""
        path = Path(self.temp_dir) / 'elsewhere.json'
        path.write_text(json.dumps({'git': {'remote': 'gitops'}}))
        os.environ['IMAGEBUMP_CONFIG'] = str(path)

        self.assertEqual(get_config_path(), path)
        self.assertEqual(load_config()['git']['remote'], 'gitops')

    def test_default_config_path(self):
        self.assertEqual(get_config_path(), self.config_dir / 'config.json')

    def test_validation_rejects_negative_attempts(self):
        self.write_config('config.json', json.dumps({'git': {'max_attempts': -1}}))
        with self.assertRaises(ConfigError):
            load_config()

    def test_validation_rejects_empty_image_keys(self):
        self.write_config('config.json', json.dumps({'manifests': {'image_keys': []}}))
        with self.assertRaises(ConfigError):
            load_config()

    def test_validation_rejects_non_mapping(self):
        self.write_config('config.yaml', "- just\n- a list\n")
        with self.assertRaises(ConfigError):
            load_config()


class TestEnvOverrides(unittest.TestCase):
    """Test IMAGEBUMP_* environment overrides"""

    def test_integer(self):
        with patch.dict(os.environ, {'IMAGEBUMP_GIT_MAX_ATTEMPTS': '5'}):
            config = apply_env_overrides(get_default_config())
        self.assertEqual(config['git']['max_attempts'], 5)

    def test_float(self):
        with patch.dict(os.environ, {'IMAGEBUMP_GIT_BASE_DELAY': '0.5'}):
            config = apply_env_overrides(get_default_config())
        self.assertEqual(config['git']['base_delay'], 0.5)

    def test_multi_word_key(self):
        with patch.dict(os.environ, {'IMAGEBUMP_GIT_AUTHOR_NAME': 'Deploy Bot'}):
            config = apply_env_overrides(get_default_config())
        self.assertEqual(config['git']['author_name'], 'Deploy Bot')

    def test_list(self):
        with patch.dict(os.environ, {'IMAGEBUMP_MANIFESTS_PATHS': 'base/app.yaml, overlays/prod/app.yaml'}):
            config = apply_env_overrides(get_default_config())
        self.assertEqual(config['manifests']['paths'], ['base/app.yaml', 'overlays/prod/app.yaml'])

    def test_unknown_key_is_ignored(self):
        with patch.dict(os.environ, {'IMAGEBUMP_NOPE_VALUE': 'x'}):
            config = apply_env_overrides(get_default_config())
        self.assertEqual(config, get_default_config())


class TestMergeConfigs(unittest.TestCase):
    """Test recursive merging"""

    def test_nested_merge(self):
        merged = merge_configs(
            {'git': {'remote': 'origin', 'branch': ''}},
            {'git': {'branch': 'main'}, 'extra': 1},
        )
        self.assertEqual(merged, {'git': {'remote': 'origin', 'branch': 'main'}, 'extra': 1})

    def test_base_is_not_modified(self):
        base = get_default_config()
        merge_configs(base, {'git': {'remote': 'other'}})
        self.assertEqual(base['git']['remote'], 'origin')


if __name__ == '__main__':
    unittest.main()
