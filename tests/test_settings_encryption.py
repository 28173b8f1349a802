import os
import sys
import unittest
import keyring
import yaml
sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from config import YamlConfig
from db import SettingsRepository
from settings_schema import validate_settings

class DummyKeyring(keyring.backend.KeyringBackend):
    priority = 1
    def __init__(self):
        self.store = {}
    def get_password(self, service, username):
        return self.store.get((service, username))
    def set_password(self, service, username, password):
        self.store[(service, username)] = password
    def delete_password(self, service, username):
        self.store.pop((service, username), None)

class SettingsEncryptionTest(unittest.TestCase):
    def setUp(self) -> None:
        self.keyring = DummyKeyring()
        keyring.set_keyring(self.keyring)
        os.environ['ENCRYPT_SETTINGS'] = '1'
        self.path = 'enc_settings.yaml'
        self.db_path = 'enc_settings.db'
        for path in (self.path, self.db_path):
            if os.path.exists(path):
                os.remove(path)

    def tearDown(self) -> None:
        for path in (self.path, self.db_path):
            if os.path.exists(path):
                os.remove(path)
        os.environ.pop('ENCRYPT_SETTINGS', None)

    def test_encrypt_and_load(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({'gateway_key': 'secret', 'log_level': 'DEBUG'})
        self.assertTrue(os.path.exists(self.path))
        with open(self.path, 'r', encoding='utf-8') as f:
            raw = yaml.safe_load(f)
        self.assertIs(raw['gateway_key'], True)
        data = cfg.load()
        self.assertEqual(data['gateway_key'], 'secret')
        self.assertEqual(data['log_level'], 'DEBUG')

    def test_missing_secret_is_dropped(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({'gateway_key': 'secret'})
        self.keyring.store.clear()
        self.assertNotIn('gateway_key', cfg.load())

    def test_repository_round_trip(self) -> None:
        repo = SettingsRepository(self.db_path, self.path)
        repo.set_text('gateway_key', 'k3y')
        self.assertEqual(self.keyring.get_password('workout-lifecycle', 'gateway_key'), 'k3y')
        with open(self.path, 'r', encoding='utf-8') as f:
            self.assertNotIn('k3y', f.read())
        again = SettingsRepository(self.db_path, self.path)
        self.assertEqual(again.get_text('gateway_key', ''), 'k3y')


class SettingsRepositoryTest(unittest.TestCase):
    def setUp(self) -> None:
        self.path = 'plain_settings.yaml'
        self.db_path = 'plain_settings.db'
        for path in (self.path, self.db_path):
            if os.path.exists(path):
                os.remove(path)

    def tearDown(self) -> None:
        for path in (self.path, self.db_path):
            if os.path.exists(path):
                os.remove(path)

    def test_defaults(self) -> None:
        repo = SettingsRepository(self.db_path, self.path)
        data = repo.all_settings()
        self.assertEqual(data['rpe_scale'], 10)
        self.assertEqual(data['default_rest_seconds'], 0)
        self.assertIs(data['quick_complete_populate_actuals'], True)
        self.assertEqual(data['log_level'], 'INFO')

    def test_yaml_edits_are_picked_up(self) -> None:
        repo = SettingsRepository(self.db_path, self.path)
        with open(self.path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        data['rpe_scale'] = 5
        data['quick_complete_populate_actuals'] = False
        with open(self.path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f)
        self.assertEqual(repo.get_int('rpe_scale', 10), 5)
        self.assertFalse(repo.get_bool('quick_complete_populate_actuals', True))

    def test_invalid_yaml_rejected(self) -> None:
        with open(self.path, 'w', encoding='utf-8') as f:
            yaml.safe_dump({'rpe_scale': 0}, f)
        with self.assertRaises(ValueError):
            SettingsRepository(self.db_path, self.path)
        with self.assertRaises(ValueError):
            validate_settings({'default_rest_seconds': -5})
