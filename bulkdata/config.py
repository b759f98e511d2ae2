# bulkdata/config.py
"""
Configuration management for database connections and bulk write defaults.
Supports YAML configuration files with optional password encryption and global settings.
"""

import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional, List, Tuple

import yaml
from cryptography.fernet import Fernet

from .defaults import settings
from .database import Database, get_params_for_database, register_user_drivers
from .etl.options import BulkConfig

logger = logging.getLogger(__name__)

ENCRYPTION_KEY_VAR = 'BULKDATA_ENCRYPTION_KEY'


def diagnose_config(config_file: Optional[str] = None) -> List[Tuple[str, str]]:
    """Config health check used by ``bulkdata checkup``."""
    results = []

    try:
        mgr = ConfigManager(config_file)
        results.append(('✓', f"Config loaded: {mgr.config_file}"))
    except (FileNotFoundError, ValueError) as e:
        results.append(('✗', f"Config failed: {e}"))
        return results

    env_key = os.getenv(ENCRYPTION_KEY_VAR)
    if env_key:
        results.append(('✓', f"{ENCRYPTION_KEY_VAR} set"))
        results.append(('✓', "Env key valid") if _valid_fernet(env_key) else ('✗', "Env key invalid"))
    else:
        results.append(('?', "No env key"))

    enc_count = sum(
        1 for c in mgr.config.get('connections', {}).values()
        if 'encrypted_password' in c
    ) + sum(
        1 for p in mgr.config.get('passwords', {}).values()
        if 'encrypted_password' in p
    )
    results.append(('✓', f"{enc_count} encrypted passwords") if enc_count else ('✓', "No encrypted passwords"))

    uenc_count = sum(
        1 for c in mgr.config.get('connections', {}).values()
        if 'password' in c and not str(c.get('password', '')).startswith('${')
    ) + sum(
        1 for p in mgr.config.get('passwords', {}).values()
        if 'password' in p and not str(p.get('password', '')).startswith('${')
    )
    results.append(("✗", f"{uenc_count} unencrypted passwords!") if uenc_count else ('✓', "No unencrypted passwords"))

    try:
        mgr.get_bulk_config()
        results.append(('✓', "Bulk settings valid"))
    except ValueError as e:
        results.append(('✗', f"Bulk settings invalid: {e}"))
    return results


def _valid_fernet(key: str) -> bool:
    try:
        Fernet(key.encode())
        return True
    except ValueError:
        return False


def _substitute_env(value: Any) -> Any:
    """Replace a ``${VAR}`` value with the environment variable."""
    if isinstance(value, str) and value.startswith('${') and value.endswith('}'):
        env_var = value[2:-1]
        env_value = os.environ.get(env_var)
        if env_value is None:
            raise ValueError(f"Environment variable {env_var} not set")
        return env_value
    return value


class ConfigManager:
    """
    Manage bulkdata configuration from YAML files.

    Configuration File Structure
    ----------------------------
    ::

        # bulkdata.yml
        settings:
          default_slice_size: 500
          check_consistency: true
          file_format: CSV
          logging:
            level: DEBUG

        connections:
          warehouse:
            type: postgres
            host: localhost
            database: warehouse
            user: loader
            encrypted_password: gAAAAABh...

        passwords:
          api_key:
            password: ${API_KEY}

    Configuration Locations
    -----------------------
    1. File specified in config_file parameter
    2. ``./bulkdata.yml`` / ``./bulkdata.yaml``
    3. ``~/.config/bulkdata.yml`` / ``~/.config/bulkdata.yaml``

    Notes
    -----
    * Connections require a 'type' (postgres, sqlite) or 'driver' field
    * Encrypted passwords require the BULKDATA_ENCRYPTION_KEY environment variable
    * Passwords may reference environment variables with ${VAR_NAME}
    """

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize config manager and load configuration.

        Raises
        ------
        FileNotFoundError
            If no config file found in any search location
        ValueError
            If config file is invalid or malformed
        """
        self.config_file = self._find_config_file(config_file)
        self.config = self._load_config()
        self._fernet = None

        self._apply_settings()

    def _find_config_file(self, config_file: Optional[str]) -> Path:
        """Find the configuration file."""
        if config_file:
            path = Path(config_file)
            if not path.exists():
                raise FileNotFoundError(f"Config file not found: {config_file}")
            return path

        candidates = [
            Path("bulkdata.yml"),
            Path("bulkdata.yaml"),
            Path.home() / ".config" / "bulkdata.yml",
            Path.home() / ".config" / "bulkdata.yaml"
        ]

        for candidate in candidates:
            if candidate.exists():
                return candidate

        raise FileNotFoundError(
            "No config file found. Looked in: " +
            ", ".join(str(c) for c in candidates)
        )

    def _load_config(self) -> Dict[str, Any]:
        """Load and validate configuration file."""
        try:
            with open(self.config_file, 'r') as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ValueError(f"Failed to load config file {self.config_file}: {e}")

        if not isinstance(config, dict):
            raise ValueError(f"Invalid config file {self.config_file}.")

        for name, conn in (config.get('connections') or {}).items():
            if not isinstance(conn, dict) or ('type' not in conn and 'driver' not in conn):
                raise ValueError(f"Invalid connection '{name}' in {self.config_file}: 'type' or 'driver' is required")

        if 'passwords' in config:
            if not isinstance(config['passwords'], dict):
                raise ValueError(f"Invalid config file {self.config_file}: 'passwords' must be a dictionary")
            for name, password_data in config['passwords'].items():
                if not isinstance(password_data, dict):
                    raise ValueError(f"Invalid password entry '{name}' in {self.config_file}: must be a dictionary")
                if 'password' not in password_data and 'encrypted_password' not in password_data:
                    raise ValueError(
                        f"Invalid password entry '{name}' in {self.config_file}: "
                        f"'password' or 'encrypted_password' is required")

        if 'settings' in config and not isinstance(config['settings'], dict):
            raise ValueError(f"Invalid config file {self.config_file}: 'settings' must be a dictionary")

        if 'drivers' in config:
            if not isinstance(config['drivers'], dict):
                raise ValueError(f"Invalid config file {self.config_file}: 'drivers' must be a dictionary")

        logger.info(f"Loaded config from {self.config_file}")
        return config

    def _apply_settings(self) -> None:
        """Apply global settings and user drivers from config."""
        config_settings = self.config.get('settings') or {}
        for key, value in config_settings.items():
            if isinstance(value, dict) and isinstance(settings.get(key), dict):
                settings[key].update(value)
            else:
                settings[key] = value
        if self.config.get('drivers'):
            register_user_drivers(self.config['drivers'])

    def get_setting(self, key: str, default: Any = None) -> Any:
        """
        Get a setting value from the config.

        Args:
            key: Setting key (supports dot notation like 'logging.level')
            default: Default value if key not found

        Example:
            slice_size = config.get_setting('default_slice_size', 1000)
        """
        value = self.config.get('settings') or {}
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set_setting(self, key: str, value: Any) -> None:
        """Set a setting value (dot notation supported) and save config."""
        current = self.config.setdefault('settings', {})
        keys = key.split('.')
        for k in keys[:-1]:
            current = current.setdefault(k, {})
        current[keys[-1]] = value
        self._save_config()
        self._apply_settings()

    def get_bulk_config(self, **overrides) -> BulkConfig:
        """Bulk write defaults from the built-in settings overlaid with this file's settings."""
        merged = dict(settings)
        merged.update(self.config.get('settings') or {})
        return BulkConfig.from_settings(merged, **overrides)

    def _get_encryption_key(self) -> bytes:
        key_str = os.environ.get(ENCRYPTION_KEY_VAR)
        if key_str:
            logger.debug(f"Using {ENCRYPTION_KEY_VAR} from environment")
            return key_str.encode()
        raise ValueError(
            "Encryption key not found in environment.\n"
            f"Run `bulkdata generate-key` and store the key in the {ENCRYPTION_KEY_VAR} environment variable."
        )

    def _get_fernet(self) -> Fernet:
        """Get or create Fernet instance for encryption/decryption."""
        if self._fernet is None:
            self._fernet = Fernet(self._get_encryption_key())
        return self._fernet

    def decrypt_password(self, encrypted_password: str) -> str:
        """Decrypt an encrypted password."""
        try:
            return self._get_fernet().decrypt(encrypted_password.encode()).decode()
        except Exception as e:
            raise ValueError(f"Failed to decrypt password: {e}")

    def encrypt_password(self, password: str) -> str:
        """Encrypt a password for storage."""
        try:
            return self._get_fernet().encrypt(password.encode()).decode()
        except Exception as e:
            raise ValueError(f"Failed to encrypt password: {e}")

    def get_connection_config(self, name: str) -> Dict[str, Any]:
        """Get configuration for a named connection with its password resolved."""
        connections = self.config.get('connections') or {}

        if name not in connections:
            raise ValueError(
                f"Connection '{name}' not found in config. "
                f"Available connections: {list(connections.keys())}"
            )

        config = connections[name].copy()

        if 'encrypted_password' in config:
            config['password'] = self.decrypt_password(config.pop('encrypted_password'))
        if 'password' in config:
            config['password'] = _substitute_env(config['password'])
        return config

    def list_connections(self) -> list:
        """List all available connection names."""
        return list((self.config.get('connections') or {}).keys())

    def get_password(self, name: str) -> str:
        """
        Get a stored password by name.

        Raises:
            ValueError: If password not found or decryption fails
        """
        passwords = self.config.get('passwords') or {}

        if name not in passwords:
            raise ValueError(
                f"Password '{name}' not found in config. "
                f"Available passwords: {list(passwords.keys())}"
            )

        password_entry = passwords[name]
        if 'encrypted_password' in password_entry:
            return self.decrypt_password(password_entry['encrypted_password'])
        return _substitute_env(password_entry['password'])

    def list_passwords(self) -> list:
        """List all available password names."""
        return list((self.config.get('passwords') or {}).keys())

    def add_password(self, name: str, password: str, description: str = None, encrypt: bool = True) -> None:
        """Add or update a password entry and save config."""
        passwords = self.config.setdefault('passwords', {})
        existed = name in passwords

        entry = {}
        if description:
            entry['description'] = description
        if encrypt:
            entry['encrypted_password'] = self.encrypt_password(password)
        else:
            entry['password'] = password

        passwords[name] = entry
        self._save_config()
        logger.info(f"Password '{name}' {'updated' if existed else 'added'} successfully")

    def _save_config(self) -> None:
        """Save config with consistent key ordering."""
        ordered_config = {}

        if 'settings' in self.config:
            ordered_config['settings'] = self.config['settings']

        if 'connections' in self.config:
            ordered_connections = {}
            connection_key_order = ['type', 'database', 'user', 'password', 'encrypted_password', 'host', 'port']

            for conn_name in sorted(self.config['connections'].keys()):
                connection = self.config['connections'][conn_name]
                ordered_connection = {key: connection[key] for key in connection_key_order if key in connection}
                for key in sorted(set(connection.keys()) - set(connection_key_order)):
                    ordered_connection[key] = connection[key]
                ordered_connections[conn_name] = ordered_connection

            ordered_config['connections'] = ordered_connections

        if 'drivers' in self.config:
            ordered_config['drivers'] = self.config['drivers']

        if 'passwords' in self.config:
            ordered_config['passwords'] = dict(sorted(self.config['passwords'].items()))

        with open(self.config_file, 'w') as f:
            yaml.safe_dump(ordered_config, f, default_flow_style=False, sort_keys=False)


# Global config manager instance
_config_manager: Optional[ConfigManager] = None


def _get_manager(config_file: Optional[str] = None) -> ConfigManager:
    global _config_manager

    if config_file:
        return ConfigManager(config_file)
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def generate_encryption_key() -> str:
    """
    Generate a random Fernet key for password encryption.

    Store it in the BULKDATA_ENCRYPTION_KEY environment variable.
    """
    return Fernet.generate_key().decode()


def set_config_file(config_file: str) -> None:
    """Set the configuration file to use globally."""
    global _config_manager
    _config_manager = ConfigManager(config_file)


def connect(name: str, password: str = None, config_file: Optional[str] = None) -> Database:
    """
    Connect to a named database from configuration.

    Example:
        db = connect('warehouse')
        employees = BulkTable(db, TableSchema.from_db(db.cursor(), 'employees'))
    """
    config = _get_manager(config_file).get_connection_config(name)
    if password:
        config['password'] = password
    info = {key: val for key, val in config.items() if key != 'password'}
    logger.debug(f"Connecting to database {name} with config: {info}")

    db_type = config.pop('type', None) or config.pop('database_type', settings.get('default_db_type', 'postgres'))
    driver = config.pop('driver', None)

    allowed_params = get_params_for_database(db_type, driver)
    config = {key: val for key, val in config.items() if key in allowed_params}

    db = Database.create(db_type, driver=driver, **config)
    db.name = name
    return db


def get_password(name: str, config_file: Optional[str] = None) -> str:
    """Get a stored password from configuration."""
    return _get_manager(config_file).get_password(name)


def get_setting(key: str, default: Any = None, config_file: Optional[str] = None) -> Any:
    """
    Get a setting value from configuration.

    Example:
        slice_size = get_setting('default_slice_size', 1000)
        level = get_setting('logging.level', 'INFO')
    """
    return _get_manager(config_file).get_setting(key, default)


def get_bulk_config(config_file: Optional[str] = None, **overrides) -> BulkConfig:
    """
    Build the bulk write defaults once at start-up.

    Falls back to the built-in defaults when no config file exists.

    Example:
        config = get_bulk_config(clock=lambda: fixed_time)
        employees = BulkTable(db, schema, config)
    """
    try:
        mgr = _get_manager(config_file)
    except FileNotFoundError:
        if config_file:
            raise
        logger.debug("No config file found, using default bulk settings")
        return BulkConfig.from_settings(settings, **overrides)
    return mgr.get_bulk_config(**overrides)


def encrypt_password(password: str = None, encryption_key: str = None) -> str:
    """
    Encrypt a password for the config file.

    Args:
        password: Password to encrypt (if None, prompts for input)
        encryption_key: Optional encryption key. If None, uses BULKDATA_ENCRYPTION_KEY
    """
    if password is None:
        import getpass
        password = getpass.getpass("Enter password to encrypt: ")

    if encryption_key:
        return Fernet(encryption_key.encode()).encrypt(password.encode()).decode()

    temp_config = ConfigManager.__new__(ConfigManager)
    temp_config._fernet = None
    return temp_config.encrypt_password(password)
