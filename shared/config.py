"""
Upload configuration.

The config is an explicit object passed to the client and transports; there
is no module-level client or credential. Values come from the JSON config
file, then environment variables (a ``.env`` file is honoured), then
explicit overrides.
"""

from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Dict, Any, Optional
import json
import logging
import os

from dotenv import load_dotenv

from shared.models import Backend
from shared import constants

logger = logging.getLogger(__name__)


@dataclass
class UploadConfig:
    """
    Settings for one upload client.

    Attributes:
        backend: Where uploads go (Vimeo API or a local directory)
        access_token: OAuth bearer token for the Vimeo API
        api_base: Base URL of the API
        local_path: Root directory of the local backend
        chunk_size: Upper bound on bytes per chunk
        max_retries: Retries allowed per failing operation
        base_delay: First backoff delay in seconds, doubled per retry
        max_delay: Cap on a single backoff delay
        jitter: Random extra delay as a fraction of the computed delay
        timeout: Per-request timeout in seconds
        parallel: Worker threads for multi-file uploads
        is_encrypted: Whether access_token currently holds ciphertext
    """
    backend: Backend = Backend.VIMEO
    access_token: str = ""
    api_base: str = constants.DEFAULT_API_BASE
    local_path: str = constants.DEFAULT_LOCAL_STORE
    chunk_size: int = constants.DEFAULT_CHUNK_SIZE
    max_retries: int = constants.DEFAULT_MAX_RETRIES
    base_delay: float = constants.DEFAULT_BASE_DELAY
    max_delay: float = constants.DEFAULT_MAX_DELAY
    jitter: float = constants.DEFAULT_JITTER
    timeout: float = constants.DEFAULT_NETWORK_TIMEOUT
    parallel: int = constants.DEFAULT_PARALLEL_UPLOADS
    is_encrypted: bool = False

    def __post_init__(self):
        if isinstance(self.backend, str):
            self.backend = Backend(self.backend)
        if self.chunk_size < constants.MIN_CHUNK_SIZE:
            raise ValueError(f"chunk_size must be at least {constants.MIN_CHUNK_SIZE} bytes")
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays cannot be negative")

    def to_dict(self, encrypt: bool = True) -> Dict[str, Any]:
        """Convert config to dictionary, optionally encrypting the token."""
        from shared.crypto import CredentialManager

        data = asdict(self)
        data['backend'] = self.backend.value

        if encrypt and self.access_token and not self.is_encrypted:
            data['access_token'] = CredentialManager.encrypt(self.access_token)
            data['is_encrypted'] = True

        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UploadConfig':
        """Create UploadConfig from dictionary, decrypting if necessary."""
        from shared.crypto import CredentialManager
        import dataclasses

        field_names = {f.name for f in dataclasses.fields(cls)}
        filtered_data = {k: v for k, v in data.items() if k in field_names}

        if filtered_data.get('is_encrypted', False):
            token = CredentialManager.decrypt(filtered_data.get('access_token', ''))
            # Wrong machine: keep the ciphertext, the API will reject it
            if token is not None:
                filtered_data['access_token'] = token
                filtered_data['is_encrypted'] = False

        return cls(**filtered_data)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> 'UploadConfig':
        return cls.from_dict(json.loads(json_str))


def default_config_path() -> Path:
    return Path(constants.DEFAULT_CONFIG_DIR).expanduser() / constants.CONFIG_FILENAME


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    mapping = [
        (constants.ENV_ACCESS_TOKEN, 'access_token', str),
        (constants.ENV_API_BASE, 'api_base', str),
        (constants.ENV_BACKEND, 'backend', str),
        (constants.ENV_LOCAL_PATH, 'local_path', str),
        (constants.ENV_CHUNK_SIZE, 'chunk_size', int),
        (constants.ENV_MAX_RETRIES, 'max_retries', int),
        (constants.ENV_TIMEOUT, 'timeout', float),
    ]
    for env_name, key, cast in mapping:
        raw = os.getenv(env_name)
        if raw:
            try:
                overrides[key] = cast(raw)
            except ValueError:
                logger.warning("Ignoring invalid %s=%r", env_name, raw)
    if 'access_token' in overrides:
        overrides['is_encrypted'] = False
    return overrides


def load_config(path: Optional[Path] = None, **overrides: Any) -> UploadConfig:
    """
    Build the effective configuration.

    Args:
        path: Config file to read (defaults to the user config dir). A
              missing file is not an error.
        overrides: Explicit values that win over file and environment

    Returns:
        UploadConfig instance
    """
    load_dotenv()

    config_path = path or default_config_path()
    data: Dict[str, Any] = {}
    if config_path.exists():
        with open(config_path, 'r') as f:
            data = json.load(f)
        logger.debug("Loaded config from %s", config_path)

    config = UploadConfig.from_dict(data)
    merged = config.to_dict(encrypt=False)
    merged.update(_env_overrides())
    merged.update({k: v for k, v in overrides.items() if v is not None})
    return UploadConfig.from_dict(merged)


def save_config(config: UploadConfig, path: Optional[Path] = None) -> Path:
    """Write the config file with the token encrypted. Returns the path."""
    config_path = path or default_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w') as f:
        f.write(config.to_json())
    return config_path
