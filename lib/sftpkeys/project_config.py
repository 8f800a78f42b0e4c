"""Parse sftpkeys.yml workspace configuration."""

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional

import yaml

from sftpkeys.sftp_config import CONFIG_FILE, DEFAULT_KEY_DIR
from sftpkeys.ssh_keys import DEFAULT_RSA_BITS

CONFIG_FILENAME = 'sftpkeys.yml'
KNOWN_FIELDS = {'key_dir', 'config_file', 'rsa_bits'}


@dataclass
class ProjectConfig:
    """Workspace-specific settings from sftpkeys.yml."""
    key_dir: str = DEFAULT_KEY_DIR
    config_file: str = CONFIG_FILE
    rsa_bits: int = DEFAULT_RSA_BITS

    @classmethod
    def load(cls, workspace: Path) -> Optional['ProjectConfig']:
        """Load sftpkeys.yml from workspace root. Returns None if not present."""
        config_file = workspace / CONFIG_FILENAME
        if not config_file.exists():
            return None

        try:
            with open(config_file, encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid {CONFIG_FILENAME}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"{CONFIG_FILENAME} must be a mapping")

        unknown = set(data.keys()) - KNOWN_FIELDS
        if unknown:
            raise ValueError(f"Unknown {CONFIG_FILENAME} field(s): {', '.join(sorted(unknown))}")

        key_dir = str(data.get('key_dir', DEFAULT_KEY_DIR))
        if not key_dir or PurePosixPath(key_dir).is_absolute() or '..' in PurePosixPath(key_dir).parts:
            raise ValueError(f"key_dir must be a path inside the workspace: {key_dir!r}")

        rsa_bits = data.get('rsa_bits', DEFAULT_RSA_BITS)
        if not isinstance(rsa_bits, int) or isinstance(rsa_bits, bool) or rsa_bits < 1024:
            raise ValueError(f"rsa_bits must be an integer of at least 1024: {rsa_bits!r}")

        return cls(
            key_dir=key_dir,
            config_file=str(data.get('config_file', CONFIG_FILE)),
            rsa_bits=rsa_bits,
        )
