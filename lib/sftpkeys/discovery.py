"""Discover managed SSH key pairs in the key directory."""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from sftpkeys.reporter import Reporter
from sftpkeys.sftp_config import find_stored_passphrase, read_config
from sftpkeys.validation import validate_key_pair

PUBLIC_KEY_SUFFIX = '.pub'

_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9_.-]')


def sanitize_name(value: str) -> str:
    """Replace characters not allowed in key filenames with underscores."""
    return _UNSAFE_CHARS.sub('_', value)


def key_file_names(host: str, username: str, key_type: str) -> Tuple[str, str]:
    """Return (private, public) key filenames for a host/user/key type.

    Example:
        >>> key_file_names('example.com', 'deploy', 'ed25519')
        ('example.com-deploy-ed25519', 'example.com-deploy-ed25519.pub')
    """
    private_key_file = f'{sanitize_name(host)}-{sanitize_name(username)}-{key_type}'
    return private_key_file, private_key_file + PUBLIC_KEY_SUFFIX


@dataclass(frozen=True)
class KeyIdentity:
    """Host, user and key type encoded in a key filename."""
    hostname: str
    username: str
    key_type: str

    @classmethod
    def from_filename(cls, private_key_file: str) -> Optional['KeyIdentity']:
        """Parse '{host}-{username}-{keytype}'; the username may contain hyphens.

        Returns None for filenames with fewer than three segments.
        """
        parts = private_key_file.split('-')
        if len(parts) < 3:
            return None
        return cls(parts[0], '-'.join(parts[1:-1]), parts[-1])


@dataclass
class DiscoveredKey:
    """A key pair found on disk and whether it validated."""
    private_key_file: str
    public_key_file: str
    identity: KeyIdentity
    is_valid: bool
    error: Optional[str] = None

    @property
    def hostname(self) -> str:
        return self.identity.hostname

    @property
    def username(self) -> str:
        return self.identity.username

    @property
    def key_type(self) -> str:
        return self.identity.key_type

    @property
    def status_icon(self) -> str:
        return '✅' if self.is_valid else '❌'


def discover_keys(key_dir: Path, config_path: Optional[Path] = None,
                  reporter: Optional[Reporter] = None) -> List[DiscoveredKey]:
    """Find key pairs named '{host}-{username}-{keytype}' in a directory.

    Each public key file with a matching private key is validated, using a
    passphrase stored for that key in sftp.json when there is one. Files not
    following the naming convention are skipped.

    Args:
        key_dir: Directory to scan
        config_path: sftp.json to look up stored passphrases in
        reporter: Receives progress log entries

    Returns:
        Discovered key pairs, sorted by filename
    """
    key_dir = Path(key_dir)
    if not key_dir.is_dir():
        return []

    public_key_files = [f for f in sorted(os.listdir(key_dir)) if f.endswith(PUBLIC_KEY_SUFFIX)]
    if public_key_files and reporter:
        reporter.log(f'Scanning for SSH keys - found {len(public_key_files)} public key file(s)')

    profiles = []
    if config_path is not None:
        profiles = read_config(config_path).profiles
        if profiles and reporter:
            reporter.log(f'Found SFTP configuration with {len(profiles)} profile(s)')

    discovered = []
    for public_key_file in public_key_files:
        private_key_file = public_key_file[:-len(PUBLIC_KEY_SUFFIX)]
        private_key_path = key_dir / private_key_file
        public_key_path = key_dir / public_key_file

        if not private_key_path.exists():
            continue

        identity = KeyIdentity.from_filename(private_key_file)
        if identity is None:
            continue

        passphrase = find_stored_passphrase(profiles, private_key_file) or ''
        result = validate_key_pair(private_key_path, public_key_path, passphrase)

        # The key may have had its passphrase removed since it was stored.
        if not result.valid and passphrase:
            retry = validate_key_pair(private_key_path, public_key_path, '')
            if retry.valid:
                result = retry

        discovered.append(DiscoveredKey(
            private_key_file=private_key_file,
            public_key_file=public_key_file,
            identity=identity,
            is_valid=result.valid,
            error=result.error,
        ))

        if reporter:
            if result.valid:
                reporter.log(f'✓ Valid SSH key: {private_key_file}')
            else:
                reporter.log(f'✗ Invalid SSH key: {private_key_file} - {result.error}')

    if discovered and reporter:
        reporter.log(f'SSH key discovery complete - found {len(discovered)} key pair(s)')
    return discovered
