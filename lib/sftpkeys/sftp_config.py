"""Read, merge and write the SFTP client's sftp.json document."""

import copy
import json
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

DEFAULT_KEY_DIR = '.vscode'
CONFIG_FILE = 'sftp.json'

DEFAULT_IGNORE = [
    '**/.vscode', '**/.cache', '**/.git', '**/.gitignore', '**/.env*',
    '**/.DS_Store', '**/*.md', '**/node_modules', '**/package-lock.json',
    '**/package.json', '**/yarn.lock', '**/webpack.config.js',
    '**/webpack.entry.js', '**/.babelrc', '**/tsconfig.json',
    '**/.eslintrc*', '**/.prettierrc*',
]


class PassphraseOption(str, Enum):
    """How a key passphrase is recorded in a profile."""

    PLAINTEXT = 'plaintext'  # secret stored as a string
    PROMPT = 'prompt'        # `true`: the SFTP client asks at connect time
    REMOVE = 'remove'        # field dropped


class ConfigWriteError(RuntimeError):
    """Raised when sftp.json cannot be written."""


@dataclass
class SftpProfile:
    """One connection profile.

    Known fields are typed attributes; anything else in the JSON object is
    kept in ``extras`` and written back unchanged. ``key_order`` remembers
    the original key order so a rewrite does not shuffle the document.
    """

    name: Optional[str] = field(default=None, metadata={'json': 'name'})
    host: Optional[str] = field(default=None, metadata={'json': 'host'})
    username: Optional[str] = field(default=None, metadata={'json': 'username'})
    remote_path: Optional[str] = field(default=None, metadata={'json': 'remotePath'})
    private_key_path: Optional[str] = field(default=None, metadata={'json': 'privateKeyPath'})
    passphrase: Union[str, bool, None] = field(default=None, metadata={'json': 'passphrase'})
    protocol: Optional[str] = field(default=None, metadata={'json': 'protocol'})
    port: Optional[int] = field(default=None, metadata={'json': 'port'})
    upload_on_save: Optional[bool] = field(default=None, metadata={'json': 'uploadOnSave'})
    ignore: Optional[List[str]] = field(default=None, metadata={'json': 'ignore'})
    extras: Dict[str, Any] = field(default_factory=dict)
    key_order: List[str] = field(default_factory=list, repr=False, compare=False)

    @staticmethod
    def _known() -> Iterator[Tuple[str, str]]:
        for f in fields(SftpProfile):
            if 'json' in f.metadata:
                yield f.name, f.metadata['json']

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SftpProfile':
        """Build a profile from a parsed JSON object."""
        known = {json_key: attr for attr, json_key in cls._known()}
        values = {known[k]: v for k, v in data.items() if k in known}
        extras = {k: v for k, v in data.items() if k not in known}
        return cls(**values, extras=extras, key_order=list(data))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON object, original keys first in their original order."""
        values = {}
        for attr, json_key in self._known():
            value = getattr(self, attr)
            # A JSON null that was present in the source is kept.
            if value is not None or json_key in self.key_order:
                values[json_key] = value
        values.update(self.extras)

        ordered = {k: values[k] for k in self.key_order if k in values}
        ordered.update((k, v) for k, v in values.items() if k not in ordered)
        return ordered

    def copy(self) -> 'SftpProfile':
        return copy.deepcopy(self)

    def is_absent(self, attr: str) -> bool:
        """True if a known field is missing entirely (not merely null)."""
        json_key = dict(self._known())[attr]
        return getattr(self, attr) is None and json_key not in self.key_order

    def discard(self, attr: str) -> None:
        """Remove a known field so it is not written."""
        json_key = dict(self._known())[attr]
        setattr(self, attr, None)
        if json_key in self.key_order:
            self.key_order.remove(json_key)

    def label(self, index: int) -> str:
        """Display label used when choosing between profiles."""
        name = self.name or f'Configuration {index + 1}'
        return f"{name} ({self.host or 'No host'})"

    def uses_key(self, private_key_file: str) -> bool:
        return bool(self.private_key_path) and private_key_file in self.private_key_path


@dataclass
class ConfigDocument:
    """An sftp.json document as an ordered list of profiles.

    ``is_array`` records whether the file held an array or a single object;
    it decides the shape written back. ``corrupted`` is set when the file
    existed but could not be parsed.
    """

    profiles: List[SftpProfile] = field(default_factory=list)
    is_array: bool = True
    exists: bool = False
    corrupted: bool = False

    @property
    def needs_recreate(self) -> bool:
        """True if the file exists on disk but yielded no profiles."""
        return self.exists and not self.profiles

    def profiles_for_key(self, private_key_file: str) -> List[Tuple[int, SftpProfile]]:
        """Profiles whose privateKeyPath refers to the given key file."""
        return [(i, p) for i, p in enumerate(self.profiles) if p.uses_key(private_key_file)]


def read_config(config_path: Path) -> ConfigDocument:
    """Load sftp.json.

    Never raises: a missing, empty or unparseable file reads as an empty
    array-shaped document.

    Args:
        config_path: Path to sftp.json

    Returns:
        ConfigDocument with the file's profiles and shape
    """
    config_path = Path(config_path)
    if not config_path.exists():
        return ConfigDocument()

    try:
        content = config_path.read_text(encoding='utf-8').strip()
    except (OSError, UnicodeDecodeError):
        return ConfigDocument(exists=True, corrupted=True)

    if not content:
        return ConfigDocument(exists=True)

    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        return ConfigDocument(exists=True, corrupted=True)

    if isinstance(data, list) and all(isinstance(item, dict) for item in data):
        profiles = [SftpProfile.from_dict(item) for item in data]
        return ConfigDocument(profiles, is_array=True, exists=True)
    if isinstance(data, dict):
        return ConfigDocument([SftpProfile.from_dict(data)], is_array=False, exists=True)

    return ConfigDocument(exists=True, corrupted=True)


def private_key_config_path(private_key_file: str, key_dir: str = DEFAULT_KEY_DIR) -> str:
    """Workspace-relative privateKeyPath value for a managed key file."""
    return f'./{PurePosixPath(key_dir) / private_key_file}'


def merge_profile(
    profile: SftpProfile,
    host: str,
    username: str,
    remote_path: str,
    private_key_file: str,
    passphrase_option: Optional[Union[PassphraseOption, str]] = None,
    passphrase: Optional[str] = None,
    key_dir: str = DEFAULT_KEY_DIR,
) -> SftpProfile:
    """Merge connection and key settings into a copy of a profile.

    Connection fields are overwritten; name, uploadOnSave and ignore are only
    filled in when missing; every other field passes through unchanged.

    Passphrase handling:
        plaintext + non-blank secret -> stored as the secret
        plaintext + blank/None       -> removed
        prompt                       -> true
        remove                       -> removed
        no option + ''               -> removed
        no option + secret/None      -> left as is
    """
    merged = profile.copy()
    option = PassphraseOption(passphrase_option) if passphrase_option is not None else None

    if not merged.name:
        merged.name = host

    merged.host = host
    merged.username = username
    merged.remote_path = remote_path
    merged.private_key_path = private_key_config_path(private_key_file, key_dir)
    merged.protocol = 'sftp'
    merged.port = 22

    if option is PassphraseOption.PLAINTEXT:
        if passphrase and passphrase.strip():
            merged.passphrase = passphrase
        else:
            merged.discard('passphrase')
    elif option is PassphraseOption.PROMPT:
        merged.passphrase = True
    elif option is PassphraseOption.REMOVE:
        merged.discard('passphrase')
    elif passphrase == '':
        merged.discard('passphrase')

    if merged.is_absent('upload_on_save'):
        merged.upload_on_save = False

    if merged.ignore is None:
        merged.ignore = list(DEFAULT_IGNORE)

    return merged


def write_config(config_path: Path, profiles: List[SftpProfile], is_array: bool,
                 index: int, profile: SftpProfile) -> None:
    """Write sftp.json, keeping the document's array-or-object shape.

    In an array document the profile replaces the one at ``index`` (or is
    appended when there are none); an object document becomes the profile.

    Raises:
        ConfigWriteError: If the file cannot be written
    """
    config_path = Path(config_path)

    if is_array:
        profiles = list(profiles)
        if profiles:
            profiles[index] = profile
        else:
            profiles.append(profile)
        data: Any = [p.to_dict() for p in profiles]
    else:
        data = profile.to_dict()

    try:
        config_path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + '\n', encoding='utf-8')
    except OSError as e:
        raise ConfigWriteError(f"Failed to write {config_path.name}: {e}") from e


def find_stored_passphrase(profiles: List[SftpProfile], private_key_file: str) -> Optional[str]:
    """Return the first plaintext passphrase stored for a key file, if any."""
    for profile in profiles:
        if not profile.uses_key(private_key_file):
            continue
        if isinstance(profile.passphrase, str) and profile.passphrase.strip():
            return profile.passphrase
    return None
