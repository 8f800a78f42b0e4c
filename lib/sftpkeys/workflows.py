"""Workflows that tie key generation, discovery and sftp.json together.

Each public workflow function runs one use case end to end and returns an
Outcome. Prompts that come back cancelled stop the workflow where it is;
anything already written to disk stays written.
"""

import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import pyperclip

from sftpkeys.discovery import DiscoveredKey, discover_keys, key_file_names
from sftpkeys.project_config import ProjectConfig
from sftpkeys.prompts import Answer, Prompter
from sftpkeys.reporter import Reporter
from sftpkeys.sftp_config import (
    ConfigDocument, ConfigWriteError, PassphraseOption, SftpProfile,
    merge_profile, read_config, write_config,
)
from sftpkeys.ssh_keys import (
    SSHKeyError, ToolUnavailableError, change_passphrase, check_ssh_keygen,
    generate_key, has_passphrase, public_key_path, verify_passphrase,
)
from sftpkeys.validation import validate_key_pair

# (key type, rsa bits); None takes rsa_bits from sftpkeys.yml
KEY_TYPE_CHOICES = [
    ('ed25519', None),
    ('rsa', None),
    ('rsa', 4096),
]

STORAGE_CHOICES = [
    ('Store passphrase in config (plaintext)', PassphraseOption.PLAINTEXT),
    ('Prompt for passphrase when connecting', PassphraseOption.PROMPT),
]

MAX_PASSPHRASE_ATTEMPTS = 3
CONTINUE_ANYWAY = 'Continue Anyway'
SHOW_INSTRUCTIONS = 'Show Installation Instructions'
UNVERIFIED_NOTICE = 'Passphrase not verified; the SFTP client will prompt for it when connecting.'

# Pause between deleting an unreadable sftp.json and rewriting it, so file
# watchers see the deletion as a separate event.
RECREATE_DELAY = 0.1


class Outcome(Enum):
    DONE = 'done'
    CANCELLED = 'cancelled'
    FAILED = 'failed'


class WorkflowCancelled(Exception):
    """The user cancelled a prompt."""


class WorkflowFailed(Exception):
    """The workflow cannot continue; the message is shown to the user."""


@dataclass
class Context:
    """Collaborators a workflow talks to."""
    prompter: Prompter
    reporter: Reporter


@dataclass
class Workspace:
    """Workspace root and the managed key directory inside it."""
    root: Path
    settings: ProjectConfig

    @property
    def key_dir(self) -> Path:
        return self.root / self.settings.key_dir

    @property
    def config_path(self) -> Path:
        return self.key_dir / self.settings.config_file

    def display(self, path: Path) -> str:
        """Path relative to the workspace root, for messages."""
        try:
            return str(path.relative_to(self.root))
        except ValueError:
            return str(path)


@dataclass
class KeyPair:
    private_key_path: Path

    @property
    def public_key_path(self) -> Path:
        return public_key_path(self.private_key_path)

    @property
    def private_key_file(self) -> str:
        return self.private_key_path.name


def _require(answer: Answer) -> Answer:
    if answer.is_cancelled:
        raise WorkflowCancelled()
    return answer


def _run(ctx: Context, workflow: Callable[..., None], *args) -> Outcome:
    try:
        workflow(ctx, *args)
    except WorkflowCancelled:
        ctx.reporter.info('Operation cancelled.')
        return Outcome.CANCELLED
    except ToolUnavailableError as e:
        if ctx.reporter.error(str(e), SHOW_INSTRUCTIONS) == SHOW_INSTRUCTIONS:
            ctx.reporter.info(e.instructions)
        return Outcome.FAILED
    except (WorkflowFailed, SSHKeyError, ConfigWriteError) as e:
        ctx.reporter.error(str(e))
        return Outcome.FAILED
    return Outcome.DONE


def ensure_workspace(root: Path) -> Workspace:
    """Check the workspace and ssh-keygen, and create the key directory.

    Raises:
        WorkflowFailed: If the workspace is missing or sftpkeys.yml is invalid
        ToolUnavailableError: If ssh-keygen is not on PATH
    """
    root = Path(root)
    if not root.is_dir():
        raise WorkflowFailed(f'Workspace not found: {root}. Please open a workspace first.')

    if not check_ssh_keygen():
        raise ToolUnavailableError()

    try:
        settings = ProjectConfig.load(root) or ProjectConfig()
    except ValueError as e:
        raise WorkflowFailed(str(e)) from e

    workspace = Workspace(root, settings)
    try:
        workspace.key_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WorkflowFailed(f'Failed to create {settings.key_dir} directory: {e}') from e
    return workspace


def select_key_type(ctx: Context, workspace: Workspace) -> Tuple[str, Optional[int]]:
    choices = [
        (key_type, rsa_bits or workspace.settings.rsa_bits if key_type == 'rsa' else None)
        for key_type, rsa_bits in KEY_TYPE_CHOICES
    ]
    labels = [
        f'{key_type} {rsa_bits}' if rsa_bits else f'{key_type} (recommended)'
        for key_type, rsa_bits in choices
    ]
    answer = _require(ctx.prompter.select('Select SSH key type:', labels))
    return choices[answer.value]


def select_profile(ctx: Context, workspace: Workspace, document: ConfigDocument,
                   notice: str) -> Tuple[int, SftpProfile]:
    """Pick the profile to update; a fresh one when the document is empty.

    ``notice`` is shown for the chosen profile and may use ``{name}``.
    """
    if document.corrupted:
        config_name = workspace.display(workspace.config_path)
        ctx.reporter.warning(
            f'Invalid {config_name} detected. Its current content cannot be read '
            f'and will be replaced.'
        )
        answer = _require(ctx.prompter.confirm(f'Overwrite {config_name}?'))
        if not answer.value:
            raise WorkflowCancelled()

    if not document.profiles:
        return 0, SftpProfile()

    index = 0
    if len(document.profiles) > 1:
        labels = [p.label(i) for i, p in enumerate(document.profiles)]
        index = _require(ctx.prompter.select(
            'Multiple configurations found. Select which one to update:', labels
        )).value

    profile = document.profiles[index]
    ctx.reporter.info(notice.format(name=profile.name or f'Configuration {index + 1}'))
    return index, profile


def _required_text(ctx: Context, message: str, existing: Optional[str], missing: str) -> str:
    if existing and existing.strip():
        return existing
    answer = _require(ctx.prompter.text(message))
    if answer.is_empty:
        raise WorkflowFailed(missing)
    return answer.text


def _remote_path(ctx: Context, existing: Optional[str]) -> str:
    if existing is not None:
        return existing
    return _require(ctx.prompter.text('Remote path (blank for root)')).text


def _new_passphrase(ctx: Context, message: str) -> str:
    return _require(ctx.prompter.text(message, masked=True, confirm=True)).text


def _choose_storage(ctx: Context, title: str) -> PassphraseOption:
    answer = _require(ctx.prompter.select(title, [label for label, _ in STORAGE_CHOICES]))
    return STORAGE_CHOICES[answer.value][1]


def generate_key_pair(ctx: Context, workspace: Workspace, key_type: str, rsa_bits: Optional[int],
                      host: str, username: str, passphrase: str = '',
                      force_regenerate: bool = False) -> KeyPair:
    """Create the key pair for host/username unless a valid one already exists.

    An existing pair is reused only if it validates; otherwise, or when
    force_regenerate is set, the old files are deleted and a new pair is
    generated.

    Raises:
        KeyGenerationError: If ssh-keygen fails
    """
    private_key_file, _ = key_file_names(host, username, key_type)
    pair = KeyPair(workspace.key_dir / private_key_file)

    if not force_regenerate and pair.private_key_path.exists() and pair.public_key_path.exists():
        result = validate_key_pair(pair.private_key_path, pair.public_key_path, passphrase)
        if result.valid:
            ctx.reporter.info(
                f'Valid matching SSH key pair found: {pair.private_key_file}. Skipping key generation.'
            )
            return pair
        ctx.reporter.warning(f'Existing SSH key pair is invalid: {result.error}. Regenerating keys...')

    # ssh-keygen will not overwrite without asking.
    for path in (pair.private_key_path, pair.public_key_path):
        if path.exists():
            path.unlink()

    with_passphrase = ' with passphrase' if passphrase else ''
    ctx.reporter.info(f'Generating {key_type} key{with_passphrase}...')
    generate_key(key_type, pair.private_key_path, passphrase, rsa_bits=rsa_bits,
                 comment=f'{username}@{host}')
    ctx.reporter.success('SSH key pair generated successfully!')
    return pair


def update_sftp_configuration(ctx: Context, workspace: Workspace, host: str, username: str,
                              remote_path: str, private_key_file: str,
                              passphrase_option: Optional[PassphraseOption] = None,
                              passphrase: Optional[str] = None,
                              profile: Optional[SftpProfile] = None, index: int = 0) -> None:
    """Merge the settings into a profile and write sftp.json.

    Raises:
        ConfigWriteError: If sftp.json cannot be written
    """
    config_path = workspace.config_path
    document = read_config(config_path)
    updated = merge_profile(
        profile or SftpProfile(), host, username, remote_path, private_key_file,
        passphrase_option, passphrase, key_dir=workspace.settings.key_dir,
    )

    if document.needs_recreate:
        try:
            config_path.unlink()
        except OSError as e:
            raise ConfigWriteError(f'Failed to replace {config_path.name}: {e}') from e
        time.sleep(RECREATE_DELAY)

    write_config(config_path, document.profiles, document.is_array, index, updated)
    ctx.reporter.success(f'{workspace.display(config_path)} updated successfully!')


def offer_clipboard_copy(ctx: Context, pub_path: Path) -> None:
    answer = ctx.prompter.confirm('Do you want to copy the public key to your clipboard?')
    if answer.is_cancelled or not answer.value:
        return
    try:
        pyperclip.copy(pub_path.read_text())
    except (pyperclip.PyperclipException, OSError) as e:
        ctx.reporter.error(f'Failed to copy to clipboard: {e}')
        return
    ctx.reporter.success('Public key copied to clipboard!')


def select_discovered_key(ctx: Context, workspace: Workspace, title: str) -> DiscoveredKey:
    keys = discover_keys(workspace.key_dir, workspace.config_path, ctx.reporter)
    if not keys:
        raise WorkflowFailed(
            f'No SSH key pairs found in {workspace.settings.key_dir}. '
            f'Generate keys first with "sftpkeys generate" or "sftpkeys generate-key".'
        )

    if len(keys) == 1:
        key = keys[0]
        ctx.reporter.info(f'Using SSH key: {key.private_key_file} {key.status_icon}')
        return key

    labels = [
        f'{k.private_key_file} {k.status_icon}  {k.hostname}@{k.username} ({k.key_type})'
        for k in keys
    ]
    return keys[_require(ctx.prompter.select(title, labels)).value]


def prompt_for_working_passphrase(ctx: Context, private_key_path: Path, message: str,
                                  require_passphrase: bool = False) -> Optional[str]:
    """Ask for a passphrase until the key pair validates with it.

    Gives up after MAX_PASSPHRASE_ATTEMPTS and lets the user continue
    without one.

    Returns:
        The working passphrase, or None if the user chose to continue anyway
    """
    pub_path = public_key_path(private_key_path)
    for attempt in range(1, MAX_PASSPHRASE_ATTEMPTS + 1):
        answer = _require(ctx.prompter.text(
            f'{message} (attempt {attempt}/{MAX_PASSPHRASE_ATTEMPTS})', masked=True
        ))
        candidate = answer.text

        if require_passphrase and not candidate:
            error = 'A passphrase is required for this key'
        else:
            result = validate_key_pair(private_key_path, pub_path, candidate)
            if result.valid:
                ctx.reporter.success('SSH key validated successfully with passphrase!')
                return candidate
            error = result.error

        if attempt < MAX_PASSPHRASE_ATTEMPTS:
            ctx.reporter.warning(f'Incorrect passphrase. Please try again. ({error})')

    action = ctx.reporter.warning(
        f'Could not validate SSH key after {MAX_PASSPHRASE_ATTEMPTS} attempts. The key may be '
        f'corrupted or the passphrase is incorrect. Continue anyway?',
        CONTINUE_ANYWAY, 'Cancel',
    )
    if action != CONTINUE_ANYWAY:
        raise WorkflowCancelled()
    return None


def _working_stored_passphrases(document: ConfigDocument, private_key_file: str) -> List[str]:
    return [
        p.passphrase for _, p in document.profiles_for_key(private_key_file)
        if isinstance(p.passphrase, str) and p.passphrase.strip()
    ]


def resolve_passphrase(ctx: Context, workspace: Workspace, key: DiscoveredKey,
                       validation_passphrase: str = '',
                       unverified: bool = False) -> Tuple[PassphraseOption, Optional[str]]:
    """Decide how the key's passphrase is recorded in sftp.json.

    A key that opens without a passphrase gets any stale stored passphrase
    removed. Otherwise a working stored passphrase is reused, or the user is
    asked for one. ``unverified`` means the user already gave up on an
    earlier passphrase check, so an encrypted key is set to prompt on
    connect without asking again.

    Returns:
        (passphrase option, secret to store or None)
    """
    private_key_path = workspace.key_dir / key.private_key_file

    if validation_passphrase:
        option = _choose_storage(ctx, 'How would you like to handle the passphrase?')
        return option, validation_passphrase if option is PassphraseOption.PLAINTEXT else None

    if not has_passphrase(private_key_path):
        return PassphraseOption.REMOVE, None

    if unverified:
        ctx.reporter.warning(UNVERIFIED_NOTICE)
        return PassphraseOption.PROMPT, None

    stored = [
        p for p in _working_stored_passphrases(read_config(workspace.config_path), key.private_key_file)
        if verify_passphrase(private_key_path, p)
    ]
    if stored:
        passphrase = stored[0]
    else:
        passphrase = prompt_for_working_passphrase(
            ctx, private_key_path, 'This key requires a passphrase. Enter the passphrase',
            require_passphrase=True,
        )
        if passphrase is None:
            ctx.reporter.warning(UNVERIFIED_NOTICE)
            return PassphraseOption.PROMPT, None

    option = _choose_storage(ctx, 'This key has a passphrase. How would you like to handle it?')
    return option, passphrase if option is PassphraseOption.PLAINTEXT else None


def _generate_and_configure(ctx: Context, root: Path) -> None:
    workspace = ensure_workspace(root)
    key_type, rsa_bits = select_key_type(ctx, workspace)

    document = read_config(workspace.config_path)
    index, profile = select_profile(
        ctx, workspace, document, 'Using "{name}" configuration. Reusing values where available.'
    )

    host = _required_text(ctx, 'Enter SSH host (e.g. example.com)', profile.host, 'Host is required.')
    username = _required_text(ctx, 'Enter SSH username', profile.username, 'Username is required.')

    passphrase = _new_passphrase(ctx, 'Enter passphrase (leave empty for no passphrase)')
    if passphrase:
        option = _choose_storage(ctx, 'How should the passphrase be stored in sftp.json?')
    else:
        option = PassphraseOption.REMOVE

    remote_path = _remote_path(ctx, profile.remote_path)

    pair = generate_key_pair(ctx, workspace, key_type, rsa_bits, host, username, passphrase,
                             force_regenerate=True)
    update_sftp_configuration(ctx, workspace, host, username, remote_path, pair.private_key_file,
                              option, passphrase, profile, index)
    offer_clipboard_copy(ctx, pair.public_key_path)

    ctx.reporter.success(
        f'All done! Your SSH keys are saved in {workspace.display(pair.private_key_path)} (private) '
        f'and {workspace.display(pair.public_key_path)} (public).'
    )


def _generate_key_only(ctx: Context, root: Path) -> None:
    workspace = ensure_workspace(root)
    key_type, rsa_bits = select_key_type(ctx, workspace)

    host = _required_text(ctx, 'Enter hostname (for naming the key files)', None,
                          'Hostname is required for key naming.')
    username = _required_text(ctx, 'Enter username (for naming the key files)', None,
                              'Username is required for key naming.')
    passphrase = _new_passphrase(ctx, 'Enter passphrase (leave empty for no passphrase)')

    pair = generate_key_pair(ctx, workspace, key_type, rsa_bits, host, username, passphrase,
                             force_regenerate=True)
    offer_clipboard_copy(ctx, pair.public_key_path)

    ctx.reporter.success(
        f'SSH key pair generated! Keys saved as {workspace.display(pair.private_key_path)} (private) '
        f'and {workspace.display(pair.public_key_path)} (public).'
    )


def _configure_existing(ctx: Context, root: Path) -> None:
    workspace = ensure_workspace(root)
    key = select_discovered_key(ctx, workspace, 'Select an SSH key pair to use for SFTP configuration:')
    private_key_path = workspace.key_dir / key.private_key_file

    validation_passphrase = ''
    unverified = False
    if not key.is_valid:
        working = prompt_for_working_passphrase(
            ctx, private_key_path, 'Enter passphrase to validate SSH key (leave empty if none)'
        )
        unverified = working is None
        validation_passphrase = working or ''

    document = read_config(workspace.config_path)
    index, profile = select_profile(
        ctx, workspace, document, 'Updating "{name}" configuration with auto-discovered values.'
    )

    host = key.hostname
    if key.username:
        username = key.username
        ctx.reporter.info(f'Using username from key filename: {username}')
    else:
        username = _required_text(ctx, 'Enter SSH username', profile.username, 'Username is required.')

    remote_path = _remote_path(ctx, profile.remote_path)
    option, passphrase = resolve_passphrase(ctx, workspace, key, validation_passphrase, unverified)

    update_sftp_configuration(ctx, workspace, host, username, remote_path, key.private_key_file,
                              option, passphrase, profile, index)
    ctx.reporter.success(f'SFTP configuration updated successfully using {key.private_key_file}!')


def _current_passphrase(ctx: Context, workspace: Workspace, key: DiscoveredKey,
                        private_key_path: Path) -> str:
    document = read_config(workspace.config_path)
    for _, profile in document.profiles_for_key(key.private_key_file):
        if isinstance(profile.passphrase, str) and profile.passphrase.strip():
            if verify_passphrase(private_key_path, profile.passphrase):
                ctx.reporter.info('Using passphrase from SFTP configuration.')
                return profile.passphrase
        elif profile.passphrase is True:
            ctx.reporter.info('SFTP configuration shows this key has a passphrase (prompt on connect).')
            break

    ctx.reporter.info('This SSH key currently has a passphrase.')
    current = _require(ctx.prompter.text('Enter current passphrase', masked=True)).text
    if not verify_passphrase(private_key_path, current):
        raise WorkflowFailed('Current passphrase is incorrect.')
    return current


def _sync_profile_passphrase(ctx: Context, workspace: Workspace, key: DiscoveredKey,
                             new_passphrase: str) -> None:
    config_path = workspace.config_path
    document = read_config(config_path)
    matches = document.profiles_for_key(key.private_key_file)
    if not matches:
        return
    index, profile = matches[0]

    if not new_passphrase.strip():
        option, secret = PassphraseOption.REMOVE, None
    else:
        answer = ctx.prompter.select(
            'How should the new passphrase be stored in the SFTP configuration?',
            ['Store as plaintext', 'Prompt on connect'],
        )
        if answer.is_cancelled:
            ctx.reporter.log('SFTP configuration left unchanged')
            return
        option = [PassphraseOption.PLAINTEXT, PassphraseOption.PROMPT][answer.value]
        secret = new_passphrase if option is PassphraseOption.PLAINTEXT else None

    updated = merge_profile(
        profile, profile.host or key.hostname, profile.username or key.username,
        profile.remote_path or '', key.private_key_file, option, secret,
        key_dir=workspace.settings.key_dir,
    )
    try:
        write_config(config_path, document.profiles, document.is_array, index, updated)
    except ConfigWriteError as e:
        ctx.reporter.warning(f'Passphrase changed, but the SFTP configuration was not updated: {e}')
        return
    ctx.reporter.log(f'Updated SFTP configuration with {option.value} passphrase option')


def _change_key_passphrase(ctx: Context, root: Path) -> None:
    ctx.reporter.log('Passphrase change operation started')
    workspace = ensure_workspace(root)
    key = select_discovered_key(ctx, workspace, 'Select an SSH key to change passphrase for:')
    private_key_path = workspace.key_dir / key.private_key_file
    ctx.reporter.log(f'Selected SSH key: {key.private_key_file}')

    current = ''
    if not key.is_valid:
        current = prompt_for_working_passphrase(
            ctx, private_key_path, 'Enter current passphrase to validate (leave empty if none)'
        ) or ''

    if not current:
        if has_passphrase(private_key_path):
            current = _current_passphrase(ctx, workspace, key, private_key_path)
        else:
            ctx.reporter.info('This SSH key currently has no passphrase.')

    new_passphrase = _new_passphrase(ctx, 'Enter new passphrase (leave empty to remove)')
    change_passphrase(private_key_path, current, new_passphrase)
    _sync_profile_passphrase(ctx, workspace, key, new_passphrase)

    if new_passphrase.strip():
        ctx.reporter.success('Passphrase updated successfully for SSH key!')
    else:
        ctx.reporter.success('Passphrase removed successfully from SSH key!')


def generate_and_configure(ctx: Context, root: Path) -> Outcome:
    """Generate a key pair and create or update sftp.json."""
    return _run(ctx, _generate_and_configure, root)


def generate_key_only(ctx: Context, root: Path) -> Outcome:
    """Generate a key pair without touching sftp.json."""
    return _run(ctx, _generate_key_only, root)


def configure_existing(ctx: Context, root: Path) -> Outcome:
    """Point sftp.json at a key pair already in the key directory."""
    return _run(ctx, _configure_existing, root)


def change_key_passphrase(ctx: Context, root: Path) -> Outcome:
    """Add, change or remove the passphrase of a key in the key directory."""
    return _run(ctx, _change_key_passphrase, root)
