"""SSH key generation and passphrase management via ssh-keygen."""

import shutil
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

SSH_KEYGEN = 'ssh-keygen'
KEY_TYPES = ('ed25519', 'rsa')
DEFAULT_RSA_BITS = 2048

# ssh-keygen -y can block on a passphrase prompt; never wait longer than this.
DERIVE_TIMEOUT = 5


class SSHKeyError(RuntimeError):
    """Raised when an ssh-keygen operation fails."""


class ToolUnavailableError(SSHKeyError):
    """Raised when ssh-keygen cannot be found on PATH."""

    def __init__(self) -> None:
        super().__init__(
            "ssh-keygen is not installed or not found in PATH. "
            "This tool is required to generate SSH keys."
        )
        self.instructions = install_instructions()


class KeyGenerationError(SSHKeyError):
    """Raised when ssh-keygen fails to create a key pair."""


class PassphraseChangeError(SSHKeyError):
    """Raised when ssh-keygen fails to re-encrypt a private key."""


def install_instructions(platform: Optional[str] = None) -> str:
    """Return OpenSSH client installation instructions for a platform.

    Args:
        platform: A ``sys.platform`` value (defaults to the running platform)

    Returns:
        Multi-line installation instructions
    """
    platform = platform or sys.platform

    if platform == 'win32':
        return """Windows installation:

ssh-keygen ships with Windows 10/11 but may need to be enabled:

1. Open Settings > Apps > Optional Features
2. Search for "OpenSSH Client" and install it
3. Or install Git for Windows (includes ssh-keygen): https://git-scm.com/download/win
4. Alternative: install via Chocolatey: choco install openssh

Open a new terminal afterwards and try again."""

    if platform == 'darwin':
        return """macOS installation:

ssh-keygen should be pre-installed on macOS. If it is missing:

1. Install the Xcode Command Line Tools:
   xcode-select --install

2. Or install via Homebrew:
   brew install openssh

3. Make sure /usr/bin is in your PATH

Open a new terminal afterwards and try again."""

    if platform.startswith('linux'):
        return """Linux installation:

Install the OpenSSH client with your package manager:

Ubuntu/Debian:    sudo apt install openssh-client
CentOS/RHEL:      sudo yum install openssh-clients
Fedora:           sudo dnf install openssh-clients
Arch:             sudo pacman -S openssh
openSUSE:         sudo zypper install openssh-clients

Open a new terminal afterwards and try again."""

    return f"""Your platform ({platform}) is not specifically supported, but you can:

1. Install the OpenSSH client package for your system
2. Ensure ssh-keygen is available in your PATH
3. Open a new terminal and try again

For help, visit: https://www.openssh.com/portable.html"""


def check_ssh_keygen() -> bool:
    """Return True if ssh-keygen is available on PATH."""
    return shutil.which(SSH_KEYGEN) is not None


def _run_ssh_keygen(args: List[str], timeout: Optional[float] = None) -> subprocess.CompletedProcess:
    # Arguments go through argv, never a shell, so passphrases need no quoting.
    try:
        return subprocess.run(
            [SSH_KEYGEN, *args],
            capture_output=True,
            text=True,
            stdin=subprocess.DEVNULL,
            timeout=timeout,
        )
    except FileNotFoundError:
        raise ToolUnavailableError() from None


def public_key_path(private_key_path: Path) -> Path:
    """Return the companion public key path (private key path + ``.pub``)."""
    return Path(f"{private_key_path}.pub")


def generate_key(
    key_type: str,
    private_key_path: Path,
    passphrase: str = '',
    rsa_bits: Optional[int] = None,
    comment: Optional[str] = None,
) -> None:
    """Generate an SSH key pair with ssh-keygen.

    Args:
        key_type: 'ed25519' or 'rsa'
        private_key_path: Where the private key is written (public key gets .pub suffix)
        passphrase: Encryption passphrase for the new key; empty means unencrypted
        rsa_bits: Key size for rsa keys (ignored for ed25519, default 2048)
        comment: Key comment

    Raises:
        ValueError: If key_type is not supported
        KeyGenerationError: If ssh-keygen exits with an error
    """
    if key_type not in KEY_TYPES:
        raise ValueError(f"Unsupported key type: {key_type}")

    private_key_path = Path(private_key_path)
    private_key_path.parent.mkdir(parents=True, exist_ok=True)

    args = ['-t', key_type]
    if key_type == 'rsa':
        args += ['-b', str(rsa_bits or DEFAULT_RSA_BITS)]
    args += ['-f', str(private_key_path), '-N', passphrase, '-q']
    if comment:
        args += ['-C', comment]

    result = _run_ssh_keygen(args)
    if result.returncode != 0:
        detail = result.stderr.strip() or f"ssh-keygen exited with status {result.returncode}"
        raise KeyGenerationError(f"Error generating SSH key: {detail}")

    private_key_path.chmod(0o600)


def derive_public_key(private_key_path: Path, passphrase: str = '') -> Optional[str]:
    """Derive the public key from a private key.

    Returns:
        The derived public key line, or None if ssh-keygen failed or timed out
    """
    try:
        result = _run_ssh_keygen(
            ['-y', '-P', passphrase, '-f', str(private_key_path)],
            timeout=DERIVE_TIMEOUT,
        )
    except subprocess.TimeoutExpired:
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip()


def has_passphrase(private_key_path: Path) -> bool:
    """Return True if the private key cannot be opened with an empty passphrase."""
    return derive_public_key(private_key_path, '') is None


def verify_passphrase(private_key_path: Path, passphrase: str) -> bool:
    """Return True if the passphrase opens the private key."""
    return derive_public_key(private_key_path, passphrase) is not None


def change_passphrase(private_key_path: Path, old_passphrase: str, new_passphrase: str) -> None:
    """Re-encrypt a private key in place.

    An empty new_passphrase strips encryption from the key.

    Raises:
        PassphraseChangeError: If the old passphrase is wrong or ssh-keygen fails
    """
    result = _run_ssh_keygen([
        '-p',
        '-f', str(private_key_path),
        '-P', old_passphrase,
        '-N', new_passphrase,
    ])
    if result.returncode != 0:
        detail = result.stderr.strip() or f"ssh-keygen exited with status {result.returncode}"
        raise PassphraseChangeError(f"Error changing passphrase: {detail}")


def read_public_key(private_key_path: Path) -> str:
    """Read public key content.

    Args:
        private_key_path: Path to private key (will append .pub)

    Returns:
        Public key content as string
    """
    return public_key_path(private_key_path).read_text().strip()
