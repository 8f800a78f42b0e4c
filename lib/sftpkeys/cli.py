#!/usr/bin/env python3
"""sftpkeys CLI - SSH keys and sftp.json for SFTP deployments."""

import sys
import click
from pathlib import Path
from sftpkeys.prompts import Prompter
from sftpkeys.reporter import Reporter
from sftpkeys.workflows import (
    Context, Outcome, change_key_passphrase, configure_existing,
    generate_and_configure, generate_key_only,
)


def _context() -> Context:
    """Build the prompt/report collaborators for one command."""
    log_path = Path.home() / '.sftpkeys' / 'sftpkeys.log'
    return Context(prompter=Prompter(), reporter=Reporter(log_path))


def _finish(outcome: Outcome) -> None:
    if outcome is Outcome.FAILED:
        sys.exit(1)


workspace_option = click.option(
    '--workspace', '-w', type=click.Path(file_okay=False), default='.',
    help='Workspace root containing the key directory (default: current directory)',
)


@click.group()
@click.version_option()
def main():
    """Generate SSH keys and keep an SFTP client's sftp.json in sync."""
    pass


@main.command()
@workspace_option
def generate(workspace: str) -> None:
    """Generate an SSH key pair and create/update sftp.json."""
    _finish(generate_and_configure(_context(), Path(workspace).resolve()))


@main.command('generate-key')
@workspace_option
def generate_key(workspace: str) -> None:
    """Generate an SSH key pair only."""
    _finish(generate_key_only(_context(), Path(workspace).resolve()))


@main.command()
@workspace_option
def configure(workspace: str) -> None:
    """Update sftp.json from a key pair already in the key directory."""
    _finish(configure_existing(_context(), Path(workspace).resolve()))


@main.command('change-passphrase')
@workspace_option
def change_passphrase(workspace: str) -> None:
    """Add, change or remove the passphrase on an existing key."""
    _finish(change_key_passphrase(_context(), Path(workspace).resolve()))


if __name__ == '__main__':
    main()
