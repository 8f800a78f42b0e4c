import json
from unittest.mock import patch
from click.testing import CliRunner
from sftpkeys.cli import main


def test_cli_shows_help():
    """CLI should list its commands with --help"""
    result = CliRunner().invoke(main, ['--help'])

    assert result.exit_code == 0
    for command in ('generate', 'generate-key', 'configure', 'change-passphrase'):
        assert command in result.output


def test_generate_key_end_to_end(tmp_path, ssh_keygen):
    """generate-key should create a real key pair and log to ~/.sftpkeys"""
    workspace = tmp_path / 'site'
    workspace.mkdir()

    runner = CliRunner()
    with patch('sftpkeys.cli.Path.home', return_value=tmp_path):
        result = runner.invoke(main, ['generate-key', '-w', str(workspace)],
                               input='1\nmyhost\nalice\n\n\nn\n')

    assert result.exit_code == 0, result.output
    assert (workspace / '.vscode' / 'myhost-alice-ed25519').exists()
    assert (workspace / '.vscode' / 'myhost-alice-ed25519.pub').exists()
    assert 'SSH key pair generated!' in result.output
    assert 'SSH key pair generated successfully!' in (tmp_path / '.sftpkeys' / 'sftpkeys.log').read_text()


def test_generate_writes_sftp_config(tmp_path, ssh_keygen):
    workspace = tmp_path / 'site'
    workspace.mkdir()

    runner = CliRunner()
    with patch('sftpkeys.cli.Path.home', return_value=tmp_path):
        result = runner.invoke(main, ['generate', '--workspace', str(workspace)],
                               input='1\nexample.com\ndeploy\n\n\n/var/www\nn\n')

    assert result.exit_code == 0, result.output
    config = json.loads((workspace / '.vscode' / 'sftp.json').read_text())
    assert config[0]['host'] == 'example.com'
    assert config[0]['privateKeyPath'] == './.vscode/example.com-deploy-ed25519'


def test_configure_without_keys_exits_1(tmp_path):
    runner = CliRunner()
    with patch('sftpkeys.cli.Path.home', return_value=tmp_path), \
            patch('sftpkeys.workflows.check_ssh_keygen', return_value=True):
        result = runner.invoke(main, ['configure', '-w', str(tmp_path)])

    assert result.exit_code == 1
    assert 'No SSH key pairs found' in result.output


def test_cancelled_prompt_exits_0(tmp_path):
    """End of input at the first prompt cancels the workflow"""
    runner = CliRunner()
    with patch('sftpkeys.cli.Path.home', return_value=tmp_path), \
            patch('sftpkeys.workflows.check_ssh_keygen', return_value=True):
        result = runner.invoke(main, ['generate-key', '-w', str(tmp_path)], input='')

    assert result.exit_code == 0
    assert 'Operation cancelled.' in result.output


def test_missing_workspace_exits_1(tmp_path):
    runner = CliRunner()
    with patch('sftpkeys.cli.Path.home', return_value=tmp_path):
        result = runner.invoke(main, ['change-passphrase', '-w', str(tmp_path / 'nope')])

    assert result.exit_code == 1
    assert 'Workspace not found' in result.output
