import pytest
from sftpkeys.project_config import ProjectConfig


def test_project_config_loads_key_dir(tmp_path):
    """Should parse key_dir from sftpkeys.yml."""
    (tmp_path / 'sftpkeys.yml').write_text('key_dir: .ssh-keys\n')
    config = ProjectConfig.load(tmp_path)
    assert config.key_dir == '.ssh-keys'


def test_project_config_loads_all_fields(tmp_path):
    (tmp_path / 'sftpkeys.yml').write_text(
        'key_dir: keys/deploy\nconfig_file: deploy.json\nrsa_bits: 4096\n'
    )
    config = ProjectConfig.load(tmp_path)
    assert config == ProjectConfig(key_dir='keys/deploy', config_file='deploy.json', rsa_bits=4096)


def test_project_config_returns_none_if_no_file(tmp_path):
    """Should return None when no sftpkeys.yml present."""
    config = ProjectConfig.load(tmp_path)
    assert config is None


def test_project_config_defaults(tmp_path):
    """An empty file gives the defaults."""
    (tmp_path / 'sftpkeys.yml').write_text('')
    config = ProjectConfig.load(tmp_path)
    assert config == ProjectConfig()
    assert (config.key_dir, config.config_file, config.rsa_bits) == ('.vscode', 'sftp.json', 2048)


def test_project_config_rejects_unknown_fields(tmp_path):
    """Should raise ValueError for unrecognised fields."""
    (tmp_path / 'sftpkeys.yml').write_text('typo_field: oops\n')
    with pytest.raises(ValueError, match='Unknown'):
        ProjectConfig.load(tmp_path)


def test_project_config_rejects_non_mapping(tmp_path):
    (tmp_path / 'sftpkeys.yml').write_text('- key_dir\n')
    with pytest.raises(ValueError, match='mapping'):
        ProjectConfig.load(tmp_path)


@pytest.mark.parametrize('key_dir', ['/etc/ssh', '../outside', 'keys/../../up'])
def test_project_config_rejects_key_dir_outside_workspace(tmp_path, key_dir):
    (tmp_path / 'sftpkeys.yml').write_text(f'key_dir: {key_dir}\n')
    with pytest.raises(ValueError, match='key_dir'):
        ProjectConfig.load(tmp_path)


@pytest.mark.parametrize('bits', ['512', 'big', 'true'])
def test_project_config_rejects_bad_rsa_bits(tmp_path, bits):
    (tmp_path / 'sftpkeys.yml').write_text(f'rsa_bits: {bits}\n')
    with pytest.raises(ValueError, match='rsa_bits'):
        ProjectConfig.load(tmp_path)


def test_project_config_rejects_malformed_yaml(tmp_path):
    (tmp_path / 'sftpkeys.yml').write_text('key_dir: [unclosed\n')
    with pytest.raises(ValueError, match='Invalid sftpkeys.yml'):
        ProjectConfig.load(tmp_path)
