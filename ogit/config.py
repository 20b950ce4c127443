import os
import configparser

from ogit import errors
from ogit import types

DEFAULTS = {
    'reset.require_ancestor': 'true',
}


def get_config_path(repo: types.Repo):
    return os.path.join(repo.git_dir, 'config')


def read_config(repo: types.Repo) -> configparser.ConfigParser:
    config = configparser.ConfigParser()
    try:
        config.read(get_config_path(repo))
    except configparser.Error as e:
        raise errors.InvalidConfig(f'Failed to parse {get_config_path(repo)}: {e}') from e
    return config


def _split_key(key):
    section, sep, option = key.partition('.')
    if not sep or not section or not option:
        raise errors.InvalidConfig(f"Invalid config key {key!r}, expected 'section.option'")
    return section, option


def get_value(repo: types.Repo, key: str, fallback=None) -> str | None:
    section, option = _split_key(key)
    return read_config(repo).get(section, option, fallback=DEFAULTS.get(key, fallback))


def get_bool(repo: types.Repo, key: str) -> bool:
    section, option = _split_key(key)
    default = configparser.ConfigParser.BOOLEAN_STATES[DEFAULTS.get(key, 'false')]
    try:
        return read_config(repo).getboolean(section, option, fallback=default)
    except ValueError as e:
        raise errors.InvalidConfig(f"Config {key} is not a boolean") from e


def write_value(repo: types.Repo, key: str, value: str):
    section, option = _split_key(key)
    config = read_config(repo)
    if not config.has_section(section):
        config.add_section(section)
    config.set(section, option, value)

    try:
        with open(get_config_path(repo), 'w') as f:
            config.write(f)
    except OSError as e:
        raise errors.IOFailure(f'Failed to write {get_config_path(repo)}: {e}') from e
