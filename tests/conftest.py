# Shared pytest fixtures for ogit tests

import os

import pytest

from ogit import base, data


@pytest.fixture
def repo(tmp_path):
    # An initialized, empty repository whose working tree is tmp_path/work
    repo_ = data.repo_at(tmp_path / 'work')
    os.makedirs(repo_.work_tree)
    base.init(repo_)
    return repo_


@pytest.fixture
def write_file(repo):
    # Writes a file relative to the working tree, creating parent directories
    def write(path, content):
        full_path = os.path.join(repo.work_tree, path)
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        if isinstance(content, str):
            content = content.encode()
        with open(full_path, 'wb') as f:
            f.write(content)
        return full_path
    return write


@pytest.fixture
def snapshot():
    # Returns ({relative path: bytes}, {relative directory}) for a directory,
    # leaving out the repository directory
    def take(directory):
        files, dirs = {}, set()
        for root, dirnames, filenames in os.walk(directory):
            if data.GIT_DIR_NAME in dirnames:
                dirnames.remove(data.GIT_DIR_NAME)
            rel_root = os.path.relpath(root, directory).replace(os.sep, '/')
            prefix = '' if rel_root == '.' else f'{rel_root}/'
            dirs.update(f'{prefix}{name}' for name in dirnames)
            for name in filenames:
                with open(os.path.join(root, name), 'rb') as f:
                    files[f'{prefix}{name}'] = f.read()
        return files, dirs
    return take


@pytest.fixture
def object_count(repo):
    def count():
        return len(list(data.iter_object_ids(repo)))
    return count
