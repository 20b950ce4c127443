import os
from fnmatch import fnmatch

from ogit import data
from ogit import errors
from ogit import types

IGNORE_FILE = '.ogitignore'


def get_ignore_patterns(repo: types.Repo) -> set[str]:
    """Read the glob patterns of the working tree's ignore file.

    The repository directory is always ignored. Blank lines and lines
    starting with ``#`` are skipped.
    """
    patterns = {data.GIT_DIR_NAME}
    path = os.path.join(repo.work_tree, IGNORE_FILE)
    if not os.path.isfile(path):
        return patterns
    try:
        with open(path) as f:
            lines = f.read().splitlines()
    except OSError as e:
        raise errors.IOFailure(f'Failed to read {path}: {e}') from e
    for line in lines:
        line = line.strip()
        if line and not line.startswith('#'):
            patterns.add(line.rstrip('/'))
    return patterns


def is_ignored(path: types.Path, patterns) -> bool:
    path = path.replace('\\', '/')
    parts = path.split('/')
    return any(
        fnmatch(path, pattern) or any(fnmatch(part, pattern) for part in parts)
        for pattern in patterns
    )
