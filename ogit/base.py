import os
import time
import logging
import itertools
import operator
from collections import deque
from typing import Iterable

from . import config, data, diff, errors, ignore
from . import types
from .types import RefValue

logger = logging.getLogger(__name__)

DEFAULT_BRANCH = 'master'
HEADS_PREFIX = 'refs/heads/'
TAGS_PREFIX = 'refs/tags/'


def init(repo: types.Repo):
    data.init(repo)
    if not data.ref_exists(repo, 'HEAD'):
        data.update_ref(repo, 'HEAD', RefValue(symbolic=True, value=f'{HEADS_PREFIX}{DEFAULT_BRANCH}'), deref=False)


def get_branch_name(repo: types.Repo) -> str | None:
    HEAD = data.get_ref(repo, 'HEAD', deref=False)
    if not HEAD.symbolic:
        return None
    HEAD = HEAD.value
    if not HEAD.startswith(HEADS_PREFIX):
        raise errors.InvalidRefName(f'HEAD points at {HEAD}, expected a branch under {HEADS_PREFIX}')
    return HEAD[len(HEADS_PREFIX):]


def iter_branch_names(repo: types.Repo) -> Iterable[str]:
    for refname, _ in data.iter_refs(repo, HEADS_PREFIX):
        yield refname[len(HEADS_PREFIX):]


def iter_tag_names(repo: types.Repo) -> Iterable[str]:
    for refname, _ in data.iter_refs(repo, TAGS_PREFIX):
        yield refname[len(TAGS_PREFIX):]


def is_branch(repo: types.Repo, name: str) -> bool:
    return data.ref_exists(repo, f'{HEADS_PREFIX}{name}')


def is_tag(repo: types.Repo, name: str) -> bool:
    return data.ref_exists(repo, f'{TAGS_PREFIX}{name}')


def create_branch(repo: types.Repo, name: str, oid: types.OID):
    get_commit(repo, oid)
    data.update_ref(repo, f'{HEADS_PREFIX}{name}', RefValue(symbolic=False, value=oid))
    logger.info('Created branch %s at %s', name, oid)


def delete_branch(repo: types.Repo, name: str):
    if name == get_branch_name(repo):
        raise errors.OgitError(f'Cannot delete branch {name}, it is checked out')
    if not is_branch(repo, name):
        raise errors.RefNotFound(f'Branch {name} not found')
    data.delete_ref(repo, f'{HEADS_PREFIX}{name}', deref=False)


def create_tag(repo: types.Repo, name: str, oid: types.OID):
    data.object_type(repo, oid)
    data.update_ref(repo, f'{TAGS_PREFIX}{name}', RefValue(symbolic=False, value=oid))
    logger.info('Created tag %s at %s', name, oid)


def get_oid(repo: types.Repo, name: str) -> types.OID:
    """Turn a user-supplied name into an OID.

    Accepts ``@`` and ``HEAD``, full ref names, branch and tag names, full
    OIDs and unique OID prefixes.
    """
    return _resolve_name(repo, name)[1]


def _resolve_name(repo, name) -> tuple[str | None, types.OID]:
    # Returns the matched ref (None for an OID) along with its OID
    if name == '@':
        name = 'HEAD'

    if is_branch(repo, name) and is_tag(repo, name):
        raise errors.AmbiguousReference(f'{name} is both a branch and a tag')

    refs_to_try = [
        f'refs/{name}',
        f'{TAGS_PREFIX}{name}',
        f'{HEADS_PREFIX}{name}'
    ]
    if name == 'HEAD' or name.startswith('refs/'):
        refs_to_try.insert(0, name)
    for ref in refs_to_try:
        if data.ref_exists(repo, ref):
            return ref, data.resolve_ref(repo, ref)

    if data.is_hex(name) and len(name) >= data.MIN_PREFIX_LENGTH:
        return None, data.expand_oid(repo, name)

    raise errors.RefNotFound(f'Unknown name {name}')


def _scan_dir(directory) -> list[os.DirEntry]:
    try:
        with os.scandir(directory) as it:
            return sorted(it, key=lambda entry: entry.name)
    except OSError as e:
        raise errors.IOFailure(f'Failed to read directory {directory}: {e}') from e


def _read_working_file(path) -> bytes:
    try:
        with open(path, 'rb') as f:
            return f.read()
    except OSError as e:
        raise errors.IOFailure(f'Failed to read {path}: {e}') from e


def _iter_working_entries(directory, base_path, patterns) -> Iterable[tuple[types.ObjectType, types.Path, os.DirEntry]]:
    for entry in _scan_dir(directory):
        path = base_path + entry.name
        if ignore.is_ignored(path, patterns):
            continue
        if '\n' in entry.name:
            raise errors.UnsupportedEntry(f'File names containing a newline are not supported: {path!r}')
        if entry.is_symlink():
            raise errors.UnsupportedEntry(f'Symbolic links are not supported: {path}')
        if entry.is_dir(follow_symlinks=False):
            yield 'tree', path, entry
        elif entry.is_file(follow_symlinks=False):
            yield 'blob', path, entry
        else:
            raise errors.UnsupportedEntry(f'Special files are not supported: {path}')


def _serialize_tree(entries: Iterable[types.TreeEntry]) -> bytes:
    tree = ''.join(f'{type_} {oid} {name}\n'
                   for type_, oid, name
                   in sorted(entries, key=operator.attrgetter('name')))
    return tree.encode(errors='surrogateescape')


def write_tree(repo: types.Repo, directory=None) -> types.OID:
    patterns = ignore.get_ignore_patterns(repo)

    def write_tree_recursive(dirpath, base_path):
        entries = []
        for type_, path, entry in _iter_working_entries(dirpath, base_path, patterns):
            if type_ == 'tree':
                oid = write_tree_recursive(entry.path, f'{path}/')
            else:
                oid = data.hash_object(repo, _read_working_file(entry.path))
            entries.append(types.TreeEntry(type_, oid, entry.name))
        return data.hash_object(repo, _serialize_tree(entries), 'tree')

    return write_tree_recursive(directory or repo.work_tree, '')


def get_working_tree(repo: types.Repo, write=False) -> types.TreeMap:
    """Hash every non-ignored file of the working tree.

    Blobs are only stored when ``write`` is set, so status checks leave the
    object store untouched.
    """
    patterns = ignore.get_ignore_patterns(repo)
    result = {}

    def walk(dirpath, base_path):
        for type_, path, entry in _iter_working_entries(dirpath, base_path, patterns):
            if type_ == 'tree':
                walk(entry.path, f'{path}/')
            else:
                result[path] = data.hash_object(repo, _read_working_file(entry.path), write=write)

    walk(repo.work_tree, '')
    return result


def _iter_tree_entries(repo: types.Repo, oid: types.OID) -> Iterable[types.TreeEntry]:
    if not oid:
        return
    tree = data.get_object(repo, oid, 'tree').decode(errors='surrogateescape')
    for line in tree.split('\n')[:-1]:
        try:
            type_, oid_, name = line.split(' ', 2)
        except ValueError:
            raise errors.CorruptObject(f'Malformed entry in tree {oid}: {line!r}') from None
        if type_ not in ('blob', 'tree') or not name or '/' in name or name in ('.', '..'):
            raise errors.CorruptObject(f'Invalid entry in tree {oid}: {line!r}')
        yield types.TreeEntry(type_, oid_, name)


def _walk_tree(repo, oid, base_path='') -> Iterable[tuple[types.TreeEntry, types.Path]]:
    for entry in _iter_tree_entries(repo, oid):
        path = base_path + entry.name
        yield entry, path
        if entry.type_ == 'tree':
            yield from _walk_tree(repo, entry.oid, f'{path}/')


def get_tree(repo: types.Repo, oid: types.OID, base_path: types.Path = '') -> types.TreeMap:
    return {path: entry.oid
            for entry, path in _walk_tree(repo, oid, base_path)
            if entry.type_ == 'blob'}


def read_tree(repo: types.Repo, tree_oid: types.OID, directory=None):
    """Make ``directory`` (the working tree by default) match a tree object.

    Files and directories that the tree does not list are removed first;
    ignored paths are never touched. Every object the tree refers to, and
    every ignored path standing where the tree needs a file or directory, is
    checked before the directory is modified.
    """
    directory = directory or repo.work_tree
    patterns = ignore.get_ignore_patterns(repo)

    files, dirs = {}, set()
    for entry, path in _walk_tree(repo, tree_oid):
        if entry.type_ == 'tree':
            dirs.add(path)
        else:
            files[path] = entry.oid
    missing = sorted(oid for oid in set(files.values()) if not data.has_object(repo, oid))
    if missing:
        raise errors.ObjectNotFound(f'Tree {tree_oid} refers to missing objects: {", ".join(missing)}')
    _check_ignored_conflicts(directory, files, dirs, patterns)

    try:
        os.makedirs(directory, exist_ok=True)
        _remove_abandoned(directory, '', files, dirs, patterns)
        for path in sorted(dirs):
            os.makedirs(os.path.join(directory, path), exist_ok=True)
        for path, oid in files.items():
            full_path = os.path.join(directory, path)
            os.makedirs(os.path.dirname(full_path), exist_ok=True)
            with open(full_path, 'wb') as f:
                f.write(data.get_object(repo, oid))
    except OSError as e:
        raise errors.IOFailure(f'Failed to check out tree {tree_oid}: {e}') from e
    logger.debug('Read tree %s into %s (%d files)', tree_oid, directory, len(files))


def _remove_abandoned(dirpath, base_path, files, dirs, patterns):
    for entry in _scan_dir(dirpath):
        path = base_path + entry.name
        if ignore.is_ignored(path, patterns):
            continue
        if entry.is_dir(follow_symlinks=False):
            _remove_abandoned(entry.path, f'{path}/', files, dirs, patterns)
            if path not in dirs and not os.listdir(entry.path):
                os.rmdir(entry.path)
        elif path not in files or not entry.is_file(follow_symlinks=False):
            # Links and special files are replaced, never written through
            os.remove(entry.path)


def _check_ignored_conflicts(directory, files, dirs, patterns):
    # Ignored paths blocking a file or directory of the tree
    for path in sorted(dirs.union(files)):
        full_path = os.path.join(directory, path)
        if not os.path.lexists(full_path):
            continue
        is_real_dir = os.path.isdir(full_path) and not os.path.islink(full_path)
        if path in dirs:
            blocked = not is_real_dir and ignore.is_ignored(path, patterns)
        elif is_real_dir:
            blocked = ignore.is_ignored(path, patterns) or _contains_ignored(full_path, f'{path}/', patterns)
        else:
            blocked = ignore.is_ignored(path, patterns) and (
                os.path.islink(full_path) or not os.path.isfile(full_path))
        if blocked:
            raise errors.UnsupportedEntry(f'Ignored path is in the way of {path}')


def _contains_ignored(dirpath, base_path, patterns) -> bool:
    for entry in _scan_dir(dirpath):
        path = base_path + entry.name
        if ignore.is_ignored(path, patterns):
            return True
        if entry.is_dir(follow_symlinks=False) and _contains_ignored(entry.path, f'{path}/', patterns):
            return True
    return False


def get_commit(repo: types.Repo, oid: types.OID) -> types.Commit:
    parent = None
    tree = None
    timestamp = 0
    commit_ = data.get_object(repo, oid, 'commit').decode()
    lines = iter(commit_.split('\n'))
    # Header fields end at the first empty line, the message follows
    for line in itertools.takewhile(operator.truth, lines):
        key, _, value = line.partition(' ')
        if key == 'tree':
            tree = value
        elif key == 'parent':
            if parent is not None:
                raise errors.CorruptObject(f'Commit {oid} has more than one parent')
            parent = value
        elif key == 'timestamp':
            try:
                timestamp = int(value)
            except ValueError:
                raise errors.CorruptObject(f'Commit {oid} has an invalid timestamp {value!r}') from None
        else:
            raise errors.CorruptObject(f'Unknown field {key} in commit {oid}')

    if tree is None:
        raise errors.CorruptObject(f'Commit {oid} has no tree')
    message = '\n'.join(lines)
    if message.endswith('\n'):
        message = message[:-1]
    return types.Commit(tree=tree, parent=parent, message=message, timestamp=timestamp)


def load(repo: types.Repo, oid: types.OID) -> types.Object:
    type_ = data.object_type(repo, oid)
    if type_ == 'blob':
        return types.Blob(data.get_object(repo, oid))
    if type_ == 'tree':
        return types.Tree(list(_iter_tree_entries(repo, oid)))
    return get_commit(repo, oid)


def commit(repo: types.Repo, message: str, timestamp: int | None = None) -> types.OID:
    commit_ = f'tree {write_tree(repo)}\n'

    try:
        HEAD = data.resolve_ref(repo, 'HEAD')
    except errors.NoCommitsYet:
        HEAD = None
    if HEAD:
        get_commit(repo, HEAD)
        commit_ += f'parent {HEAD}\n'

    if timestamp is None:
        timestamp = int(time.time())
    commit_ += f'timestamp {timestamp}\n'
    commit_ += '\n'
    commit_ += f'{message}\n'

    oid = data.hash_object(repo, commit_.encode(), 'commit')
    data.update_ref(repo, 'HEAD', RefValue(symbolic=False, value=oid))
    logger.info('Committed %s on %s', oid, get_branch_name(repo) or 'detached HEAD')
    return oid


def iter_commits_and_parents(repo: types.Repo, oids: Iterable[types.OID]) -> Iterable[types.OID]:
    oids = deque(oids)
    visited = set()

    while oids:
        oid = oids.popleft()
        if not oid or oid in visited:
            continue
        visited.add(oid)
        yield oid

        commit_ = get_commit(repo, oid)
        if commit_.parent:
            oids.appendleft(commit_.parent)


def is_ancestor_of(repo: types.Repo, commit_: types.OID, maybe_ancestor: types.OID) -> bool:
    return maybe_ancestor in iter_commits_and_parents(repo, {commit_})


def status(repo: types.Repo) -> dict[types.Path, types.Change]:
    try:
        HEAD = data.resolve_ref(repo, 'HEAD')
    except errors.NoCommitsYet:
        head_tree = {}
    else:
        head_tree = get_tree(repo, get_commit(repo, HEAD).tree)
    return dict(diff.classify_paths(head_tree, get_working_tree(repo)))


def _ensure_clean(repo):
    changed = [path for path, change in status(repo).items() if change != 'unmodified']
    if changed:
        raise errors.UncommittedChanges(changed)


def switch(repo: types.Repo, name: str):
    """Check out ``name`` and point HEAD at it.

    Names that resolve to a branch attach HEAD to that branch, anything else
    detaches it. Switching to ``HEAD`` itself keeps HEAD as it is.
    """
    ref, oid = _resolve_name(repo, name)
    commit_ = get_commit(repo, oid)
    _ensure_clean(repo)
    read_tree(repo, commit_.tree)

    if ref == 'HEAD':
        HEAD = data.get_ref(repo, 'HEAD', deref=False)
    elif ref and ref.startswith(HEADS_PREFIX):
        HEAD = RefValue(symbolic=True, value=ref)
    else:
        HEAD = RefValue(symbolic=False, value=oid)

    data.update_ref(repo, 'HEAD', HEAD, deref=False)
    logger.info('Switched to %s', HEAD.value)


def reset(repo: types.Repo, name: str):
    oid = get_oid(repo, name)
    commit_ = get_commit(repo, oid)
    HEAD = data.resolve_ref(repo, 'HEAD')
    if config.get_bool(repo, 'reset.require_ancestor') and not is_ancestor_of(repo, HEAD, oid):
        raise errors.NotAnAncestor(f'{name} is not an ancestor of HEAD ({HEAD})')
    _ensure_clean(repo)
    read_tree(repo, commit_.tree)

    data.update_ref(repo, 'HEAD', RefValue(symbolic=False, value=oid))
    logger.info('Reset %s to %s', get_branch_name(repo) or 'HEAD', oid)
