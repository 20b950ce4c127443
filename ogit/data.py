import os
import string
import hashlib
import logging
import tempfile
from contextlib import suppress
from typing import Iterable

from ogit import errors
from ogit import types
from ogit.types import RefValue

logger = logging.getLogger(__name__)

GIT_DIR_NAME = '.ogit'
MIN_PREFIX_LENGTH = 4
_TMP_PREFIX = '.tmp-'


def repo_at(work_tree) -> types.Repo:
    work_tree = os.path.abspath(work_tree)
    return types.Repo(git_dir=os.path.join(work_tree, GIT_DIR_NAME), work_tree=work_tree)


def find_repo(path='.') -> types.Repo:
    """Return the repository containing ``path``, searching parent directories."""
    path = os.path.abspath(path)
    while True:
        if os.path.isdir(os.path.join(path, GIT_DIR_NAME)):
            return repo_at(path)
        parent = os.path.dirname(path)
        if parent == path:
            raise errors.RepoNotFound(f'Not an ogit repository (or any parent): {GIT_DIR_NAME}')
        path = parent


def init(repo: types.Repo):
    try:
        for subdir in ('objects', 'refs/heads', 'refs/tags'):
            os.makedirs(f'{repo.git_dir}/{subdir}', exist_ok=True)
    except OSError as e:
        raise errors.IOFailure(f'Failed to create repository at {repo.git_dir}: {e}') from e


def _read_file(path) -> bytes | None:
    if not os.path.isfile(path):
        return None
    try:
        with open(path, 'rb') as f:
            return f.read()
    except OSError as e:
        raise errors.IOFailure(f'Failed to read {path}: {e}') from e


def _write_file(path, content: bytes):
    # Write beside the target and rename, so readers never see a partial file
    directory = os.path.dirname(path)
    try:
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=_TMP_PREFIX)
        try:
            with os.fdopen(fd, 'wb') as out:
                out.write(content)
            os.replace(tmp_path, path)
        except BaseException:
            with suppress(OSError):
                os.remove(tmp_path)
            raise
    except OSError as e:
        raise errors.IOFailure(f'Failed to write {path}: {e}') from e


def is_hex(value):
    return bool(value) and all(c in string.hexdigits for c in value)


def _object_path(repo, oid):
    if not is_hex(oid):
        raise errors.ObjectNotFound(f'Not an object id: {oid!r}')
    return f'{repo.git_dir}/objects/{oid.lower()}'


def hash_object(repo: types.Repo, data: bytes, type_: types.ObjectType = 'blob', write=True) -> types.OID:
    obj = type_.encode() + b'\x00' + data
    oid = hashlib.sha1(obj).hexdigest()
    if not write:
        return oid

    path = _object_path(repo, oid)
    if os.path.exists(path):
        logger.debug('Object %s already stored', oid)
    else:
        _write_file(path, obj)
        logger.debug('Stored %s %s (%d bytes)', type_, oid, len(data))
    return oid


def _read_object(repo, oid) -> tuple[types.ObjectType, bytes]:
    obj = _read_file(_object_path(repo, oid))
    if obj is None:
        raise errors.ObjectNotFound(f'Object {oid} not found')

    if hashlib.sha1(obj).hexdigest() != oid.lower():
        raise errors.CorruptObject(f'Object {oid} does not match its hash')
    type_, sep, content = obj.partition(b'\x00')
    type_ = type_.decode(errors='replace')
    if not sep or type_ not in types.OBJECT_TYPES:
        raise errors.CorruptObject(f'Object {oid} has an invalid header')
    return type_, content


def get_object(repo: types.Repo, oid: types.OID, expected: types.ObjectType | None = 'blob') -> bytes:
    type_, content = _read_object(repo, oid)
    if expected is not None and type_ != expected:
        raise errors.UnexpectedObjectType(f'Expected {expected}, got {type_} for {oid}')
    return content


def object_type(repo: types.Repo, oid: types.OID) -> types.ObjectType:
    return _read_object(repo, oid)[0]


def has_object(repo: types.Repo, oid: types.OID) -> bool:
    return is_hex(oid) and os.path.isfile(_object_path(repo, oid))


def iter_object_ids(repo: types.Repo) -> Iterable[types.OID]:
    try:
        names = sorted(os.listdir(f'{repo.git_dir}/objects'))
    except FileNotFoundError:
        return
    except OSError as e:
        raise errors.IOFailure(f'Failed to list objects: {e}') from e
    for name in names:
        if len(name) == 40 and is_hex(name):
            yield name


def expand_oid(repo: types.Repo, prefix: str) -> types.OID:
    """Return the single stored OID that starts with ``prefix``."""
    prefix = prefix.lower()
    if len(prefix) < MIN_PREFIX_LENGTH or not is_hex(prefix):
        raise errors.ObjectNotFound(f'Not an object id prefix: {prefix!r}')

    matches = [oid for oid in iter_object_ids(repo) if oid.startswith(prefix)]
    if not matches:
        raise errors.ObjectNotFound(f'No object matches {prefix}')
    if len(matches) > 1:
        raise errors.AmbiguousReference(f'Short object id {prefix} matches {len(matches)} objects')
    return matches[0]


def _check_ref_name(ref):
    parts = ref.split('/')
    if (not ref
            or any(part in ('', '.', '..') or part.startswith(_TMP_PREFIX) for part in parts)
            or any(c.isspace() for c in ref)):
        raise errors.InvalidRefName(f'Invalid ref name {ref!r}')


def ref_exists(repo: types.Repo, ref: str) -> bool:
    try:
        _check_ref_name(ref)
    except errors.InvalidRefName:
        return False
    return os.path.isfile(f'{repo.git_dir}/{ref}')


def update_ref(repo: types.Repo, ref: str, value: RefValue, deref=True):
    ref = _get_ref_internal(repo, ref, deref)[0]
    if not value.value:
        raise errors.InvalidRefName(f'Cannot set {ref} to an empty value')
    if value.symbolic:
        _check_ref_name(value.value)
        content = f'ref: {value.value}'
    else:
        content = value.value
    _write_file(f'{repo.git_dir}/{ref}', f'{content}\n'.encode())
    logger.debug('Set %s to %s', ref, content)


def get_ref(repo: types.Repo, ref: str, deref=True) -> RefValue:
    """Read ``ref``, following symbolic refs when ``deref`` is set.

    Raises :class:`~ogit.errors.RefNotFound` when ``ref`` itself does not
    exist. When a followed chain ends at a missing ref, the returned value is
    ``None``; use :func:`resolve_ref` to turn that into an error.
    """
    if not ref_exists(repo, ref):
        raise errors.RefNotFound(f'Ref {ref} not found')
    return _get_ref_internal(repo, ref, deref)[1]


def delete_ref(repo: types.Repo, ref: str, deref=True):
    ref = _get_ref_internal(repo, ref, deref)[0]
    try:
        os.remove(f'{repo.git_dir}/{ref}')
    except FileNotFoundError:
        raise errors.RefNotFound(f'Ref {ref} not found') from None
    except OSError as e:
        raise errors.IOFailure(f'Failed to delete ref {ref}: {e}') from e
    logger.debug('Deleted %s', ref)


def resolve_ref(repo: types.Repo, ref: str) -> types.OID:
    if not ref_exists(repo, ref):
        raise errors.RefNotFound(f'Ref {ref} not found')
    final_ref, value = _get_ref_internal(repo, ref, deref=True)
    if value.value is None:
        if ref == 'HEAD':
            raise errors.NoCommitsYet(f'{final_ref} has no commits yet')
        raise errors.DanglingRef(f'{ref} points at {final_ref}, which does not exist')
    return value.value


def _get_ref_internal(repo, ref: str, deref: bool, seen=frozenset()) -> tuple[str, RefValue]:
    _check_ref_name(ref)
    raw = _read_file(f'{repo.git_dir}/{ref}')
    value = raw.decode().strip() if raw is not None else None

    symbolic = bool(value) and value.startswith('ref:')
    if symbolic:
        value = value.split(':', 1)[1].strip()
        if deref:
            seen = seen | {ref}
            if value in seen:
                raise errors.RefCycle(f'Symbolic ref cycle: {" -> ".join(sorted(seen))} -> {value}')
            return _get_ref_internal(repo, value, True, seen)
    return ref, RefValue(symbolic=symbolic, value=value or None)


def iter_refs(repo: types.Repo, prefix='', deref=True) -> Iterable[tuple[str, RefValue]]:
    refs = ['HEAD']
    for root, _, filenames in os.walk(f'{repo.git_dir}/refs'):
        root = os.path.relpath(root, repo.git_dir).replace('\\', '/')
        refs.extend(f'{root}/{name}' for name in filenames if not name.startswith(_TMP_PREFIX))

    for refname in sorted(refs):
        if not refname.startswith(prefix):
            continue
        ref = _get_ref_internal(repo, refname, deref)[1]
        if ref.value:
            yield refname, ref
