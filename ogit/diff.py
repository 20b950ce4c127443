import difflib
from collections import defaultdict
from typing import Iterable
from typing_extensions import Unpack

from . import types
from . import data


def compare_trees(*trees: types.TreeMap) -> Iterable[tuple[types.Path, Unpack[tuple[types.OID | None, ...]]]]:
    entries = defaultdict(lambda: [None] * len(trees))
    for i, tree in enumerate(trees):
        for path, oid in tree.items():
            entries[path][i] = oid

    for path in sorted(entries):
        yield path, *entries[path]


def classify_paths(t_from: types.TreeMap, t_to: types.TreeMap) -> Iterable[tuple[types.Path, types.Change]]:
    for path, o_from, o_to in compare_trees(t_from, t_to):
        change = ('unmodified' if o_from == o_to else
                  'added' if not o_from else
                  'deleted' if not o_to else
                  'modified')
        yield path, change


def iter_changed_files(t_from: types.TreeMap, t_to: types.TreeMap) -> Iterable[tuple[types.Path, types.Change]]:
    for path, change in classify_paths(t_from, t_to):
        if change != 'unmodified':
            yield path, change


def diff_trees(repo: types.Repo, t_from: types.TreeMap, t_to: types.TreeMap) -> str:
    output = ''
    for path, o_from, o_to in compare_trees(t_from, t_to):
        if o_from != o_to:
            output += diff_blobs(repo, o_from, o_to, path)
    return output


def diff_blobs(repo: types.Repo, o_from: types.OID | None, o_to: types.OID | None, path='blob') -> str:
    contents = []
    for oid in (o_from, o_to):
        blob = data.get_object(repo, oid) if oid else b''
        contents.append(blob.decode(errors='replace').splitlines(keepends=True))

    lines = difflib.unified_diff(
        *contents,
        fromfile=f'a/{path}' if o_from else '/dev/null',
        tofile=f'b/{path}' if o_to else '/dev/null',
    )
    # Terminate a last line that lacked a newline so diffs can be concatenated
    return ''.join(line if line.endswith('\n') else line + '\n' for line in lines)
