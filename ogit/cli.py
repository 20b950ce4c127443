import argparse
import logging
import os
import sys
import textwrap
import time

from . import base
from . import config
from . import data
from . import diff
from . import errors
from . import types


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )
    try:
        args.func(args)
    except errors.OgitError as e:
        print(f'fatal: {e}', file=sys.stderr)
        return 1
    return 0


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog='ogit', description='A minimal local version-control engine.')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log object and ref updates.')
    commands = parser.add_subparsers(dest='command')
    commands.required = True

    init_parser = commands.add_parser('init', help='Create an empty repository.')
    init_parser.set_defaults(func=init)

    hash_object_parser = commands.add_parser('hash-object', help='Store a file as a blob.')
    hash_object_parser.set_defaults(func=hash_object)
    hash_object_parser.add_argument('file')

    cat_object_parser = commands.add_parser('cat-object', help='Print the raw payload of an object.')
    cat_object_parser.set_defaults(func=cat_object)
    cat_object_parser.add_argument('object')

    write_tree_parser = commands.add_parser('write-tree', help='Store the working tree as a tree object.')
    write_tree_parser.set_defaults(func=write_tree)

    read_tree_parser = commands.add_parser('read-tree', help='Replace the working tree with a tree object.')
    read_tree_parser.set_defaults(func=read_tree)
    read_tree_parser.add_argument('tree')

    commit_parser = commands.add_parser('commit', help='Record the working tree.')
    commit_parser.set_defaults(func=commit)
    commit_parser.add_argument('-m', '--message', required=True)

    log_parser = commands.add_parser('log', help='Show the history of a commit.')
    log_parser.set_defaults(func=log)
    log_parser.add_argument('oid', default='@', nargs='?')

    show_parser = commands.add_parser('show', help='Describe an object; commits are shown with their diff.')
    show_parser.set_defaults(func=show)
    show_parser.add_argument('oid', default='@', nargs='?')

    diff_parser = commands.add_parser('diff', help='Show working tree changes against HEAD.')
    diff_parser.set_defaults(func=_diff)

    switch_parser = commands.add_parser('switch', help='Check out a branch, tag or commit.')
    switch_parser.set_defaults(func=switch)
    switch_parser.add_argument('name')

    branch_parser = commands.add_parser('branch', help='List, create or delete branches.')
    branch_parser.set_defaults(func=branch)
    branch_parser.add_argument('name', nargs='?')
    branch_parser.add_argument('start_point', default='@', nargs='?')
    branch_parser.add_argument('-d', '--delete', action='store_true')

    tag_parser = commands.add_parser('tag', help='List or create tags.')
    tag_parser.set_defaults(func=tag)
    tag_parser.add_argument('name', nargs='?')
    tag_parser.add_argument('oid', default='@', nargs='?')

    status_parser = commands.add_parser('status', help='Compare the working tree with HEAD.')
    status_parser.set_defaults(func=status)

    reset_parser = commands.add_parser('reset', help='Move the current branch and working tree to a commit.')
    reset_parser.set_defaults(func=reset)
    reset_parser.add_argument('name')

    config_parser = commands.add_parser('config', help='Read or write a repository setting.')
    config_parser.set_defaults(func=_config)
    config_parser.add_argument('key')
    config_parser.add_argument('value', nargs='?')

    return parser.parse_args(argv)


def init(args):
    repo = data.repo_at(os.getcwd())
    base.init(repo)
    print(f'Initialized empty ogit repository in {repo.git_dir}')


def hash_object(args):
    repo = data.find_repo()
    try:
        with open(args.file, 'rb') as f:
            content = f.read()
    except OSError as e:
        raise errors.IOFailure(f'Failed to read {args.file}: {e}') from e
    print(data.hash_object(repo, content))


def cat_object(args):
    repo = data.find_repo()
    oid = base.get_oid(repo, args.object)
    sys.stdout.flush()
    sys.stdout.buffer.write(data.get_object(repo, oid, expected=None))


def write_tree(args):
    print(base.write_tree(data.find_repo()))


def read_tree(args):
    repo = data.find_repo()
    base.read_tree(repo, base.get_oid(repo, args.tree))


def commit(args):
    print(base.commit(data.find_repo(), args.message))


def _print_commit(oid, commit_: types.Commit, refs=None):
    refs_str = f' ({", ".join(refs)})' if refs else ''
    print(f'commit {oid}{refs_str}')
    print(f'Date:   {time.ctime(commit_.timestamp)}\n')
    print(textwrap.indent(commit_.message, '    '))
    print('')


def _refs_by_oid(repo):
    refs = {}
    for refname, ref in data.iter_refs(repo):
        refs.setdefault(ref.value, []).append(refname)
    return refs


def log(args):
    repo = data.find_repo()
    refs = _refs_by_oid(repo)
    for oid in base.iter_commits_and_parents(repo, {base.get_oid(repo, args.oid)}):
        _print_commit(oid, base.get_commit(repo, oid), refs.get(oid))


def show(args):
    repo = data.find_repo()
    oid = base.get_oid(repo, args.oid)
    obj = base.load(repo, oid)
    if isinstance(obj, types.Commit):
        parent_tree = base.get_commit(repo, obj.parent).tree if obj.parent else None
        _print_commit(oid, obj)
        sys.stdout.write(diff.diff_trees(
            repo,
            base.get_tree(repo, parent_tree) if parent_tree else {},
            base.get_tree(repo, obj.tree)))
    elif isinstance(obj, types.Tree):
        for type_, entry_oid, name in obj.entries:
            print(f'{type_} {entry_oid}\t{name}')
    else:
        sys.stdout.flush()
        sys.stdout.buffer.write(obj.data)


def _diff(args):
    repo = data.find_repo()
    try:
        head_tree = base.get_tree(repo, base.get_commit(repo, data.resolve_ref(repo, 'HEAD')).tree)
    except errors.NoCommitsYet:
        head_tree = {}
    sys.stdout.write(diff.diff_trees(repo, head_tree, base.get_working_tree(repo, write=True)))


def switch(args):
    base.switch(data.find_repo(), args.name)


def branch(args):
    repo = data.find_repo()
    if args.delete:
        if not args.name:
            raise errors.RefNotFound('No branch name given')
        base.delete_branch(repo, args.name)
        print(f'Deleted branch {args.name}')
    elif not args.name:
        current = base.get_branch_name(repo)
        for name in base.iter_branch_names(repo):
            prefix = '*' if name == current else ' '
            print(f'{prefix} {name}')
    else:
        oid = base.get_oid(repo, args.start_point)
        base.create_branch(repo, args.name, oid)
        print(f'Branch {args.name} created at {oid[:10]}')


def tag(args):
    repo = data.find_repo()
    if not args.name:
        for name in base.iter_tag_names(repo):
            print(name)
    else:
        base.create_tag(repo, args.name, base.get_oid(repo, args.oid))


def status(args):
    repo = data.find_repo()
    branch_name = base.get_branch_name(repo)
    if branch_name:
        print(f'On branch {branch_name}')
    else:
        print(f'HEAD detached at {data.resolve_ref(repo, "HEAD")[:10]}')

    changes = [(path, change) for path, change in base.status(repo).items() if change != 'unmodified']
    if not changes:
        print('nothing to commit, working tree clean')
        return
    print('\nChanges since HEAD:')
    for path, change in changes:
        print(f'{change:>12}: {path}')


def reset(args):
    base.reset(data.find_repo(), args.name)


def _config(args):
    repo = data.find_repo()
    if args.value is None:
        value = config.get_value(repo, args.key)
        if value is None:
            raise errors.InvalidConfig(f'Config {args.key} is not set')
        print(value)
    else:
        config.write_value(repo, args.key, args.value)
