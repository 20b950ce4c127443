# Tests for write_tree / read_tree in ogit/base.py

import os

import pytest

from ogit import base, data, errors, types

# Permission bits are not enforced for root or on Windows
needs_permissions = pytest.mark.skipif(
    not hasattr(os, 'geteuid') or os.geteuid() == 0,
    reason='file permissions not enforced')


@pytest.fixture
def populated(repo, write_file):
    # A working tree with nested directories and an empty directory
    write_file('README.md', '# readme\n')
    write_file('src/main.py', 'print("hi")\n')
    write_file('src/pkg/util.py', b'\x00\x01binary\xff')
    os.makedirs(os.path.join(repo.work_tree, 'empty'))
    return repo


class TestWriteTree:

    def test_entries_sorted_by_name(self, repo, write_file):
        write_file('b.txt', 'b')
        write_file('a.txt', 'a')
        write_file('c/d.txt', 'd')
        tree = base.load(repo, base.write_tree(repo))
        assert isinstance(tree, types.Tree)
        assert [entry.name for entry in tree.entries] == ['a.txt', 'b.txt', 'c']
        assert [entry.type_ for entry in tree.entries] == ['blob', 'blob', 'tree']

    def test_same_shape_same_oid(self, repo, tmp_path):
        for name in ('one', 'two'):
            os.makedirs(tmp_path / name / 'sub')
            (tmp_path / name / 'sub' / 'f.txt').write_bytes(b'content')
            (tmp_path / name / 'top.txt').write_bytes(b'top')
        assert base.write_tree(repo, tmp_path / 'one') == base.write_tree(repo, tmp_path / 'two')

    def test_content_change_changes_oid(self, repo, write_file):
        write_file('f.txt', 'v1')
        first = base.write_tree(repo)
        write_file('f.txt', 'v2')
        assert base.write_tree(repo) != first

    def test_empty_working_tree(self, repo):
        oid = base.write_tree(repo)
        assert data.get_object(repo, oid, 'tree') == b''

    def test_stores_blobs(self, populated):
        oid = base.write_tree(populated)
        flat = base.get_tree(populated, oid)
        assert sorted(flat) == ['README.md', 'src/main.py', 'src/pkg/util.py']
        assert data.get_object(populated, flat['src/pkg/util.py']) == b'\x00\x01binary\xff'

    def test_skips_repository_and_ignored_files(self, repo, write_file):
        write_file('.ogitignore', '# logs\n*.log\nbuild/\n')
        write_file('keep.txt', 'keep')
        write_file('debug.log', 'noise')
        write_file('build/out.bin', 'artifact')
        flat = base.get_tree(repo, base.write_tree(repo))
        assert sorted(flat) == ['.ogitignore', 'keep.txt']

    @pytest.mark.skipif(not hasattr(os, 'symlink'), reason='symlinks unavailable')
    def test_symlink_is_unsupported(self, repo, write_file):
        target = write_file('real.txt', 'real')
        os.symlink(target, os.path.join(repo.work_tree, 'link.txt'))
        with pytest.raises(errors.UnsupportedEntry):
            base.write_tree(repo)

    @pytest.mark.skipif(not hasattr(os, 'mkfifo'), reason='named pipes unavailable')
    def test_special_file_is_unsupported(self, repo, write_file, object_count):
        os.mkfifo(os.path.join(repo.work_tree, 'a.fifo'))
        write_file('b.txt', 'b')
        with pytest.raises(errors.UnsupportedEntry):
            base.write_tree(repo)
        with pytest.raises(errors.UnsupportedEntry):
            base.status(repo)
        assert object_count() == 0

    @needs_permissions
    def test_unreadable_file(self, repo, write_file, object_count):
        path = write_file('a.txt', 'secret')
        write_file('b.txt', 'b')
        os.chmod(path, 0)
        try:
            with pytest.raises(errors.IOFailure):
                base.write_tree(repo)
        finally:
            os.chmod(path, 0o644)
        assert object_count() == 0

    @needs_permissions
    def test_unreadable_directory(self, repo, write_file):
        write_file('locked/inner.txt', 'inner')
        locked = os.path.join(repo.work_tree, 'locked')
        os.chmod(locked, 0)
        try:
            with pytest.raises(errors.IOFailure):
                base.write_tree(repo)
        finally:
            os.chmod(locked, 0o755)


class TestReadTree:

    def test_round_trip_into_other_directory(self, populated, snapshot, tmp_path):
        oid = base.write_tree(populated)
        dest = tmp_path / 'restored'
        base.read_tree(populated, oid, dest)
        assert snapshot(dest) == snapshot(populated.work_tree)

    def test_restores_working_tree(self, populated, write_file, snapshot):
        before = snapshot(populated.work_tree)
        oid = base.write_tree(populated)

        write_file('README.md', 'changed')
        write_file('src/new.py', 'new')
        os.remove(os.path.join(populated.work_tree, 'src', 'main.py'))
        base.read_tree(populated, oid)

        assert snapshot(populated.work_tree) == before

    def test_removes_abandoned_files_and_directories(self, repo, write_file, snapshot):
        write_file('keep.txt', 'keep')
        oid = base.write_tree(repo)
        write_file('stale/deep/old.txt', 'old')
        write_file('stale.txt', 'old')

        base.read_tree(repo, oid)
        files, dirs = snapshot(repo.work_tree)
        assert files == {'keep.txt': b'keep'}
        assert dirs == set()

    def test_file_replaced_by_directory(self, repo, write_file):
        write_file('thing/inner.txt', 'inner')
        oid = base.write_tree(repo)
        for name in os.listdir(os.path.join(repo.work_tree, 'thing')):
            os.remove(os.path.join(repo.work_tree, 'thing', name))
        os.rmdir(os.path.join(repo.work_tree, 'thing'))
        write_file('thing', 'now a file')

        base.read_tree(repo, oid)
        with open(os.path.join(repo.work_tree, 'thing', 'inner.txt')) as f:
            assert f.read() == 'inner'

    def test_keeps_ignored_files(self, repo, write_file):
        write_file('.ogitignore', '*.log\n')
        oid = base.write_tree(repo)
        write_file('debug.log', 'keep me')
        base.read_tree(repo, oid)
        assert os.path.exists(os.path.join(repo.work_tree, 'debug.log'))
        assert os.path.isdir(repo.git_dir)

    def test_missing_blob_leaves_working_tree_alone(self, repo, write_file, snapshot):
        write_file('a.txt', 'a')
        oid = base.write_tree(repo)
        blob = base.get_tree(repo, oid)['a.txt']
        os.remove(os.path.join(repo.git_dir, 'objects', blob))
        write_file('other.txt', 'untouched')
        before = snapshot(repo.work_tree)

        with pytest.raises(errors.ObjectNotFound):
            base.read_tree(repo, oid)
        assert snapshot(repo.work_tree) == before

    @pytest.mark.skipif(not hasattr(os, 'symlink'), reason='symlinks unavailable')
    def test_symlink_at_tracked_path_is_replaced(self, repo, write_file, tmp_path):
        path = write_file('a.txt', 'committed')
        oid = base.write_tree(repo)
        outside = tmp_path / 'outside.txt'
        outside.write_bytes(b'precious')
        os.remove(path)
        os.symlink(outside, path)

        base.read_tree(repo, oid)
        assert outside.read_bytes() == b'precious'
        assert not os.path.islink(path)
        with open(path, 'rb') as f:
            assert f.read() == b'committed'

    @pytest.mark.skipif(not hasattr(os, 'symlink'), reason='symlinks unavailable')
    def test_symlinked_directory_is_replaced(self, repo, write_file, tmp_path):
        write_file('dir/inner.txt', 'committed')
        oid = base.write_tree(repo)
        outside = tmp_path / 'outside'
        outside.mkdir()
        (outside / 'inner.txt').write_bytes(b'precious')
        link = os.path.join(repo.work_tree, 'dir')
        os.remove(os.path.join(link, 'inner.txt'))
        os.rmdir(link)
        os.symlink(outside, link)

        base.read_tree(repo, oid)
        assert (outside / 'inner.txt').read_bytes() == b'precious'
        assert not os.path.islink(link)
        with open(os.path.join(link, 'inner.txt'), 'rb') as f:
            assert f.read() == b'committed'

    def test_ignored_directory_in_the_way(self, repo, write_file, snapshot):
        path = write_file('build', 'tracked file')
        oid = base.write_tree(repo)
        os.remove(path)
        write_file('.ogitignore', 'build/\n')
        write_file('build/keep.txt', 'ignored output')
        write_file('stale.txt', 'abandoned')
        before = snapshot(repo.work_tree)

        with pytest.raises(errors.UnsupportedEntry):
            base.read_tree(repo, oid)
        assert snapshot(repo.work_tree) == before

    def test_directory_with_ignored_files_in_the_way(self, repo, write_file, snapshot):
        path = write_file('thing', 'tracked file')
        oid = base.write_tree(repo)
        os.remove(path)
        write_file('.ogitignore', '*.log\n')
        write_file('thing/debug.log', 'ignored')
        write_file('thing/other.txt', 'abandoned')
        before = snapshot(repo.work_tree)

        with pytest.raises(errors.UnsupportedEntry):
            base.read_tree(repo, oid)
        assert snapshot(repo.work_tree) == before

    @needs_permissions
    def test_read_only_file(self, repo, write_file):
        write_file('sub/a.txt', 'committed')
        oid = base.write_tree(repo)
        path = write_file('sub/a.txt', 'changed')
        os.chmod(path, 0o444)
        try:
            with pytest.raises(errors.IOFailure):
                base.read_tree(repo, oid)
        finally:
            os.chmod(path, 0o644)
        with open(path, 'rb') as f:
            assert f.read() == b'changed'

    def test_not_a_tree(self, repo):
        blob = data.hash_object(repo, b'not a tree')
        with pytest.raises(errors.UnexpectedObjectType):
            base.read_tree(repo, blob)

    def test_corrupt_tree_entry(self, repo):
        bad = data.hash_object(repo, b'blob nonsense\n', 'tree')
        with pytest.raises(errors.CorruptObject):
            base.get_tree(repo, bad)
