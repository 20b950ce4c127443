"""Exceptions for ogit.

Every failure of a core operation is raised as a subclass of
:class:`OgitError`, so callers (the CLI in particular) can report it without
catching unrelated exceptions.
"""


class OgitError(Exception):
    """Base class for all ogit failures."""


class RepoNotFound(OgitError):
    """No ``.ogit`` directory was found in the path or any of its parents."""


class IOFailure(OgitError):
    """Reading or writing repository or working-tree files failed."""


class ObjectNotFound(OgitError):
    """No object with the requested OID (or OID prefix) is stored."""


class CorruptObject(OgitError):
    """Stored bytes cannot be parsed as their declared kind, or fail their hash."""


class UnexpectedObjectType(OgitError):
    """An object exists but is of a different kind than the caller needs."""


class UnsupportedEntry(OgitError):
    """The working tree holds something a tree cannot represent.

    Symbolic links, sockets, device files and names containing a newline are
    refused instead of being copied incorrectly.
    """


class InvalidRefName(OgitError):
    """A ref name would escape the refs namespace or cannot be stored."""


class RefNotFound(OgitError):
    """The named ref (or branch, tag, or OID) does not exist."""


class DanglingRef(OgitError):
    """A symbolic ref chain ends at a ref that does not exist."""


class NoCommitsYet(DanglingRef):
    """HEAD points at a branch that has no commits yet."""


class RefCycle(OgitError):
    """A symbolic ref chain revisits a ref it already passed through."""


class AmbiguousReference(OgitError):
    """A name matches both a branch and a tag, or an OID prefix matches several objects."""


class UncommittedChanges(OgitError):
    """The working tree differs from HEAD and the operation would discard it.

    Raised by ``switch`` and ``reset``; commit the changes (or remove them)
    and retry.
    """

    def __init__(self, paths):
        self.paths = sorted(paths)
        listing = ', '.join(self.paths[:5])
        if len(self.paths) > 5:
            listing += f', ... ({len(self.paths) - 5} more)'
        super().__init__(f'Uncommitted changes would be lost: {listing}')


class NotAnAncestor(OgitError):
    """``reset`` was asked to move to a commit outside the current history."""


class InvalidConfig(OgitError):
    """A config key is malformed or holds a value of the wrong type."""
