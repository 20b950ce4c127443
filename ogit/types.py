from typing import TypeAlias, NamedTuple, Literal, Union

Path: TypeAlias = str  # a path relative to the working tree, '/' separated
OID: TypeAlias = str  # hash
TreeMap: TypeAlias = dict[Path, OID]
ObjectType: TypeAlias = Literal['blob', 'tree', 'commit']
Change: TypeAlias = Literal['unmodified', 'modified', 'added', 'deleted']

OBJECT_TYPES: tuple[ObjectType, ...] = ('blob', 'tree', 'commit')


class Repo(NamedTuple):
    git_dir: str  # holds objects/, refs/ and HEAD
    work_tree: str


class Blob(NamedTuple):
    data: bytes


class TreeEntry(NamedTuple):
    type_: ObjectType
    oid: OID
    name: str


class Tree(NamedTuple):
    entries: list[TreeEntry]


class Commit(NamedTuple):
    tree: OID
    parent: OID | None
    message: str
    timestamp: int


Object: TypeAlias = Union[Blob, Tree, Commit]


class RefValue(NamedTuple):
    symbolic: bool
    value: str | None
