"""Shared fixtures: an in-memory stand-in for the store daemon's MFS API."""

import copy
import hashlib
import tempfile
from dataclasses import dataclass
from pathlib import Path
from unittest.mock import Mock

import pytest

from mfssync.exceptions import MfsAPIError, MfsNotFoundError
from mfssync.models import ENTRY_TYPE_DIRECTORY, ENTRY_TYPE_FILE, MfsEntry, MfsStat
from mfssync.output import OutputFormatter


@dataclass
class FakeFile:
    """File node of the in-memory tree."""

    data: bytes


class FakeMfs:
    """In-memory MFS tree with the MfsClient call surface.

    Directories are dicts mapping names to nodes, files are FakeFile
    instances. Hashes are derived from content, so equal trees have equal
    hashes. Every node whose hash has been computed can be copied in with
    ``files_cp("/ipfs/<hash>", dest)``.
    """

    api_url = "http://fake-daemon:5001/api/v0"

    def __init__(self):
        self.root: dict = {}
        self.objects: dict = {}
        self.autoflush = True
        self.calls: list = []
        self.added: list[str] = []
        self.flushed: list[str] = []
        self.fail_add: set[str] = set()
        self.fail_ls: set[str] = set()

    # -- helpers -----------------------------------------------------------

    @staticmethod
    def _parts(path: str) -> list[str]:
        return [p for p in path.split("/") if p]

    def _lookup(self, path: str):
        node = self.root
        for part in self._parts(path):
            if not isinstance(node, dict) or part not in node:
                raise MfsNotFoundError(f"file does not exist: {path}")
            node = node[part]
        return node

    def _parent(self, path: str):
        parts = self._parts(path)
        if not parts:
            raise MfsAPIError("cannot modify the root directory")
        parent = self._lookup("/" + "/".join(parts[:-1]))
        if not isinstance(parent, dict):
            raise MfsAPIError(f"not a directory: {path}")
        return parent, parts[-1]

    def _hash(self, node) -> str:
        if isinstance(node, dict):
            digest = hashlib.sha256(b"dir:")
            for name in sorted(node):
                digest.update(f"{name}={self._hash(node[name])};".encode())
        else:
            digest = hashlib.sha256(b"file:" + node.data)
        content_hash = "Qm" + digest.hexdigest()[:20]
        self.objects[content_hash] = copy.deepcopy(node)
        return content_hash

    def _entry(self, name: str, node) -> MfsEntry:
        if isinstance(node, dict):
            return MfsEntry(name, 0, self._hash(node), ENTRY_TYPE_DIRECTORY)
        return MfsEntry(name, len(node.data), self._hash(node), ENTRY_TYPE_FILE)

    def put(self, path: str, content) -> None:
        """Place a file (bytes/str) or an empty directory ({}) directly."""
        self.files_mkdir("/" + "/".join(self._parts(path)[:-1]), parents=True)
        parent, name = self._parent(path)
        if isinstance(content, dict):
            parent[name] = {}
        else:
            if isinstance(content, str):
                content = content.encode()
            parent[name] = FakeFile(content)

    def snapshot(self, path: str = "/"):
        """Plain nested dict of the tree below ``path`` (files as bytes)."""

        def convert(node):
            if isinstance(node, dict):
                return {name: convert(child) for name, child in node.items()}
            return node.data

        return convert(self._lookup(path))

    def call_count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    # -- MfsClient surface -------------------------------------------------

    def files_ls(self, path):
        self.calls.append(("ls", path))
        if path in self.fail_ls:
            raise MfsAPIError(f"listing {path} failed")
        node = self._lookup(path)
        if not isinstance(node, dict):
            return [self._entry(self._parts(path)[-1], node)]
        return [self._entry(name, child) for name, child in node.items()]

    def files_mkdir(self, path, parents=False):
        self.calls.append(("mkdir", path))
        node = self.root
        parts = self._parts(path)
        for i, part in enumerate(parts):
            last = i == len(parts) - 1
            if part not in node:
                if not parents and not last:
                    raise MfsNotFoundError(f"file does not exist: {path}")
                node[part] = {}
            elif not isinstance(node[part], dict):
                raise MfsAPIError(f"file already exists: {path}")
            elif last and not parents:
                raise MfsAPIError(f"file already exists: {path}")
            node = node[part]

    def files_rm(self, path, recursive=True, force=False):
        self.calls.append(("rm", path))
        parent, name = self._parent(path)
        if name not in parent:
            raise MfsNotFoundError(f"file does not exist: {path}")
        if isinstance(parent[name], dict) and not recursive:
            raise MfsAPIError(f"{path} is a directory, use -r to remove directories")
        del parent[name]

    def files_stat(self, path):
        self.calls.append(("stat", path))
        node = self._lookup(path)
        if isinstance(node, dict):
            return MfsStat(hash=self._hash(node), size=0, type="directory")
        return MfsStat(
            hash=self._hash(node),
            size=len(node.data),
            cumulative_size=len(node.data),
            type="file",
        )

    def files_cp(self, source, dest):
        self.calls.append(("cp", source, dest))
        if source.startswith("/ipfs/"):
            content_hash = source[len("/ipfs/") :]
            if content_hash not in self.objects:
                raise MfsNotFoundError(f"block not found: {content_hash}")
            node = copy.deepcopy(self.objects[content_hash])
        else:
            node = copy.deepcopy(self._lookup(source))
        parent, name = self._parent(dest)
        if name in parent:
            raise MfsAPIError("directory already has entry by that name")
        parent[name] = node

    def files_flush(self, path="/"):
        self.calls.append(("flush", path))
        self.flushed.append(path)
        return self._hash(self._lookup(path))

    def add(self, file_path, nocopy=False, pin=False):
        self.calls.append(("add", str(file_path)))
        if Path(file_path).name in self.fail_add:
            raise MfsAPIError(f"add failed for {file_path}")
        self.added.append(Path(file_path).name)
        return self._hash(FakeFile(Path(file_path).read_bytes()))

    def version(self):
        return {"Version": "0.0.0-fake"}

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


@pytest.fixture
def fake_mfs():
    """Provide an empty in-memory MFS tree."""
    return FakeMfs()


@pytest.fixture
def mock_output():
    """Create a mock output formatter."""
    output = Mock(spec=OutputFormatter)
    output.verbosity = 0
    output.quiet = True
    output.json_output = False
    return output


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()
