"""Integration tests: archive and restore through a real child process."""

import os
import sys
import textwrap

import pytest

from conftest import write_wal

from wal_continuity.adapters.outbound import BackupToolError
from wal_continuity.infrastructure.config import (
    BackupToolConfig,
    Config,
    PostgresConfig,
    SpoolConfig,
    WALConfig,
)
from wal_continuity.infrastructure.container import Container
from wal_continuity.ports.inbound import (
    ArchiveEmptyError,
    ArchiveRequest,
    EndOfWALStreamError,
    RestoreRequest,
    WALFileNotFoundError,
    WALStatus,
)

# A stand-in for the backup tool: stores files flat in $FAKE_REPO and
# follows its exit code conventions.
FAKE_TOOL = textwrap.dedent('''
    import json, os, re, shutil, sys

    repo = os.environ["FAKE_REPO"]
    args = sys.argv[1:]
    commands = ("archive-push", "archive-get", "info")
    index = next(i for i, arg in enumerate(args) if arg in commands)
    command, operands = args[index], args[index + 1:]
    if "--stanza" not in args:
        print("ERROR: [031]: option stanza is required", file=sys.stderr)
        sys.exit(3)

    if command == "archive-push":
        if os.environ.get("FAKE_FAIL_PUSH") == os.path.basename(operands[0]):
            sys.exit(2)
        shutil.copyfile(operands[0], os.path.join(repo, os.path.basename(operands[0])))
        print("pushed WAL file " + os.path.basename(operands[0]))
    elif command == "archive-get":
        source = os.path.join(repo, operands[0])
        if not os.path.exists(source):
            print("unable to find " + operands[0] + " in the archive")
            sys.exit(1)
        shutil.copyfile(source, operands[1])
    else:
        names = sorted(n for n in os.listdir(repo) if re.fullmatch("[0-9A-F]{24}", n))
        archive = [{"id": "16-1", "min": names[0], "max": names[-1]}] if names else []
        print(json.dumps([{"name": "main", "cipher": "none", "db": [],
                           "archive": archive, "backup": []}]))
''')


def wal(n):
    return f"0000000100000000000000{n:02X}"


@pytest.fixture
def repo(temp_dir):
    path = temp_dir / "repo"
    path.mkdir()
    return path


@pytest.fixture
def fake_tool(temp_dir):
    path = temp_dir / "pgbackrest"
    path.write_text(f"#!{sys.executable}\n{FAKE_TOOL}")
    path.chmod(0o755)
    return path


@pytest.fixture
def environment(repo):
    return {"FAKE_REPO": str(repo), "PATH": os.environ.get("PATH", "")}


@pytest.fixture
def wal_container(temp_dir, pgdata, fake_tool, environment, metrics_registry):
    config = Config(
        postgres=PostgresConfig(pgdata=pgdata),
        spool=SpoolConfig(directory=temp_dir / "spool"),
        wal=WALConfig(max_parallel=3),
        backup_tool=BackupToolConfig(
            executable=str(fake_tool),
            stanza="main",
            command_timeout_seconds=60,
        ),
    )
    return Container.build(
        config,
        environment_provider=lambda: environment,
        metrics=metrics_registry,
    )


@pytest.mark.integration
class TestWALRoundTrip:
    """Archive from one PGDATA, restore into a standby's pg_wal."""

    def test_archive_restore_status(self, wal_container, pgdata, repo, temp_dir):
        """Test archiving a batch, then restoring it with prefetch."""
        service = wal_container.wal_service
        for n in range(1, 5):
            write_wal(pgdata, wal(n))

        service.archive(ArchiveRequest(f"pg_wal/{wal(1)}"))

        assert sorted(os.listdir(repo)) == [wal(1), wal(2), wal(3)]

        # wal(2) was pushed ahead: acknowledged from the spool
        service.archive(ArchiveRequest(f"pg_wal/{wal(2)}"))
        assert sorted(os.listdir(repo)) == [wal(1), wal(2), wal(3)]

        service.archive(ArchiveRequest(f"pg_wal/{wal(3)}"))
        service.archive(ArchiveRequest(f"pg_wal/{wal(4)}"))
        assert len(os.listdir(repo)) == 4

        assert service.status() == WALStatus(first_wal=wal(1), last_wal=wal(4))

        destination = temp_dir / "RECOVERYXLOG"
        for n in range(1, 5):
            service.restore(RestoreRequest(wal(n), str(destination)))
            assert destination.read_bytes() == wal(n).encode()

        with pytest.raises(WALFileNotFoundError):
            service.restore(RestoreRequest(wal(5), str(destination)))

    def test_end_of_stream(self, wal_container, pgdata, temp_dir):
        """Test that a standby is sent to streaming once the archive runs dry."""
        service = wal_container.wal_service
        write_wal(pgdata, wal(1))
        service.archive(ArchiveRequest(f"pg_wal/{wal(1)}"))
        destination = str(temp_dir / "RECOVERYXLOG")

        service.restore(RestoreRequest(wal(1), destination, streaming_available=True))

        with pytest.raises(EndOfWALStreamError):
            service.restore(RestoreRequest(wal(2), destination, streaming_available=True))

    def test_push_failure(self, wal_container, pgdata, environment):
        """Test that a failed push of the requested file is reported."""
        environment["FAKE_FAIL_PUSH"] = wal(1)
        write_wal(pgdata, wal(1))

        with pytest.raises(BackupToolError) as excinfo:
            wal_container.wal_service.archive(ArchiveRequest(f"pg_wal/{wal(1)}"))

        assert excinfo.value.exit_code == 2

    def test_empty_archive(self, wal_container):
        """Test status of an archive holding no WAL."""
        with pytest.raises(ArchiveEmptyError):
            wal_container.wal_service.status()
