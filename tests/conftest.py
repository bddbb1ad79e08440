"""Pytest configuration and shared fixtures for algorun tests."""

from __future__ import annotations

import io
import itertools
import json
import sys
import tarfile
from collections.abc import Callable, Generator
from pathlib import Path
from unittest.mock import Mock

import httpx
import pytest

from algorun.core.config import AppConfig, FetchConfig, ReleaseConfig, SyncConfig

RELEASES_URL = "https://api.github.com/repos/algorand/go-algorand/releases"
CATCHPOINT_LABEL = "38930000#5LEGMSRWJ7KNZ4GAYGKMCHN6LIEB5AJ2SZNAGQIIQ6OV3QMGJ4VQ"
ALGOD_PORT = 8080
KMD_PORT = 7833

# Stand-in for the goal control binary. Mimics the node writing its
# runtime files into the data directory on first start and logs every
# invocation to <data_dir>/../goal-calls.log.
FAKE_GOAL_SOURCE = f'''
import json
import os
import sys
from pathlib import Path

args = sys.argv[1:]
data_dir = Path(args[1])
command = args[2:]
log = data_dir.parent / "goal-calls.log"
log.parent.mkdir(parents=True, exist_ok=True)
with open(log, "a") as f:
    f.write(" ".join(command) + "\\n")

fail = os.environ.get("FAKE_GOAL_FAIL", "")
if fail and " ".join(command).startswith(fail):
    print("simulated failure for " + fail, file=sys.stderr)
    sys.exit(1)

if command[:2] == ["node", "start"]:
    data_dir.mkdir(parents=True, exist_ok=True)
    (data_dir / "algod.net").write_text("127.0.0.1:{ALGOD_PORT}\\n")
    (data_dir / "algod.token").write_text("a" * 64 + "\\n")
    print("Algorand node successfully started!")
elif command[:2] == ["kmd", "start"]:
    kmd_dir = data_dir / "kmd-v0.5"
    kmd_dir.mkdir(parents=True, exist_ok=True)
    (kmd_dir / "kmd.net").write_text("127.0.0.1:{KMD_PORT}\\n")
    example = {{"address": "", "allowed_origins": [], "session_lifetime_secs": 60}}
    (kmd_dir / "kmd_config.json.example").write_text(json.dumps(example))
    print("Successfully started kmd")
elif command[:2] == ["node", "status"]:
    print("Last committed block: 10")
elif command[:2] == ["node", "catchup"]:
    print("Started catchup to " + command[2])
else:
    print(" ".join(command) + " ok")
'''

EXAMPLE_NODE_CONFIG = {
    "Version": 27,
    "Archival": False,
    "EndpointAddress": "127.0.0.1:0",
    "GossipFanout": 4,
}


def write_fake_goal(directory: Path) -> Path:
    """Write an executable goal wrapper that runs FAKE_GOAL_SOURCE."""
    directory.mkdir(parents=True, exist_ok=True)
    impl = directory / "fake_goal.py"
    impl.write_text(FAKE_GOAL_SOURCE)
    wrapper = directory / "goal"
    wrapper.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{impl}" "$@"\n')
    wrapper.chmod(0o755)
    return wrapper


def build_release_tarball(
    path: Path,
    goal_script: bytes,
    binaries: tuple[str, ...] = ("algod", "kmd", "goal"),
    algod_payload: bytes = b"#!/bin/sh\necho algod v1\n",
    extra: dict[str, bytes] | None = None,
    with_seeds: bool = True,
) -> Path:
    """Build a gzip tarball laid out like a node release."""
    entries: list[tuple[str, bytes, int]] = []
    for name in binaries:
        if name == "goal":
            entries.append(("bin/goal", goal_script, 0o755))
        elif name == "algod":
            entries.append(("bin/algod", algod_payload, 0o755))
        else:
            entries.append((f"bin/{name}", b"#!/bin/sh\necho " + name.encode() + b"\n", 0o755))
    if with_seeds:
        entries.append(("genesis/mainnet/genesis.json", b'{"network": "mainnet"}', 0o644))
        entries.append(
            ("data/config.json.example", json.dumps(EXAMPLE_NODE_CONFIG).encode(), 0o644)
        )
    for name, data in (extra or {}).items():
        entries.append((name, data, 0o644))

    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as tar:
        for name, data, mode in entries:
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = mode
            tar.addfile(info, io.BytesIO(data))
    return path


class FakeNetwork:
    """Route every HTTP request the orchestrator makes to canned responses."""

    def __init__(self, tarball: bytes, tags: list[str] | None = None):
        self.tarball = tarball
        self.tags = tags if tags is not None else ["v1.2.3-stable"]
        # Scripted rounds when set; otherwise every status call advances one round
        self.rounds: list[int] | None = None
        self._counter = itertools.count(10)
        self.catchpoint = CATCHPOINT_LABEL + "\n"
        self.requests: list[httpx.Request] = []
        self.overrides: dict[str, httpx.Response] = {}

    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)

        if url in self.overrides:
            return self.overrides[url]
        if url == RELEASES_URL:
            return httpx.Response(200, json=[{"tag_name": t} for t in self.tags])
        if url.startswith("https://algorand-releases.s3.amazonaws.com/channel/"):
            return httpx.Response(
                200,
                content=self.tarball,
                headers={"Content-Length": str(len(self.tarball))},
            )
        if url == ReleaseConfig().catchpoint_url:
            return httpx.Response(200, text=self.catchpoint)
        if url == f"http://127.0.0.1:{ALGOD_PORT}/v2/status":
            if self.rounds is None:
                current = next(self._counter)
            elif len(self.rounds) > 1:
                current = self.rounds.pop(0)
            else:
                current = self.rounds[0]
            return httpx.Response(200, json={"last-round": current})
        return httpx.Response(404, text="not found")

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Config rooted in a temp directory with fast sync polling."""
    return AppConfig(
        base_dir=tmp_path / "algorun",
        fetch=FetchConfig(progress_interval=0.01),
        sync=SyncConfig(poll_interval=0.01, timeout=5.0),
    )


@pytest.fixture
def fake_goal(tmp_path: Path) -> Path:
    """Executable fake goal outside any installation root."""
    return write_fake_goal(tmp_path / "fake-goal")


@pytest.fixture
def release_tarball(tmp_path: Path, fake_goal: Path) -> Path:
    """A complete release tarball whose goal is the fake control binary."""
    return build_release_tarball(tmp_path / "release.tar.gz", fake_goal.read_bytes())


@pytest.fixture
def make_tarball(tmp_path: Path, fake_goal: Path) -> Callable[..., Path]:
    """Build release tarballs under tmp_path; goal defaults to the fake goal."""
    def build(name: str = "release.tar.gz", goal_script: bytes | None = None, **kwargs) -> Path:
        script = goal_script if goal_script is not None else fake_goal.read_bytes()
        return build_release_tarball(tmp_path / name, script, **kwargs)

    return build


@pytest.fixture
def example_node_config() -> dict[str, object]:
    return dict(EXAMPLE_NODE_CONFIG)


@pytest.fixture
def fake_network(release_tarball: Path) -> FakeNetwork:
    return FakeNetwork(release_tarball.read_bytes())


@pytest.fixture
def http_client(fake_network: FakeNetwork) -> Generator[httpx.Client, None, None]:
    client = fake_network.client()
    yield client
    client.close()


@pytest.fixture
def mock_console() -> Mock:
    """Mock Rich console that records printed lines.

    Output is also echoed to stdout so CliRunner captures it.
    """
    import re

    console = Mock()
    console.printed_lines = []

    def track_print(text="", **kwargs):
        clean_text = re.sub(r'\[/?[^\]]*\]', '', str(text))
        console.printed_lines.append(clean_text)
        print(clean_text, file=sys.stdout)

    console.print.side_effect = track_print
    return console


@pytest.fixture
def cli_obj(app_config: AppConfig, mock_console: Mock) -> dict[str, object]:
    """Click context object as built by the main group."""
    return {
        "config": app_config,
        "console": mock_console,
        "verbose": False,
        "debug": False,
    }


@pytest.fixture
def json_file() -> Callable[[Path, object], Path]:
    def write(path: Path, data: object) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data))
        return path

    return write


# Pytest configuration
def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest settings."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    """Add the unit marker to every test not marked integration or slow."""
    for item in items:
        if not any(marker.name in ['integration', 'slow'] for marker in item.iter_markers()):
            item.add_marker(pytest.mark.unit)
