import subprocess

import pytest

from wgusd.models import PeerUpdate
from wgusd import system

PEER_KEY = "xTIBA5rboUvnH4htodjb6e697QjLERt1NAB4mZqp8Dg="

DUMP = (
    "cHJpdmF0ZQ==\tSERVERPUBKEY=\t51820\toff\n"
    f"{PEER_KEY}\t(none)\t198.51.100.7:51820\t10.0.0.0/24,fd00::/64\t1700000000\t100\t200\t25\n"
)


def _proc(args, returncode: int = 0, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=args, returncode=returncode, stdout=stdout, stderr=stderr)


class _FakeWg:
    def __init__(self, dump: str = DUMP) -> None:
        self.dump = dump
        self.calls: list[list[str]] = []
        self.fail_set = False

    def __call__(self, cmd, capture_output=False, text=False):
        self.calls.append(list(cmd))
        args = cmd[1:]
        if args == ["show", "interfaces"]:
            return _proc(cmd, stdout="wg0\n")
        if args[:1] == ["show"] and args[2:] == ["dump"]:
            if args[1] != "wg0":
                return _proc(cmd, 1, stderr="Unable to access interface: No such device\n")
            return _proc(cmd, stdout=self.dump)
        if args[:1] == ["set"]:
            if self.fail_set:
                return _proc(cmd, 1, stderr="Unable to modify interface: Operation not permitted\n")
            return _proc(cmd)
        raise AssertionError(f"unexpected command {cmd}")


@pytest.fixture
def fake_wg(monkeypatch: pytest.MonkeyPatch) -> _FakeWg:
    fake = _FakeWg()
    monkeypatch.setattr(system.subprocess, "run", fake)
    monkeypatch.setattr(system.shutil, "which", lambda binary: f"/usr/bin/{binary}")
    return fake


def test_parse_dump() -> None:
    state = system.parse_dump("wg0", DUMP)

    assert state.name == "wg0"
    assert state.public_key == "SERVERPUBKEY="
    assert state.listen_port == 51820
    assert len(state.peers) == 1
    peer = state.peers[0]
    assert peer.public_key == PEER_KEY
    assert str(peer.endpoint) == "198.51.100.7:51820"
    assert peer.allowed_ips == ("10.0.0.0/24", "fd00::/64")


def test_parse_dump_unset_endpoint_and_ipv6() -> None:
    dump = (
        "cHJpdmF0ZQ==\tSERVERPUBKEY=\t51820\toff\n"
        "peer-a=\t(none)\t(none)\t(none)\t0\t0\t0\toff\n"
        "peer-b=\t(none)\t[2001:db8::7]:51820\t10.0.0.2/32\t0\t0\t0\toff\n"
    )

    state = system.parse_dump("wg0", dump)

    assert state.peers[0].endpoint is None
    assert state.peers[0].allowed_ips == ()
    assert str(state.peers[1].endpoint) == "[2001:db8::7]:51820"


def test_parse_dump_no_peers() -> None:
    state = system.parse_dump("wg0", "cHJpdmF0ZQ==\tSERVERPUBKEY=\t0\toff\n")
    assert state.peers == ()


def test_parse_dump_empty_raises() -> None:
    with pytest.raises(system.WireguardCommandError):
        system.parse_dump("wg0", "")


def test_open_missing_binary(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(system.shutil, "which", lambda binary: None)

    with pytest.raises(system.WireguardUnavailableError, match="not found"):
        system.WireguardClient.open()


def test_open_permission_denied(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(system.shutil, "which", lambda binary: "/usr/bin/wg")
    monkeypatch.setattr(
        system.subprocess,
        "run",
        lambda cmd, capture_output=False, text=False: _proc(cmd, 1, stderr="Unable to access interface: Operation not permitted"),
    )

    with pytest.raises(system.WireguardUnavailableError, match="Operation not permitted"):
        system.WireguardClient.open()


def test_device_reads_dump(fake_wg: _FakeWg) -> None:
    with system.WireguardClient.open() as client:
        state = client.device("wg0")

    assert [p.public_key for p in state.peers] == [PEER_KEY]
    assert fake_wg.calls[-1] == ["/usr/bin/wg", "show", "wg0", "dump"]


def test_device_not_found(fake_wg: _FakeWg) -> None:
    with system.WireguardClient.open() as client:
        with pytest.raises(system.WireguardDeviceNotFoundError):
            client.device("wg9")


def test_apply_sets_endpoint_for_existing_peer(fake_wg: _FakeWg) -> None:
    target = system.parse_dump_endpoint("203.0.113.9:51821")

    with system.WireguardClient.open() as client:
        client.apply("wg0", PeerUpdate(public_key=PEER_KEY, endpoint=target))

    assert fake_wg.calls[-1] == ["/usr/bin/wg", "set", "wg0", "peer", PEER_KEY, "endpoint", "203.0.113.9:51821"]


def test_apply_brackets_ipv6_endpoint(fake_wg: _FakeWg) -> None:
    target = system.parse_dump_endpoint("[2001:db8::9]:51820")

    with system.WireguardClient.open() as client:
        client.apply("wg0", PeerUpdate(public_key=PEER_KEY, endpoint=target))

    assert fake_wg.calls[-1][-1] == "[2001:db8::9]:51820"


def test_apply_refuses_unknown_peer(fake_wg: _FakeWg) -> None:
    target = system.parse_dump_endpoint("203.0.113.9:51821")

    with system.WireguardClient.open() as client:
        with pytest.raises(system.WireguardCommandError, match="not configured"):
            client.apply("wg0", PeerUpdate(public_key="other=", endpoint=target))

    assert not any(call[1] == "set" for call in fake_wg.calls)


def test_apply_refuses_non_update_only(fake_wg: _FakeWg) -> None:
    target = system.parse_dump_endpoint("203.0.113.9:51821")

    with system.WireguardClient.open() as client:
        with pytest.raises(system.WireguardCommandError, match="update-only"):
            client.apply("wg0", PeerUpdate(public_key=PEER_KEY, endpoint=target, update_only=False))

    assert not any(call[1] == "set" for call in fake_wg.calls)


def test_apply_failure_raises(fake_wg: _FakeWg) -> None:
    fake_wg.fail_set = True
    target = system.parse_dump_endpoint("203.0.113.9:51821")

    with system.WireguardClient.open() as client:
        with pytest.raises(system.WireguardCommandError, match="Operation not permitted"):
            client.apply("wg0", PeerUpdate(public_key=PEER_KEY, endpoint=target))


def test_closed_client_rejects_calls(fake_wg: _FakeWg) -> None:
    client = system.WireguardClient.open()
    with client:
        pass

    assert client.closed
    with pytest.raises(system.WireguardClientError, match="closed"):
        client.device("wg0")


def test_parse_dump_keeps_link_local_scope() -> None:
    endpoint = system.parse_dump_endpoint("[fe80::7%eth0]:51820")

    assert endpoint.ip.scope_id == "eth0"
    assert str(endpoint) == "[fe80::7%eth0]:51820"


def test_apply_passes_link_local_scope_to_wg(fake_wg: _FakeWg) -> None:
    target = system.parse_dump_endpoint("[fe80::9%eth1]:51820")

    with system.WireguardClient.open() as client:
        client.apply("wg0", PeerUpdate(public_key=PEER_KEY, endpoint=target))

    assert fake_wg.calls[-1][-1] == "[fe80::9%eth1]:51820"
