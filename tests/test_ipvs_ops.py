import subprocess

import pytest

from lvsmon import ipvs_ops
from lvsmon.ipvs_ops import InMemoryController, IpvsadmController
from lvsmon.settings import Transport

IPVSADM_LIST = """IP Virtual Server version 1.2.1 (size=4096)
Prot LocalAddress:Port Scheduler Flags
  -> RemoteAddress:Port           Forward Weight ActiveConn InActConn
TCP  192.0.2.10:80 rr
  -> 10.1.1.2:80                  Masq    1      0          0
UDP  192.0.2.10:53 rr
TCP  192.0.2.10:8080 wlc
"""


class _Proc:
    def __init__(self, stdout="", stderr="", returncode=0):
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode


@pytest.fixture
def recorder(monkeypatch):
    calls = []
    replies = {}

    def fake_run(cmd, capture_output, text, timeout):
        calls.append(cmd)
        return replies.get(cmd[1], _Proc())

    monkeypatch.setattr(ipvs_ops.subprocess, "run", fake_run)
    return calls, replies


def test_commands(recorder):
    calls, _ = recorder
    ctl = IpvsadmController("192.0.2.10")

    assert ctl.create_service(Transport.TCP, 80, "rr").ok
    assert ctl.add_real_server(Transport.UDP, 53, "10.1.1.2", "masq").ok
    assert ctl.add_real_server(Transport.TCP, 80, "10.1.1.3", "gatewaying").ok
    assert ctl.remove_real_server(Transport.TCP, 80, "10.1.1.2").ok

    assert calls == [
        ["ipvsadm", "-A", "-t", "192.0.2.10:80", "-s", "rr"],
        ["ipvsadm", "-a", "-u", "192.0.2.10:53", "-r", "10.1.1.2:53", "-m"],
        ["ipvsadm", "-a", "-t", "192.0.2.10:80", "-r", "10.1.1.3:80", "-g"],
        ["ipvsadm", "-d", "-t", "192.0.2.10:80", "-r", "10.1.1.2:80"],
    ]


def test_ipv6_addresses_are_bracketed(recorder):
    calls, _ = recorder
    ctl = IpvsadmController("2001:db8::10")
    ctl.add_real_server(Transport.TCP, 443, "2001:db8::2", "masq")
    assert calls[-1] == ["ipvsadm", "-a", "-t", "[2001:db8::10]:443", "-r", "[2001:db8::2]:443", "-m"]


def test_service_exists_matches_protocol_and_port(recorder):
    calls, replies = recorder
    replies["-L"] = _Proc(stdout=IPVSADM_LIST)
    ctl = IpvsadmController("192.0.2.10")

    assert ctl.service_exists(Transport.TCP, 80)
    assert ctl.service_exists(Transport.UDP, 53)
    assert ctl.service_exists(Transport.TCP, 8080)
    assert not ctl.service_exists(Transport.UDP, 80)
    assert not ctl.service_exists(Transport.TCP, 8)
    assert calls[0] == ["ipvsadm", "-L", "-n"]


def test_service_exists_false_when_listing_fails(recorder):
    _, replies = recorder
    replies["-L"] = _Proc(stderr="Can't initialize ipvs: Permission denied", returncode=2)
    assert IpvsadmController("192.0.2.10").service_exists(Transport.TCP, 80) is False


def test_nonzero_exit_is_reported(recorder):
    _, replies = recorder
    replies["-a"] = _Proc(stderr="Destination already exists\n", returncode=1)
    res = IpvsadmController("192.0.2.10").add_real_server(Transport.TCP, 80, "10.1.1.2", "masq")
    assert not res.ok
    assert res.detail == "Destination already exists"


def test_timeout_and_missing_binary(monkeypatch):
    def timeout(cmd, **kw):
        raise subprocess.TimeoutExpired(cmd, kw["timeout"])

    monkeypatch.setattr(ipvs_ops.subprocess, "run", timeout)
    assert not IpvsadmController("192.0.2.10", timeout_s=1).create_service(Transport.TCP, 80, "rr").ok

    def missing(cmd, **kw):
        raise FileNotFoundError(2, "No such file or directory", cmd[0])

    monkeypatch.setattr(ipvs_ops.subprocess, "run", missing)
    res = IpvsadmController("192.0.2.10").remove_real_server(Transport.TCP, 80, "10.1.1.2")
    assert not res.ok
    assert res.detail.startswith("FileNotFoundError")


def test_invalid_virtual_ip_and_mode():
    with pytest.raises(ValueError):
        IpvsadmController("not-an-ip")
    with pytest.raises(ValueError):
        InMemoryController().add_real_server(Transport.TCP, 80, "10.1.1.2", "nat")


def test_in_memory_controller_mirrors_ipvsadm_answers():
    lb = InMemoryController()
    assert not lb.add_real_server(Transport.TCP, 80, "10.1.1.2", "masq").ok
    assert lb.create_service(Transport.TCP, 80, "rr").ok
    assert lb.create_service(Transport.TCP, 80, "rr").detail == "Service already exists"
    assert lb.add_real_server(Transport.TCP, 80, "10.1.1.2", "masq").ok
    assert lb.add_real_server(Transport.TCP, 80, "10.1.1.2", "masq").detail == "Destination already exists"
    assert lb.remove_real_server(Transport.TCP, 80, "10.1.1.2").ok
    assert not lb.remove_real_server(Transport.TCP, 80, "10.1.1.2").ok
    assert lb.service_exists(Transport.TCP, 80)
    assert not lb.service_exists(Transport.UDP, 80)
