"""Pytest configuration and shared fixtures"""

import os

import paramiko
import pytest
import yaml
from unittest.mock import MagicMock


class FakeChannel:
    """Stand-in for a paramiko session channel with canned output"""

    def __init__(self, stdout=b"", stderr=b"", exit_status=0, chunk=3, order=None):
        self._stdout = bytearray(stdout)
        self._stderr = bytearray(stderr)
        self._chunk = chunk
        self._order = order
        self.exit_status = exit_status
        self.eof_received = True
        self.closed = False
        self.commands = []
        self.exec_error = None
        self.recv_error = None

    def exec_command(self, command):
        if self.exec_error:
            raise self.exec_error
        self.commands.append(command)

    def recv_ready(self):
        return bool(self._stdout)

    def recv(self, nbytes):
        if self.recv_error:
            raise self.recv_error
        return self._take(self._stdout, nbytes)

    def recv_stderr_ready(self):
        return bool(self._stderr)

    def recv_stderr(self, nbytes):
        return self._take(self._stderr, nbytes)

    def exit_status_ready(self):
        return True

    def recv_exit_status(self):
        return self.exit_status

    def close(self):
        self.closed = True
        if self._order is not None:
            self._order.append("session")

    def _take(self, buf, nbytes):
        size = min(nbytes, self._chunk)
        data = bytes(buf[:size])
        del buf[:size]
        return data


class FakeClock:
    """Replacement for the time module: sleeping advances the clock"""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_channel():
    """Factory for FakeChannel instances"""
    return FakeChannel


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture(scope="session")
def rsa_key():
    """Throwaway RSA private key"""
    return paramiko.RSAKey.generate(bits=1024)


@pytest.fixture
def ssh_home(tmp_path, rsa_key):
    """Home directory with the key written under every default key name"""
    ssh_dir = tmp_path / ".ssh"
    ssh_dir.mkdir()
    for name in ("google_compute_engine", "kube_aws_rsa", "id_rsa"):
        rsa_key.write_private_key_file(str(ssh_dir / name))
    return tmp_path


@pytest.fixture
def connected_client():
    """Factory for mock SSH clients whose session is a given channel"""
    def make(channel=None, order=None, name="client"):
        client = MagicMock(name=name)
        if channel is not None:
            client.get_transport.return_value.open_session.return_value = channel
        if order is not None:
            client.close.side_effect = lambda: order.append(name)
        return client
    return make


@pytest.fixture
def sample_config_data():
    """Sample configuration data for testing"""
    return {
        "provider": "aws",
        "ssh": {
            "user": "core",
            "keys": {"aws": "cluster_key"},
        },
        "nodes": [
            {
                "name": "node-1",
                "addresses": [
                    {"type": "InternalIP", "address": "10.0.0.1"},
                    {"type": "ExternalIP", "address": "34.1.1.1"},
                ],
            },
            {
                "name": "node-2",
                "addresses": [
                    {"type": "InternalIP", "address": "10.0.0.2"},
                    {"type": "ExternalIP", "address": "34.1.1.2"},
                ],
            },
            {
                "name": "master",
                "external_ip": "34.1.1.9",
                "unschedulable": True,
            },
        ],
    }


@pytest.fixture
def config_file(tmp_path, sample_config_data):
    """Sample configuration written to disk"""
    path = os.path.join(str(tmp_path), "cluster.yaml")
    with open(path, "w") as f:
        yaml.dump(sample_config_data, f)
    return path
