"""Tests for BastionTransport layering, retry and cleanup"""

import paramiko
import pytest
from unittest.mock import MagicMock, patch

from nodessh.errors import DialError, ForwardError, HandshakeError, TransportFailure
from nodessh.transport.base import ExecutionRequest
from nodessh.transport.bastion import BastionTransport


REQUEST = ExecutionRequest(command="hostname", host="10.0.0.7:22", user="core",
                           bastion="bastion.example.com:22")


def _tunnel(connected_client, channel=None, order=None):
    """Mock control client, forwarded stream and target client"""
    control = connected_client(order=order, name="control")
    stream = MagicMock(name="stream")
    if order is not None:
        stream.close.side_effect = lambda: order.append("stream")
    control.get_transport.return_value.open_channel.return_value = stream
    target = connected_client(channel, order=order, name="target")
    return control, stream, target


class TestBastionSuccess:
    """Test the full tunnelled path"""

    def test_runs_command_over_second_handshake(self, fake_channel, connected_client, rsa_key):
        order = []
        channel = fake_channel(stdout=b"node-7\n", order=order)
        control, stream, target = _tunnel(connected_client, channel, order)

        with patch("nodessh.transport.bastion.new_client", side_effect=[control, target]):
            output = BastionTransport().run(REQUEST, rsa_key)

        assert output.stdout == b"node-7\n"
        assert output.exit_code == 0
        assert channel.commands == ["hostname"]

        assert control.connect.call_args[1]["hostname"] == "bastion.example.com"
        control.get_transport.return_value.open_channel.assert_called_once()
        args = control.get_transport.return_value.open_channel.call_args[0]
        assert args[0] == "direct-tcpip"
        assert args[1] == ("10.0.0.7", 22)

        target_kwargs = target.connect.call_args[1]
        assert target_kwargs["sock"] is stream
        assert target_kwargs["hostname"] == "10.0.0.7"
        assert target_kwargs["pkey"] is rsa_key

        assert order == ["session", "target", "stream", "control"]

    def test_nonzero_exit_is_not_an_error(self, fake_channel, connected_client, rsa_key):
        channel = fake_channel(stderr=b"failed\n", exit_status=7)
        control, _, target = _tunnel(connected_client, channel)

        with patch("nodessh.transport.bastion.new_client", side_effect=[control, target]):
            output = BastionTransport().run(REQUEST, rsa_key)

        assert output.exit_code == 7
        assert output.stderr == b"failed\n"

    def test_bastion_from_constructor(self, fake_channel, connected_client, rsa_key):
        control, _, target = _tunnel(connected_client, fake_channel())
        request = ExecutionRequest(command="true", host="10.0.0.7:22", user="core")

        with patch("nodessh.transport.bastion.new_client", side_effect=[control, target]):
            BastionTransport("jump:2200").run(request, rsa_key)

        assert control.connect.call_args[1]["port"] == 2200

    def test_no_bastion_is_rejected(self, rsa_key):
        request = ExecutionRequest(command="true", host="10.0.0.7:22", user="core")
        with pytest.raises(ValueError):
            BastionTransport().run(request, rsa_key)


class TestBastionDialRetry:
    """Test bounded retry of the control connection"""

    def test_unreachable_bastion_gives_up_after_window(self, fake_clock, rsa_key):
        clients = []

        def refused():
            client = MagicMock()
            client.connect.side_effect = ConnectionRefusedError("refused")
            clients.append(client)
            return client

        with patch("nodessh.transport.bastion.new_client", side_effect=refused), \
                patch("nodessh.transport.bastion.time", fake_clock):
            with pytest.raises(DialError) as excinfo:
                BastionTransport().run(REQUEST, rsa_key)

        assert 20 <= fake_clock.now <= 25
        assert fake_clock.sleeps == [5.0, 5.0, 5.0, 5.0]
        assert len(excinfo.value.errors) == 5
        assert excinfo.value.__cause__ is excinfo.value.errors[-1]
        for client in clients:
            client.close.assert_called_once()

    def test_slow_dials_keep_the_fixed_schedule(self, fake_clock, rsa_key):
        """Time spent inside connect does not push later attempts back"""
        def slow_refusal(**kwargs):
            fake_clock.now += 0.01
            raise ConnectionRefusedError("refused")

        def refused():
            client = MagicMock()
            client.connect.side_effect = slow_refusal
            return client

        with patch("nodessh.transport.bastion.new_client", side_effect=refused), \
                patch("nodessh.transport.bastion.time", fake_clock):
            with pytest.raises(DialError) as excinfo:
                BastionTransport().run(REQUEST, rsa_key)

        assert 20 <= fake_clock.now <= 25
        assert len(excinfo.value.errors) == 5
        assert fake_clock.sleeps == pytest.approx([5.0, 4.99, 4.99, 4.99])

    def test_retry_timeouts_stay_inside_window(self, fake_clock, rsa_key):
        timeouts = []

        def slow_refusal(**kwargs):
            timeouts.append(kwargs["timeout"])
            fake_clock.now += 0.01
            raise ConnectionRefusedError("refused")

        refused = MagicMock()
        refused.connect.side_effect = slow_refusal

        with patch("nodessh.transport.bastion.new_client", return_value=refused), \
                patch("nodessh.transport.bastion.time", fake_clock):
            with pytest.raises(DialError):
                BastionTransport().run(REQUEST, rsa_key)

        assert timeouts == pytest.approx([150.0, 15.0, 10.0, 5.0, 1.0])

    def test_blackholed_bastion_stops_at_window_end(self, fake_clock, rsa_key):
        """Dials that hang for their whole timeout still give up near the window end"""
        def hang(**kwargs):
            fake_clock.now += kwargs["timeout"]
            raise TimeoutError("timed out")

        hanging = MagicMock()
        hanging.connect.side_effect = hang

        with patch("nodessh.transport.bastion.new_client", return_value=hanging), \
                patch("nodessh.transport.bastion.time", fake_clock):
            with pytest.raises(DialError) as excinfo:
                BastionTransport().run(REQUEST, rsa_key)

        # first dial keeps the full 150s, then one retry bounded by the 20s window
        assert fake_clock.now == pytest.approx(170.0)
        assert len(excinfo.value.errors) == 2

    def test_retry_then_success(self, fake_clock, fake_channel, connected_client, rsa_key):
        failing = MagicMock()
        failing.connect.side_effect = paramiko.SSHException("Error reading SSH protocol banner")
        control, _, target = _tunnel(connected_client, fake_channel(stdout=b"ok"))

        with patch("nodessh.transport.bastion.new_client", side_effect=[failing, failing, control, target]), \
                patch("nodessh.transport.bastion.time", fake_clock):
            output = BastionTransport().run(REQUEST, rsa_key)

        assert output.stdout == b"ok"
        assert fake_clock.sleeps == [5.0, 5.0]
        assert failing.close.call_count == 2

    def test_custom_window(self, fake_clock, rsa_key):
        refused = MagicMock()
        refused.connect.side_effect = OSError("no route to host")

        with patch("nodessh.transport.bastion.new_client", return_value=refused), \
                patch("nodessh.transport.bastion.time", fake_clock):
            with pytest.raises(DialError):
                BastionTransport(retry_interval=1, retry_window=3).run(REQUEST, rsa_key)

        assert fake_clock.now == 3

    def test_auth_failure_is_not_retried(self, fake_clock, rsa_key):
        denied = MagicMock()
        denied.connect.side_effect = paramiko.AuthenticationException("denied")

        with patch("nodessh.transport.bastion.new_client", return_value=denied), \
                patch("nodessh.transport.bastion.time", fake_clock):
            with pytest.raises(HandshakeError):
                BastionTransport().run(REQUEST, rsa_key)

        assert fake_clock.sleeps == []
        denied.close.assert_called_once()


class TestBastionLayerFailures:
    """Test that each failing layer unwinds the ones already open"""

    def test_forward_failure_closes_control_connection(self, connected_client, rsa_key):
        order = []
        control, _, target = _tunnel(connected_client, order=order)
        control.get_transport.return_value.open_channel.side_effect = \
            paramiko.ChannelException(2, "Connect failed")
        new_client = MagicMock(side_effect=[control, target])

        with patch("nodessh.transport.bastion.new_client", new_client):
            with pytest.raises(ForwardError) as excinfo:
                BastionTransport().run(REQUEST, rsa_key)

        assert excinfo.value.host == "10.0.0.7:22"
        assert order == ["control"]
        assert new_client.call_count == 1

    def test_second_handshake_failure_unwinds(self, connected_client, rsa_key):
        order = []
        control, _, target = _tunnel(connected_client, order=order)
        target.connect.side_effect = paramiko.SSHException("Error reading SSH protocol banner")

        with patch("nodessh.transport.bastion.new_client", side_effect=[control, target]):
            with pytest.raises(HandshakeError):
                BastionTransport().run(REQUEST, rsa_key)

        assert order == ["target", "stream", "control"]

    def test_session_failure_unwinds(self, connected_client, rsa_key):
        order = []
        control, _, target = _tunnel(connected_client, order=order)
        target.get_transport.return_value.open_session.side_effect = paramiko.SSHException("refused")

        with patch("nodessh.transport.bastion.new_client", side_effect=[control, target]):
            with pytest.raises(TransportFailure):
                BastionTransport().run(REQUEST, rsa_key)

        assert order == ["target", "stream", "control"]

    def test_dropped_session_unwinds_all_layers(self, fake_channel, connected_client, rsa_key):
        order = []
        channel = fake_channel(stdout=b"partial", exit_status=-1, order=order)
        control, _, target = _tunnel(connected_client, channel, order)

        with patch("nodessh.transport.bastion.new_client", side_effect=[control, target]):
            with pytest.raises(TransportFailure) as excinfo:
                BastionTransport().run(REQUEST, rsa_key)

        assert excinfo.value.stdout == b"partial"
        assert order == ["session", "target", "stream", "control"]
