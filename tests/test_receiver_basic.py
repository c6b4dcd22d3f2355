import socket

import pytest

from t2.receiver import UdpReceiver
from t2.utils import redact_secrets


def test_udp_receiver_yields_datagrams():
    with UdpReceiver("127.0.0.1", 0) as rx:
        sender = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sender.sendto(b"25.0\t0\t1\t60000.0\t4\t5\t50.0", rx.address)
            sender.sendto(b"\x03", rx.address)
        finally:
            sender.close()
        it = iter(rx)
        assert next(it) == b"25.0\t0\t1\t60000.0\t4\t5\t50.0"
        assert next(it) == b"\x03"


def test_udp_receiver_requires_open():
    with pytest.raises(RuntimeError):
        next(iter(UdpReceiver()))


def test_redact_database_password():
    assert redact_secrets("postgres://grex:hunter22@db:5432/grex") == "postgres://grex:***@db:5432/grex"
    assert redact_secrets("host=db password=hunter22") == "host=db password=***"
