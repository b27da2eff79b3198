from unittest import mock

import pytest

from portrocket.errors import RootRequiredError
from portrocket.raw_scanner import (
    TCPFlags,
    ack_scan,
    build_probe_packet,
    fin_scan,
    null_scan,
    syn_scan,
    xmas_scan,
)


def test_flag_values():
    assert build_probe_packet(TCPFlags.SYN, "1.2.3.4")[26] == 0x02
    xmas = TCPFlags.FIN | TCPFlags.PSH | TCPFlags.URG
    assert build_probe_packet(xmas, "1.2.3.4")[26] == 0x29


def test_probe_packet_layout():
    packet = build_probe_packet(TCPFlags.SYN, "192.168.1.1")
    assert len(packet) == 40
    assert packet[0] == 0x45
    assert packet[3] == 0x28
    assert packet[6] == 0x40
    assert packet[8] == 0x40
    assert packet[9] == 0x06
    assert packet[16:20] == bytes([192, 168, 1, 1])
    assert packet[20] == 0x50
    assert packet[26] == TCPFlags.SYN


@pytest.mark.parametrize("flags", [TCPFlags.FIN, TCPFlags(0), TCPFlags.ACK])
def test_probe_packet_carries_flags(flags):
    packet = build_probe_packet(flags, "10.0.0.7")
    assert packet[26] == int(flags)
    assert packet[16:20] == bytes([10, 0, 0, 7])


def test_probe_packet_rejects_bad_target():
    with pytest.raises(ValueError):
        build_probe_packet(TCPFlags.SYN, "invalid-host")


def test_scans_require_root():
    with mock.patch("os.geteuid", return_value=1000, create=True):
        with pytest.raises(RootRequiredError):
            syn_scan("127.0.0.1", [80], 1.0, 1)
        with pytest.raises(RootRequiredError):
            fin_scan("127.0.0.1", [80], 1.0, 1)
        with pytest.raises(RootRequiredError):
            null_scan("127.0.0.1", [80], 1.0, 1)
        with pytest.raises(RootRequiredError):
            xmas_scan("127.0.0.1", [80], 1.0, 1)
        with pytest.raises(RootRequiredError):
            ack_scan("127.0.0.1", [80], 1.0, 1)


def test_scans_reject_invalid_target():
    with mock.patch("os.geteuid", return_value=0, create=True):
        with pytest.raises(ValueError):
            syn_scan("invalid-host", [80], 1.0, 1)
        with pytest.raises(ValueError):
            fin_scan("invalid-host", [80], 1.0, 1)
        with pytest.raises(ValueError):
            null_scan("invalid-host", [80], 1.0, 1)
        with pytest.raises(ValueError):
            xmas_scan("invalid-host", [80], 1.0, 1)
        with pytest.raises(ValueError):
            ack_scan("invalid-host", [80], 1.0, 1)