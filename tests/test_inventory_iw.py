"""Tests for wifihotspot.inventory.iw: interface modes from iw dev."""

from __future__ import annotations

import subprocess

from wifihotspot.inventory.iw import list_ap_interfaces, parse_iw_dev_output

SAMPLE_IW_DEV = """phy#1
\tInterface wlan1
\t\tifindex 5
\t\twdev 0x100000001
\t\taddr 00:c0:ca:11:22:33
\t\tssid Hotspot
\t\ttype AP
\t\tchannel 6 (2437 MHz), width: 20 MHz, center1: 2437 MHz
phy#0
\tUnnamed/non-netdev interface
\t\twdev 0x2
\t\ttype P2P-device
\tInterface wlan0
\t\tifindex 3
\t\ttype managed
"""


class TestParseIwDevOutput:
    def test_parses_interfaces_with_phy_and_type(self):
        result = parse_iw_dev_output(SAMPLE_IW_DEV)
        assert [(i.name, i.phy, i.type) for i in result] == [
            ("wlan1", "phy1", "AP"),
            ("wlan0", "phy0", "managed"),
        ]

    def test_is_ap_only_for_ap_type(self):
        result = {i.name: i.is_ap for i in parse_iw_dev_output(SAMPLE_IW_DEV)}
        assert result == {"wlan1": True, "wlan0": False}

    def test_interface_without_type_defaults_to_unknown(self):
        result = parse_iw_dev_output("phy#0\n\tInterface wlan0\n\t\tifindex 3\n")
        assert result[0].type == "unknown"

    def test_empty_output(self):
        assert parse_iw_dev_output("") == []


class TestListApInterfaces:
    def test_returns_ap_mode_names(self, runner):
        runner.on("iw", stdout=SAMPLE_IW_DEV)
        assert list_ap_interfaces(runner=runner) == {"wlan1"}

    def test_missing_iw_returns_empty(self, runner):
        runner.on("iw", raises=FileNotFoundError("iw"))
        assert list_ap_interfaces(runner=runner) == set()

    def test_timeout_returns_empty(self, runner):
        runner.on("iw", raises=subprocess.TimeoutExpired("iw", 5))
        assert list_ap_interfaces(runner=runner) == set()

    def test_nonzero_exit_returns_empty(self, runner):
        runner.on("iw", returncode=1, stdout=SAMPLE_IW_DEV)
        assert list_ap_interfaces(runner=runner) == set()
