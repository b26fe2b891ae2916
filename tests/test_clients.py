"""Tests for wifihotspot.clients: connected-client listing."""

from __future__ import annotations

import subprocess

from wifihotspot.clients import _parse_ip_neigh_output, _parse_proc_arp, connected_clients

SAMPLE_NEIGH = """192.168.44.12 lladdr aa:bb:cc:dd:ee:01 REACHABLE
192.168.44.13 lladdr aa:bb:cc:dd:ee:02 STALE
192.168.44.14 FAILED
192.168.44.15 lladdr aa:bb:cc:dd:ee:03 INCOMPLETE
"""

SAMPLE_ARP = """IP address       HW type     Flags       HW address            Mask     Device
192.168.44.20    0x1         0x2         aa:bb:cc:dd:ee:10     *        wlan1
192.168.44.21    0x1         0x0         00:00:00:00:00:00     *        wlan1
192.168.1.1      0x1         0x2         aa:bb:cc:dd:ee:ff     *        wlan0
"""


class TestParseIpNeighOutput:
    def test_skips_failed_and_incomplete(self):
        assert _parse_ip_neigh_output(SAMPLE_NEIGH) == ["192.168.44.12", "192.168.44.13"]

    def test_empty_output(self):
        assert _parse_ip_neigh_output("") == []


class TestParseProcArp:
    def test_filters_by_interface_and_complete_entries(self):
        assert _parse_proc_arp(SAMPLE_ARP, "wlan1") == ["192.168.44.20"]

    def test_other_interface(self):
        assert _parse_proc_arp(SAMPLE_ARP, "wlan0") == ["192.168.1.1"]


class TestConnectedClients:
    def test_uses_ip_neigh_for_interface(self, runner):
        runner.on("ip", "neigh", stdout=SAMPLE_NEIGH)
        assert connected_clients("wlan1", runner=runner) == ["192.168.44.12", "192.168.44.13"]
        assert runner.commands() == [["ip", "neigh", "show", "dev", "wlan1"]]

    def test_falls_back_to_proc_arp_when_neigh_empty(self, runner, tmp_path):
        arp = tmp_path / "arp"
        arp.write_text(SAMPLE_ARP)
        runner.on("ip", "neigh", stdout="")
        assert connected_clients("wlan1", runner=runner, arp_path=str(arp)) == ["192.168.44.20"]

    def test_falls_back_when_ip_missing(self, runner, tmp_path):
        arp = tmp_path / "arp"
        arp.write_text(SAMPLE_ARP)
        runner.on("ip", raises=FileNotFoundError("ip"))
        assert connected_clients("wlan1", runner=runner, arp_path=str(arp)) == ["192.168.44.20"]

    def test_nothing_available_returns_empty(self, runner, tmp_path):
        runner.on("ip", raises=subprocess.TimeoutExpired("ip", 5))
        assert connected_clients("wlan1", runner=runner, arp_path=str(tmp_path / "missing")) == []
