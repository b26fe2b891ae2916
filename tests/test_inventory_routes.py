"""Tests for wifihotspot.inventory.routes: default-route lookup."""

from __future__ import annotations

import subprocess

import pytest

from wifihotspot.errors import PlatformQueryError
from wifihotspot.inventory.routes import parse_default_routes, query_default_routes

SAMPLE_ROUTES = """default via 192.168.1.1 dev wlan0 proto dhcp src 192.168.1.20 metric 600
default via 10.0.0.1 dev enp3s0 proto dhcp src 10.0.0.5 metric 100
default via 192.168.1.1 dev wlan0 proto static metric 50
"""


class TestParseDefaultRoutes:
    def test_maps_device_to_lowest_metric(self):
        assert parse_default_routes(SAMPLE_ROUTES) == {"wlan0": 50, "enp3s0": 100}

    def test_missing_metric_is_zero(self):
        assert parse_default_routes("default via 10.0.0.1 dev usb0\n") == {"usb0": 0}

    def test_non_default_lines_ignored(self):
        assert parse_default_routes("10.0.0.0/24 dev wlan0 proto kernel scope link\n") == {}

    def test_line_without_dev_ignored(self):
        assert parse_default_routes("default via 10.0.0.1\n") == {}

    def test_empty_output(self):
        assert parse_default_routes("") == {}


class TestQueryDefaultRoutes:
    def test_runs_ip_route_show_default(self, runner):
        runner.on("ip", stdout=SAMPLE_ROUTES)
        assert query_default_routes(runner=runner) == {"wlan0": 50, "enp3s0": 100}
        assert runner.commands() == [["ip", "-4", "route", "show", "default"]]

    def test_nonzero_exit_raises(self, runner):
        runner.on("ip", returncode=2, stderr="RTNETLINK answers: Permission denied")
        with pytest.raises(PlatformQueryError, match="Permission denied"):
            query_default_routes(runner=runner)

    def test_timeout_raises(self, runner):
        runner.on("ip", raises=subprocess.TimeoutExpired("ip", 5))
        with pytest.raises(PlatformQueryError):
            query_default_routes(runner=runner)
