"""Tests for wifihotspot.nat.helper: the privileged wifihotspot-nat program."""

from __future__ import annotations

import json
import subprocess

import pytest

from wifihotspot.nat import helper
from wifihotspot.nat.rules import NatRuleSet

NFT = "/usr/sbin/nft"
LIST_CMD = (NFT, "-j", "list", "table", "ip", "wifihotspot")
SCRIPT_CMD = (NFT, "-f", "-")


def _listing(hotspot="wlan1", uplink="wlan0") -> str:
    return json.dumps({"nftables": [
        {"table": {"family": "ip", "name": "wifihotspot", "handle": 3}},
        {"rule": {
            "family": "ip", "table": "wifihotspot", "chain": "postrouting", "handle": 4,
            "comment": f"wifihotspot:{hotspot}>{uplink}", "expr": [{"masquerade": None}],
        }},
    ]})


ABSENT = {"returncode": 1, "stderr": "Error: No such file or directory\nlist table ip wifihotspot\n"}


def _run_main(argv, runner, capsys, euid=0):
    code = helper.main(argv, runner=runner, euid=euid, nft_path=NFT)
    out = capsys.readouterr().out.strip().splitlines()
    return code, json.loads(out[-1]) if out else None


class TestFindNft:
    def test_returns_first_executable(self, tmp_path):
        missing = tmp_path / "nope"
        nft = tmp_path / "nft"
        nft.write_text("#!/bin/sh\n")
        nft.chmod(0o755)
        assert helper.find_nft((str(missing), str(nft))) == str(nft)

    def test_none_when_absent(self, tmp_path):
        assert helper.find_nft((str(tmp_path / "nft"),)) is None


class TestRunAction:
    def test_apply_feeds_script_to_nft(self, runner):
        ruleset = NatRuleSet("wlan1", "wlan0")
        code, _ = helper.run_action("apply", ruleset, nft=NFT, runner=runner)
        assert code == helper.EXIT_OK
        assert runner.calls[0]["cmd"] == list(SCRIPT_CMD)
        assert runner.calls[0]["input"] == ruleset.render()

    def test_apply_failure_reports_nft_error(self, runner):
        runner.on(*SCRIPT_CMD, returncode=1, stderr="Error: Could not process rule")
        code, message = helper.run_action("apply", NatRuleSet("wlan1", "wlan0"), nft=NFT, runner=runner)
        assert code == helper.EXIT_NFT_FAILED
        assert "Could not process rule" in message

    def test_remove_matching_pair_deletes_table(self, runner):
        runner.on(*LIST_CMD, stdout=_listing())
        code, _ = helper.run_action("remove", NatRuleSet("wlan1", "wlan0"), nft=NFT, runner=runner)
        assert code == helper.EXIT_OK
        assert runner.calls[-1]["input"] == "add table ip wifihotspot\ndelete table ip wifihotspot\n"

    def test_remove_absent_table_is_ok(self, runner):
        runner.on(*LIST_CMD, **ABSENT)
        code, _ = helper.run_action("remove", NatRuleSet("wlan1", "wlan0"), nft=NFT, runner=runner)
        assert code == helper.EXIT_OK
        assert runner.calls[-1]["input"] == "add table ip wifihotspot\ndelete table ip wifihotspot\n"

    def test_remove_untagged_table_still_deletes_it(self, runner):
        runner.on(*LIST_CMD, stdout=json.dumps({"nftables": [
            {"table": {"family": "ip", "name": "wifihotspot", "handle": 3}},
        ]}))
        code, _ = helper.run_action("remove", NatRuleSet("wlan1", "wlan0"), nft=NFT, runner=runner)
        assert code == helper.EXIT_OK
        assert runner.commands()[-1] == list(SCRIPT_CMD)
        assert runner.calls[-1]["input"] == "add table ip wifihotspot\ndelete table ip wifihotspot\n"

    def test_remove_with_unparsable_listing_fails(self, runner):
        runner.on(*LIST_CMD, stdout="not json at all")
        code, message = helper.run_action("remove", NatRuleSet("wlan1", "wlan0"), nft=NFT, runner=runner)
        assert code == helper.EXIT_NFT_FAILED
        assert "could not parse" in message
        assert list(SCRIPT_CMD) not in runner.commands()

    def test_check_with_unparsable_listing_fails(self, runner):
        runner.on(*LIST_CMD, stdout="not json at all")
        code, _ = helper.run_action("check", NatRuleSet("wlan1", "wlan0"), nft=NFT, runner=runner)
        assert code == helper.EXIT_NFT_FAILED

    def test_remove_other_pair_refused(self, runner):
        runner.on(*LIST_CMD, stdout=_listing("wlan2", "wlan0"))
        code, message = helper.run_action("remove", NatRuleSet("wlan1", "wlan0"), nft=NFT, runner=runner)
        assert code == helper.EXIT_MISMATCH
        assert "wlan2>wlan0" in message
        assert len(runner.calls) == 1

    def test_check_matching_pair(self, runner):
        runner.on(*LIST_CMD, stdout=_listing())
        code, _ = helper.run_action("check", NatRuleSet("wlan1", "wlan0"), nft=NFT, runner=runner)
        assert code == helper.EXIT_OK

    def test_check_absent_table(self, runner):
        runner.on(*LIST_CMD, **ABSENT)
        code, _ = helper.run_action("check", NatRuleSet("wlan1", "wlan0"), nft=NFT, runner=runner)
        assert code == helper.EXIT_ABSENT

    def test_list_timeout_reports_nft_error(self, runner):
        runner.on(*LIST_CMD, raises=subprocess.TimeoutExpired("nft", 20))
        code, _ = helper.run_action("check", NatRuleSet("wlan1", "wlan0"), nft=NFT, runner=runner)
        assert code == helper.EXIT_NFT_FAILED


class TestMain:
    def test_apply_prints_json_result(self, runner, capsys):
        code, response = _run_main(["apply", "wlan1", "wlan0"], runner, capsys)
        assert code == 0
        assert response == {
            "ok": True, "action": "apply", "hotspot": "wlan1", "uplink": "wlan0",
            "code": 0, "message": "NAT rules installed for wifihotspot:wlan1>wlan0",
        }

    def test_invalid_interface_rejected_before_nft(self, runner, capsys):
        code, response = _run_main(["apply", "wlan1;reboot", "wlan0"], runner, capsys)
        assert code == helper.EXIT_INVALID_INTERFACE
        assert response["ok"] is False
        assert runner.calls == []

    def test_trailing_newline_in_name_rejected(self, runner, capsys):
        code, _ = _run_main(["apply", "wlan1\n", "wlan0"], runner, capsys)
        assert code == helper.EXIT_INVALID_INTERFACE
        assert runner.calls == []

    def test_same_interface_rejected(self, runner, capsys):
        code, _ = _run_main(["apply", "wlan0", "wlan0"], runner, capsys)
        assert code == helper.EXIT_INVALID_INTERFACE

    def test_non_root_refused(self, runner, capsys):
        code, _ = _run_main(["apply", "wlan1", "wlan0"], runner, capsys, euid=1000)
        assert code == helper.EXIT_NOT_ROOT
        assert runner.calls == []

    def test_missing_nft(self, runner, capsys, monkeypatch):
        monkeypatch.setattr(helper, "find_nft", lambda: None)
        code = helper.main(["apply", "wlan1", "wlan0"], runner=runner, euid=0)
        assert code == helper.EXIT_NFT_MISSING

    def test_unknown_action_is_usage_error(self, runner):
        with pytest.raises(SystemExit) as exc_info:
            helper.main(["flush", "wlan1", "wlan0"], runner=runner, euid=0, nft_path=NFT)
        assert exc_info.value.code == helper.EXIT_USAGE
