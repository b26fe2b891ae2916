"""Shared test fixtures: a scripted CommandRunner."""

from __future__ import annotations

import subprocess

import pytest


class FakeRunner:
    """CommandRunner that records calls and returns scripted results.

    Responses are registered per command prefix; the longest matching
    prefix wins.  Registering several responses for one prefix returns
    them in order, repeating the last one.
    """

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self._responses: dict[tuple[str, ...], list] = {}

    def on(self, *prefix: str, stdout: str = "", stderr: str = "", returncode: int = 0, raises=None):
        response = raises if raises is not None else (returncode, stdout, stderr)
        self._responses.setdefault(tuple(prefix), []).append(response)
        return self

    def commands(self) -> list[list[str]]:
        return [c["cmd"] for c in self.calls]

    def run(self, cmd, *, capture_output=True, text=True, timeout=None, env=None, input=None):
        self.calls.append({"cmd": list(cmd), "timeout": timeout, "env": env, "input": input})
        matches = [p for p in self._responses if tuple(cmd[: len(p)]) == p]
        if not matches:
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")
        queue = self._responses[max(matches, key=len)]
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, BaseException):
            raise response
        returncode, stdout, stderr = response
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()
