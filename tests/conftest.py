import json
import time

import pytest

from zjpane import ZjpaneGateway


class FakeGateway(ZjpaneGateway):
    """Records every command instead of calling zellij.

    `panes` is the list the plugin reports. `appear_after` maps a pane title
    to the number of list calls that must happen after its spawn command
    before it shows up (None means never).
    """

    def __init__(self, panes=None, appear_after=None, responses=None):
        super().__init__()
        self.panes = list(panes or [])
        self.appear_after = dict(appear_after or {})
        self.responses = dict(responses or {})
        self.commands: list[str] = []
        self.list_times: list[float] = []
        self._pending: dict[str, list] = {}
        self._next_id = max((p["id"] for p in self.panes), default=0) + 1

    def execute(self, command, timeout=None):
        self.commands.append(command)
        fields = command.split("::")
        op = fields[1]

        if op == "list":
            self.list_times.append(time.monotonic())
            for title, state in list(self._pending.items()):
                if state[0] is None:
                    continue
                if state[0] <= 0:
                    self.panes.append({"id": self._next_id, "title": title})
                    self._next_id += 1
                    del self._pending[title]
                else:
                    state[0] -= 1
            return json.dumps(self.panes)

        if op == "spawn":
            self._pending[fields[2]] = [self.appear_after.get(fields[2], 0)]
            return ""

        if op == "close":
            self.panes = [p for p in self.panes if p["title"] != fields[2]]
            return ""

        return self.responses.get(command, "")

    def commands_for(self, op):
        return [c for c in self.commands if c.split("::")[1] == op]


@pytest.fixture
def fake_gateway():
    return FakeGateway(panes=[{"id": 0, "title": "main"}])
