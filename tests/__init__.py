import time
from contextlib import contextmanager

from chaosnetem.execute.execute import CommandExecutor, Result


@contextmanager
def patch(owner, attr, value):
    """Monkey patch context manager.

    with patch(os, 'open', myopen):
        ...
    """
    old = getattr(owner, attr)
    setattr(owner, attr, value)
    try:
        yield getattr(owner, attr)
    finally:
        setattr(owner, attr, old)


class FakeExecutor(CommandExecutor):
    """
    Records every command and answers from a list of (prefix, Result) rules.

    The first rule whose prefix matches the command wins. Unmatched commands
    succeed with no output. A rule's Result may also be an exception instance,
    which is raised instead.
    """

    def __init__(self, rules=None):
        self.rules = list(rules or [])
        self.calls = []

    def _execute(self, action, as_sudo=False, timeout=None):
        self.calls.append((time.monotonic(), action))
        for prefix, result in self.rules:
            if action.startswith(prefix):
                if isinstance(result, Exception):
                    raise result
                return result
        return Result(0, "", "")

    def commands(self, containing=""):
        return [command for _, command in self.calls if containing in command]

    def times(self, containing):
        return [at for at, command in self.calls if containing in command]
