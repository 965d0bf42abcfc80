"""Safety policy for command-executing tools.

The policy is a pure predicate over a command string. A command is rejected
if it contains any deny-listed substring anywhere in its text; otherwise it is
accepted only when its leading token exactly matches an allow-listed command.
Everything else is rejected.
"""

import logging
from collections.abc import Iterable

logger = logging.getLogger(__name__)

# Destructive commands, redirection, command chaining and substitution
DEFAULT_DENY = (
    "rm",
    "sudo",
    "su",
    ">",
    ">>",
    "|",
    "mv",
    "cp",
    "chmod",
    "chown",
    "&",
    ";",
    "\n",
    "`",
    "$(",
)

DEFAULT_ALLOW = (
    "ls",
    "pwd",
    "echo",
    "cat",
    "date",
    "whoami",
    "uname",
)


class SafetyPolicy:
    """Default-deny text-pattern policy for shell-style commands.

    The policy holds no state between calls; every command string is
    evaluated from scratch.

    Attributes:
        deny: Substrings that reject a command wherever they appear
        allow: Leading tokens that are permitted
    """

    def __init__(
        self,
        deny: Iterable[str] = DEFAULT_DENY,
        allow: Iterable[str] = DEFAULT_ALLOW,
    ) -> None:
        """Initialize the policy.

        Args:
            deny: Substrings that reject a command
            allow: Permitted leading tokens
        """
        self.deny = tuple(deny)
        self.allow = frozenset(allow)

    def check(self, command: str) -> str | None:
        """Evaluate a command and explain a rejection.

        Args:
            command: The command text to evaluate

        Returns:
            None if the command is accepted, otherwise the rejection reason
        """
        for pattern in self.deny:
            if pattern in command:
                logger.info(f"Rejected command containing {pattern!r}: {command!r}")
                return f"Command contains blocked pattern {pattern!r}"

        tokens = command.split()
        if not tokens:
            return "Empty command"

        if tokens[0] not in self.allow:
            logger.info(f"Rejected command with leading token {tokens[0]!r}")
            return f"Command {tokens[0]!r} is not in the allowed set"

        return None

    def is_safe(self, command: str) -> bool:
        """Check whether a command may be executed.

        Args:
            command: The command text to evaluate

        Returns:
            True if the command is accepted
        """
        return self.check(command) is None


_default_policy = SafetyPolicy()


def is_safe(command: str) -> bool:
    """Check a command against the default policy."""
    return _default_policy.is_safe(command)
