"""
Testcase contract shared by the container agent and the host orchestrator.
"""

from abc import ABC, abstractmethod


class Testcase(ABC):
    """
    One action to run in the container and one to run locally.
    Each action must succeed for the test to pass.
    """

    # Keep pytest from collecting subclasses imported into test modules
    __test__ = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Stable, unique name of the test."""

    @abstractmethod
    def container_action(self, ip: str) -> None:
        """
        Run inside the container.

        :param ip: Address of the local host
        :raises DomainError: If the test logic observes a failure
        """

    @abstractmethod
    def local_action(self, ip: str, channel) -> None:
        """
        Run locally, always in its own thread.

        Must report completion through the channel, either success
        (``channel.send()``) or an error (``channel.send(error)``).

        :param ip: Address of the container
        :param channel: CompletionChannel for the local side
        """

    def __repr__(self):
        return f"<{type(self).__name__} {self.name!r}>"
