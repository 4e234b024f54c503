"""Error taxonomy for test orchestration."""


class OrchestrationError(Exception):
    """Base class for all errors raised by the test station core."""
    pass


class DuplicateNameError(OrchestrationError):
    """A testcase with the same name is already registered."""
    pass


class NotFoundError(OrchestrationError):
    """No testcase is registered under the requested name."""
    pass


class RegistryFrozenError(OrchestrationError):
    """Registration attempted after the registry was built."""
    pass


class HandshakeError(OrchestrationError):
    """Address exchange failures."""
    pass


class ListenError(HandshakeError):
    pass


class AcceptError(HandshakeError):
    pass


class WriteError(HandshakeError):
    pass


class InvalidAddressError(HandshakeError):
    pass


class DeadlineExceededError(OrchestrationError, TimeoutError):
    """A handshake step or the result wait ran past its deadline."""
    pass


class HandshakeTimeoutError(DeadlineExceededError, HandshakeError):
    pass


class ContainerError(OrchestrationError):
    """The isolated environment failed to start, run or report."""
    pass


class DomainError(OrchestrationError):
    """The test logic itself reported a failure."""
    pass
