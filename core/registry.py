"""
Testcase registry: name -> Testcase, built once before any run starts.
"""

import logging
import threading
from typing import Dict, Iterable, List

from core.exceptions import DuplicateNameError, NotFoundError, RegistryFrozenError
from core.testcase import Testcase

logger = logging.getLogger("Registry")


class TestcaseRegistry:
    """
    Append-only mapping of test names to Testcase implementations.
    Registration happens in a build phase; after freeze() the registry is read-only.
    """

    __test__ = False

    def __init__(self):
        self._tests: Dict[str, Testcase] = {}
        self._lock = threading.Lock()
        self._frozen = False

    @classmethod
    def build(cls, testcases: Iterable[Testcase]) -> "TestcaseRegistry":
        """
        Register every testcase and freeze the result.

        :param testcases: Testcase instances with unique names
        :return: Frozen registry
        :raises DuplicateNameError: If two testcases share a name
        """
        registry = cls()
        for testcase in testcases:
            registry.register(testcase)
        registry.freeze()
        return registry

    def register(self, testcase: Testcase) -> None:
        name = testcase.name
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(f"cannot register {name!r}: registry is frozen")
            if name in self._tests:
                raise DuplicateNameError(f"a test named {name!r} is already registered")
            self._tests[name] = testcase
        logger.debug(f"Registered test {name}")

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def lookup(self, name: str) -> Testcase:
        """
        Resolve a test by name.

        :param name: Test name
        :return: Registered Testcase
        :raises NotFoundError: If no test is registered under that name
        """
        with self._lock:
            testcase = self._tests.get(name)
        if testcase is None:
            raise NotFoundError(f"no test found with name {name!r}. Has it been added to the registry?")
        return testcase

    def names(self) -> List[str]:
        with self._lock:
            return list(self._tests)

    def __contains__(self, name):
        with self._lock:
            return name in self._tests

    def __len__(self):
        with self._lock:
            return len(self._tests)

    def __iter__(self):
        return iter(self.names())
