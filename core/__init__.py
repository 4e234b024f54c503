"""
Core framework components for two-sided packet filter tests.
"""
from core.core_orchestrator import Orchestrator, RunState
from core.registry import TestcaseRegistry
from core.results import CompletionChannel, Outcome, Side, Verdict
from core.testcase import Testcase

__all__ = ['Orchestrator', 'RunState', 'TestcaseRegistry', 'CompletionChannel', 'Outcome', 'Side', 'Verdict',
           'Testcase']
