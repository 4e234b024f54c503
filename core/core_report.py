"""
Diagnostics for test runs: container logs and the suite summary.
Writing diagnostics is best effort and never changes a verdict.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from core.config import Paths, ReportPaths
from core.results import Verdict

logger = logging.getLogger("CoreReport")


def log_container(name: str, output: str, error: Optional[BaseException], artifacts_dir: Optional[Path] = None):
    """
    Record container output to ``<artifacts_dir>/<name>-container.log``,
    or to the log stream if no directory is configured or writing fails.

    :param name: Test name
    :param output: Combined container output
    :param error: Container error or None
    :param artifacts_dir: Output directory (optional)
    :return: Path of the written file, or None if logged instead
    """
    msg = f"Container error: {error}\nContainer output:\n{output}"
    if artifacts_dir:
        file_path = Path(artifacts_dir) / f"{Paths.sanitize_name(name)}-container.log"
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(msg, encoding="utf-8")
            logger.debug(f"Container log written: {file_path}")
            return file_path
        except OSError as e:
            logger.warning(f"Failed to write log file {file_path}: {e}")

    # We couldn't write to the output directory, just log it
    logger.info(msg)
    return None


class SuiteReport:
    """
    Collects verdicts of a suite run and renders a JSON summary.
    """

    def __init__(self):
        self.started = datetime.now()
        self.verdicts: List[Verdict] = []

    def add(self, verdict: Verdict) -> None:
        self.verdicts.append(verdict)

    @property
    def passed(self) -> bool:
        return all(v.passed for v in self.verdicts)

    def summary(self) -> Dict:
        tests = []
        for verdict in self.verdicts:
            tests.append({
                'name': verdict.name,
                'passed': verdict.passed,
                'error_type': type(verdict.cause).__name__ if verdict.cause else None,
                'error': str(verdict.cause) if verdict.cause else None,
                'elapsed': round(verdict.elapsed, 3),
            })
        return {
            'started': self.started.isoformat(timespec='seconds'),
            'total': len(tests),
            'failed': sum(1 for t in tests if not t['passed']),
            'tests': tests,
        }

    def log_summary(self) -> None:
        logger.info("=== Test Summary ===")
        for verdict in self.verdicts:
            status = "✓ PASS" if verdict.passed else "✖ FAIL"
            logger.info(f"{status} - {verdict.name}")
            if not verdict.passed:
                logger.info(f"    {type(verdict.cause).__name__}: {verdict.cause}")

    def write(self, artifacts_dir: Optional[Path]) -> Optional[Path]:
        """
        Save the summary as JSON in the artifacts directory.

        :param artifacts_dir: Output directory, nothing is written if None
        :return: Path of the summary file or None
        """
        if not artifacts_dir:
            return None

        file_path = Path(artifacts_dir) / ReportPaths.SUMMARY_FILENAME
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, 'w', encoding='utf-8') as f:
                json.dump(self.summary(), f, indent=2)
            logger.info(f"Summary saved: {file_path}")
            return file_path
        except OSError as e:
            logger.warning(f"Failed to save summary {file_path}: {e}")
            return None
