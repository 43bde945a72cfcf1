"""Report outputs: files in a build directory and standard output."""

from __future__ import annotations

import os
import time

from .core import TestRunError, register_report_output
from .formats import REPORT_FORMAT_XUNIT

__all__ = [
    "REPORT_OUTPUT_FILE",
    "REPORT_OUTPUT_STDOUT",
    "report_to_file",
    "report_to_stdout",
]

REPORT_OUTPUT_FILE = "file"
REPORT_OUTPUT_STDOUT = "stdout"


def report_to_file(pkg: str, report: str, report_format: str, directory: str) -> str:
    """Write the report under ``<directory>/test-results`` and return the file path."""
    dest = os.path.join(directory, "test-results")
    try:
        os.makedirs(dest, exist_ok=True)
    except OSError as err:
        raise TestRunError(f"could not create test reports folder: {err}") from err

    ext = "xml" if report_format == REPORT_FORMAT_XUNIT else "txt"
    file_path = os.path.join(dest, f"{pkg}_{time.time_ns()}.{ext}")
    try:
        with open(file_path, "w", encoding="utf-8") as handle:
            handle.write(report + "\n")
    except OSError as err:
        raise TestRunError(f"could not write report file: {err}") from err
    return file_path


def report_to_stdout(pkg: str, report: str, report_format: str = "") -> None:
    """Print the report between start and end markers."""
    print(f"--- Test results for package: {pkg} - START ---")
    print(report)
    print(f"--- Test results for package: {pkg} - END   ---")
    print("Done")


register_report_output(REPORT_OUTPUT_STDOUT, report_to_stdout)