"""Report formatters: a human-readable table and xUnit XML."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Sequence, Union

from .core import TestResult, TestRunError, register_report_format

__all__ = [
    "REPORT_FORMAT_HUMAN",
    "REPORT_FORMAT_XUNIT",
    "XML_HEADER",
    "report_human",
    "report_xunit",
]

REPORT_FORMAT_HUMAN = "human"
REPORT_FORMAT_XUNIT = "xUnit"

XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n'

_ESCAPES = {
    '"': "&#34;",
    "'": "&#39;",
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    "\t": "&#x9;",
    "\n": "&#xA;",
    "\r": "&#xD;",
}


def _is_xml_char(char: str) -> bool:
    code = ord(char)
    return (
        code in (0x09, 0x0A, 0x0D)
        or 0x20 <= code <= 0xD7FF
        or 0xE000 <= code <= 0xFFFD
        or 0x10000 <= code <= 0x10FFFF
    )


def _escape(text: str) -> str:
    return "".join(
        _ESCAPES.get(char, char if _is_xml_char(char) else "\ufffd") for char in text
    )


@dataclass
class _Comment:
    text: str

    def render(self, depth: int = 0) -> str:
        if "--" in self.text:
            raise TestRunError('xml: comments must not contain "--"')
        body = self.text + " " if self.text.endswith("-") else self.text
        return "  " * depth + f"<!--{body}-->"


@dataclass
class _Element:
    tag: str
    attrs: list[tuple[str, str]] = field(default_factory=list)
    text: str = ""
    children: list[Union["_Element", _Comment]] = field(default_factory=list)

    def render(self, depth: int = 0) -> str:
        pad = "  " * depth
        attrs = "".join(f' {name}="{_escape(value)}"' for name, value in self.attrs)
        head = f"<{self.tag}{attrs}>{_escape(self.text)}"
        if not self.children:
            return f"{pad}{head}</{self.tag}>"
        lines = [pad + head]
        lines.extend(child.render(depth + 1) for child in self.children)
        lines.append(f"{pad}</{self.tag}>")
        return "\n".join(lines)


def _go_float(value: float) -> str:
    """Format a float the shortest way, switching to exponent form like ``%g``."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    sign, digit_tuple, exponent = Decimal(repr(value)).normalize().as_tuple()
    digits = "".join(map(str, digit_tuple))
    nd = len(digits)
    dp = nd + int(exponent)
    exp = dp - 1
    prefix = "-" if sign else ""
    if exp < -4 or exp >= 6:
        mantissa = digits[0] + ("." + digits[1:] if nd > 1 else "")
        exp_sign = "+" if exp >= 0 else "-"
        return f"{prefix}{mantissa}e{exp_sign}{abs(exp):02d}"
    if dp <= 0:
        return f"{prefix}0.{'0' * -dp}{digits}"
    if dp >= nd:
        return prefix + digits + "0" * (dp - nd)
    return f"{prefix}{digits[:dp]}.{digits[dp:]}"


def _fraction(value: int, precision: int) -> str:
    digits = f"{value:0{precision}d}".rstrip("0") if precision else ""
    return "." + digits if digits else ""


def _go_duration(seconds: float) -> str:
    """Render a duration given in seconds as e.g. ``1.5s``, ``250µs`` or ``1h2m3s``."""
    ns = round(seconds * 1_000_000_000)
    sign = "-" if ns < 0 else ""
    u = abs(ns)
    if u == 0:
        return "0s"
    if u < 1_000_000_000:
        if u < 1_000:
            return f"{sign}{u}ns"
        if u < 1_000_000:
            whole, frac = divmod(u, 1_000)
            return f"{sign}{whole}{_fraction(frac, 3)}µs"
        whole, frac = divmod(u, 1_000_000)
        return f"{sign}{whole}{_fraction(frac, 6)}ms"
    secs, frac = divmod(u, 1_000_000_000)
    text = f"{secs % 60}{_fraction(frac, 9)}s"
    minutes = secs // 60
    if minutes:
        text = f"{minutes % 60}m{text}"
        hours = minutes // 60
        if hours:
            text = f"{hours}h{text}"
    return sign + text


_HEADER = ["Package", "Data stream", "Test type", "Test name", "Result", "Time elapsed"]
_RIGHT_ALIGNED = frozenset({5})


def _render_table(header: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    cells = [[text.split("\n") for text in row] for row in [[h.upper() for h in header], *rows]]
    widths = [
        max(len(line) for row in cells for line in row[column]) for column in range(len(header))
    ]

    def border(left: str, separator: str, right: str) -> str:
        return left + separator.join("─" * (width + 2) for width in widths) + right

    def row_lines(row: list[list[str]], right_aligned: frozenset[int]) -> list[str]:
        lines = []
        for n in range(max(len(cell) for cell in row)):
            texts = []
            for column, (cell, width) in enumerate(zip(row, widths)):
                text = cell[n] if n < len(cell) else ""
                texts.append(text.rjust(width) if column in right_aligned else text.ljust(width))
            lines.append("│ " + " │ ".join(texts) + " │")
        return lines

    out = [border("╭", "┬", "╮"), *row_lines(cells[0], frozenset()), border("├", "┼", "┤")]
    for row in cells[1:]:
        out.extend(row_lines(row, _RIGHT_ALIGNED))
    out.append(border("╰", "┴", "╯"))
    return "\n".join(out)


def _result_text(result: TestResult) -> str:
    if result.error_msg:
        return f"ERROR: {result.error_msg}"
    if result.failure_msg:
        return f"FAIL: {result.failure_msg}"
    if result.skipped is not None:
        return str(result.skipped)
    return "PASS"


def report_human(results: Sequence[TestResult]) -> str:
    """Format results as failure details followed by a table."""
    if not results:
        return "No test results"

    parts: list[str] = []
    failures = [r for r in results if r.failure_msg]
    if failures:
        parts.append("FAILURE DETAILS:\n")
        parts.extend(
            f"{r.package}/{r.data_stream} {r.name}:\n{r.failure_details}\n" for r in failures
        )
        parts.append("\n\n")

    rows = [
        [
            r.package,
            r.data_stream,
            r.test_type,
            r.name,
            _result_text(r),
            _go_duration(r.time_elapsed),
        ]
        for r in results
    ]
    parts.append(_render_table(_HEADER, rows))
    return "".join(parts)


def report_xunit(results: Sequence[TestResult]) -> str:
    """Format results as an xUnit XML document, one suite per test type."""
    tests: dict[str, dict[str, dict[str, list[_Element]]]] = {}
    num_tests = num_failures = num_errors = num_skipped = 0

    for r in results:
        cases = (
            tests.setdefault(r.test_type, {})
            .setdefault(r.package, {})
            .setdefault(r.data_stream, [])
        )

        failure = ""
        if r.failure_msg:
            failure = r.failure_msg
            num_failures += 1
        if r.failure_details:
            failure += ": " + r.failure_details
        if r.error_msg:
            num_errors += 1
        if r.skipped is not None:
            num_skipped += 1

        name = f"{r.test_type} test"
        if r.name:
            name += ": " + r.name

        case = _Element(
            "testcase",
            [
                ("name", name),
                ("classname", f"{r.package}.{r.data_stream}"),
                ("time", _go_float(r.time_elapsed)),
            ],
        )
        if r.error_msg:
            case.children.append(_Element("error", text=r.error_msg))
        if failure:
            case.children.append(_Element("failure", text=failure))
        if r.skipped is not None:
            case.children.append(_Element("skipped", [("message", str(r.skipped))]))

        num_tests += 1
        cases.append(case)

    counts = (
        ("tests", num_tests),
        ("failures", num_failures),
        ("errors", num_errors),
        ("skipped", num_skipped),
    )
    root = _Element("testsuites")
    for test_type, packages in tests.items():
        suite = _Element(
            "testsuite",
            [("name", test_type)] + [(key, str(value)) for key, value in counts if value],
            children=[_Comment(f"test suite for {test_type} tests")],
        )
        suite.children.extend(
            case
            for data_streams in packages.values()
            for cases in data_streams.values()
            for case in cases
        )
        root.children.append(suite)

    try:
        body = root.render()
    except TestRunError as err:
        raise TestRunError(f"unable to format test results as xUnit: {err}") from err
    return XML_HEADER + body


register_report_format(REPORT_FORMAT_HUMAN, report_human)
register_report_format(REPORT_FORMAT_XUNIT, report_xunit)