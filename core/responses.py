"""Tool output envelopes.

Every tool answers with ``{"content": [{"type": "text", "text": ...}],
"isError": bool}`` where the text is a JSON document.
"""

import json
from typing import Any, Sequence

from core.models import PackageResult


def text_envelope(payload: dict[str, Any], *, is_error: bool = False) -> dict[str, Any]:
    return {
        "content": [{"type": "text", "text": json.dumps(payload, indent=2, default=str)}],
        "isError": is_error,
    }


def summary_message(label: str, results: Sequence[PackageResult]) -> str:
    """E.g. 'Score information for 2 package(s). 1 failed.'"""
    succeeded = sum(1 for r in results if r.ok)
    failed = len(results) - succeeded
    message = f"{label} for {succeeded} package(s)."
    if failed:
        message += f" {failed} failed."
    return message


def batch_envelope(packages: Sequence[Any], results: Sequence[PackageResult], label: str,
                   **extra: Any) -> dict[str, Any]:
    """Assemble the response for a per-package tool.

    `extra` holds tool-level fields computed from the whole batch (the
    license `analysis`, the trends `summary`); they sit between the results
    and the summary message.
    """
    payload: dict[str, Any] = {
        "queryPackages": list(packages),
        "results": [r.to_dict() for r in results],
        **extra,
        "message": summary_message(label, results),
    }
    return text_envelope(payload)


def fatal_envelope(error: str, **fields: Any) -> dict[str, Any]:
    """A whole-call failure: no per-package results at all."""
    return text_envelope({**fields, "error": error}, is_error=True)
