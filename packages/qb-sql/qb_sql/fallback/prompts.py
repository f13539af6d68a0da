"""Correction request/response contract and prompt rendering."""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class CorrectionRequest:
    """Everything the correction service sees about one failed object."""
    object_name: str
    original_query: str
    failed_sql: str
    error_message: str
    sqlstate: Optional[str] = None
    schema_snapshot: str = ""
    function_inventory: str = ""
    control_mapping: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CorrectionResponse:
    corrected_sql: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return bool(self.corrected_sql and self.corrected_sql.strip())


def _section(title: str, body: str) -> str:
    return f"## {title}\n{body.strip() or '(none)'}\n"


def build_correction_prompt(request: CorrectionRequest) -> str:
    """Render the single-shot correction prompt."""
    sqlstate = f" (SQLSTATE {request.sqlstate})" if request.sqlstate else ""
    parts = [
        f"The PostgreSQL DDL generated for the Access query `{request.object_name}` failed.\n",
        _section("Original Access SQL", request.original_query),
        _section("Generated PostgreSQL DDL", request.failed_sql),
        _section("Error" + sqlstate, request.error_message),
        _section("Target schema (relation: column type, ...)", request.schema_snapshot),
        _section("Available functions", request.function_inventory),
        _section("Form control -> column mapping", request.control_mapping),
        "## Rules\n"
        "- Keep the object name, object kind and parameter list unchanged.\n"
        "- Keep runtime-state subqueries (shared.runtime_state) exactly as written.\n"
        "- Use only relations and functions listed above or PostgreSQL built-ins.\n"
        "- Never use DROP ... CASCADE.\n",
        '## Output\nReturn JSON: {"sql": "<complete corrected DDL>"} '
        'or {"error": "<why it cannot be corrected>"}.',
    ]
    return "\n".join(parts)


_RESPONSE_KEYS = ("sql", "corrected_sql", "error")


def _extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """First JSON object in ``text`` carrying a response key.

    Each ``{`` is tried as the start of a complete JSON value; the decoder
    balances nested braces and skips those inside strings.
    """
    decoder = json.JSONDecoder()
    for match in re.finditer(r"\{", text):
        try:
            data, _ = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict) and any(key in data for key in _RESPONSE_KEYS):
            return data
    return None


def parse_correction_response(text: str) -> CorrectionResponse:
    """Parse a service reply: JSON ``{"sql"|"corrected_sql"|"error"}`` or bare SQL."""
    if not text or not text.strip():
        return CorrectionResponse(error="empty response")

    data = _extract_json_object(text)
    if isinstance(data, dict):
        sql = data.get("sql") or data.get("corrected_sql")
        if sql:
            return CorrectionResponse(corrected_sql=str(sql).strip())
        return CorrectionResponse(error=str(data.get("error") or "response has no sql"))

    fenced = re.search(r"```(?:sql)?\s*(.*?)```", text, re.DOTALL | re.I)
    sql = fenced.group(1) if fenced else text
    if re.match(r"\s*(CREATE|DROP|ALTER|DO)\b", sql, re.I):
        return CorrectionResponse(corrected_sql=sql.strip())
    return CorrectionResponse(error="response is neither JSON nor DDL")
