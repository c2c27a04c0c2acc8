"""
Final text-level gate on assembled indicator SQL.

Assembled queries combine trusted report-layer snippets with bound
parameters, so a violation here points at a misconfigured indicator in
``indicators.yml``.  The query never reaches Postgres if any rule fires.
"""
from __future__ import annotations

import re

from managed_reports.core.logging import get_logger
from managed_reports.governance.report_loader import load_report_model, ReportModel

logger = get_logger(__name__)

# (pattern, message) pairs; a message containing {0} receives the upper-cased match.
_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r";\s*\S"), "Multi-statement SQL is not allowed (found ';' followed by another statement)."),
    (re.compile(r"\bSELECT\s+\*", re.IGNORECASE), "SELECT * is not allowed. Specify explicit columns."),
    (
        re.compile(
            r"\b(DROP|ALTER|TRUNCATE|INSERT|UPDATE|DELETE|MERGE|GRANT|REVOKE|"
            r"CREATE|REPLACE|EXECUTE|EXEC|CALL|COPY|SET\s+ROLE|RESET\s+ROLE)\b",
            re.IGNORECASE,
        ),
        "Dangerous keyword detected: '{0}'.",
    ),
    (re.compile(r"--"), "Inline comments (--) are not allowed."),
    (re.compile(r"/\*"), "Block comments (/* */) are not allowed."),
]

# Table references only; EXTRACT(YEAR FROM to_date(...)) is a function call.
_TABLE_REF = re.compile(r"\b(?:FROM|JOIN)\s+([A-Za-z_]\w*)(?![\w(])", re.IGNORECASE)


def check_sql_safety(sql: str, model: ReportModel | None = None) -> list[str]:
    """Return the rule violations found in *sql* (empty list = safe)."""
    model = model or load_report_model()
    text = sql.strip()

    errors: list[str] = []
    if not text.upper().startswith("SELECT"):
        errors.append("SQL must be a SELECT statement.")

    for pattern, message in _RULES:
        match = pattern.search(text)
        if match:
            errors.append(message.format(match.group(0).upper()))

    allowed = {t.lower() for t in model.allowed_tables}
    errors.extend(
        f"Table '{ref}' is not in the allowed tables list."
        for ref in _TABLE_REF.findall(text)
        if ref.lower() not in allowed
    )

    if errors:
        logger.warning("SQL safety violations: %s", errors)
    return errors
