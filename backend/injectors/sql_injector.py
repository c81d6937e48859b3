import re
from typing import Optional

from injectors.base import BaseInjector
from injectors.payloads import PayloadCategory
from models.finding import Confidence, Finding, Severity
from models.http import BaseRequest, HttpResponse


class SQLInjector(BaseInjector):
    """SQL injection testing: error-based detection for MySQL, PostgreSQL, Oracle, MSSQL, SQLite."""

    category = PayloadCategory.SQLI
    description = "Tests for SQL injection by matching database error messages in the response"

    FINDING_TYPE = "SQL Injection Error"

    # Checked in order; the first match wins
    ERROR_PATTERNS = [
        # MySQL
        re.compile(r"SQL syntax.*?MySQL", re.IGNORECASE),
        re.compile(r"You have an error in your SQL syntax", re.IGNORECASE),
        re.compile(r"warning.*?mysql_", re.IGNORECASE),
        # PostgreSQL
        re.compile(r"syntax error.*?PostgreSQL", re.IGNORECASE),
        re.compile(r"PostgreSQL.*?ERROR", re.IGNORECASE),
        re.compile(r"unterminated quoted string at or near", re.IGNORECASE),
        # Oracle
        re.compile(r"ORA-[0-9]{5}", re.IGNORECASE),
        re.compile(r"quoted string not properly terminated", re.IGNORECASE),
        # MSSQL
        re.compile(r"Unclosed quotation mark after the character string", re.IGNORECASE),
        re.compile(r"Statement\(s\) could not be prepared", re.IGNORECASE),
        re.compile(r"Incorrect syntax near", re.IGNORECASE),
        re.compile(r"Microsoft.*?ODBC.*?SQL Server", re.IGNORECASE),
        # SQLite
        re.compile(r"sqlite3\.OperationalError", re.IGNORECASE),
        re.compile(r"near \".*?\": syntax error", re.IGNORECASE),
        re.compile(r"SQLITE_ERROR", re.IGNORECASE),
    ]

    def analyze_response(
        self, payload: str, response: HttpResponse, request: BaseRequest,
    ) -> Optional[Finding]:
        # The payload does not need to be reflected; the error alone is the signal
        for pattern in self.ERROR_PATTERNS:
            if pattern.search(response.body):
                return self._finding(
                    self.FINDING_TYPE,
                    f"Potential SQL error detected matching pattern: {pattern.pattern}",
                    Severity.HIGH,
                    Confidence.FIRM,
                    payload,
                )
        return None
