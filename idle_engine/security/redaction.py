"""
Redaction of sensitive values in events, step errors and log records.

- Values stored under sensitive key names (password, token, secret, apiKey,
  ...) are replaced with a marker before data leaves the engine
- Values seen under sensitive keys, and values registered explicitly (for
  example auth sessions and sensitive step parameters), are masked wherever
  they appear in text
- Common ``key=value`` and ``Bearer <token>`` shapes are masked in free text
"""

import re
from collections.abc import Mapping
from typing import Any, Set

REDACTED = "[REDACTED]"

SENSITIVE_KEY_FRAGMENTS = (
    'password',
    'passphrase',
    'passwd',
    'secret',
    'token',
    'apikey',
    'credential',
    'privatekey',
    'connectionstring',
)

SENSITIVE_ASSIGNMENT = re.compile(
    r'(?i)\b(password|passphrase|passwd|pwd|secret|client[_-]?secret|token|access[_-]?token|'
    r'refresh[_-]?token|api[_-]?key)(["\']?\s*[:=]\s*["\']?)([^\s"\'&,;]+)'
)
BEARER_TOKEN = re.compile(r'(?i)\b(bearer\s+)[A-Za-z0-9\-._~+/]+=*')


def is_sensitive_key(key: Any) -> bool:
    """Check whether a mapping key names a sensitive value."""
    if not isinstance(key, str):
        return False
    normalized = key.lower().replace('_', '').replace('-', '')
    if normalized == 'pwd':
        return True
    return any(fragment in normalized for fragment in SENSITIVE_KEY_FRAGMENTS)


class Redactor:
    """
    Tracks known secret values and redacts data and text.

    One instance is created per run; values learned while redacting event
    data are then masked in later error text of the same run.
    """

    def __init__(self):
        """Initialize redactor."""
        self._masked_values: Set[str] = set()

    def register(self, value: Any) -> None:
        """Remember a secret value so it is masked in text."""
        if isinstance(value, str) and value:
            self._masked_values.add(value)

    def redact_text(self, text: str) -> str:
        """
        Mask known secret values and credential-looking fragments in text.

        Args:
            text: Text potentially containing secrets

        Returns:
            Text with secrets masked
        """
        if not text:
            return text

        masked = text
        # Longer values first so substrings of other secrets are not left behind
        for secret_value in sorted(self._masked_values, key=len, reverse=True):
            if secret_value in masked:
                masked = masked.replace(secret_value, REDACTED)

        masked = SENSITIVE_ASSIGNMENT.sub(lambda m: f"{m.group(1)}{m.group(2)}{REDACTED}", masked)
        masked = BEARER_TOKEN.sub(lambda m: f"{m.group(1)}{REDACTED}", masked)
        return masked

    def redact_data(self, data: Any) -> Any:
        """
        Return a redacted copy of a nested data structure.

        Args:
            data: Mapping, list or scalar

        Returns:
            Copy with sensitive keys replaced and secret values masked
        """
        if isinstance(data, Mapping):
            redacted = {}
            for key, value in data.items():
                if is_sensitive_key(key):
                    self.remember(value)
                    redacted[key] = REDACTED
                else:
                    redacted[key] = self.redact_data(value)
            return redacted
        elif isinstance(data, (list, tuple)):
            return [self.redact_data(item) for item in data]
        elif isinstance(data, str):
            return self.redact_text(data)
        return data

    def remember(self, value: Any) -> None:
        """
        Register every string found inside an opaque secret value.

        Mappings, sequences and plain objects (through their attributes) are
        walked, so structured auth sessions are masked as a whole.
        """
        seen = set()
        stack = [value]
        while stack:
            current = stack.pop()
            if isinstance(current, str):
                self.register(current)
                continue
            if current is None or isinstance(current, (bool, int, float, bytes)):
                continue
            if id(current) in seen:
                continue
            seen.add(id(current))
            if isinstance(current, Mapping):
                stack.extend(current.values())
            elif isinstance(current, (list, tuple, set, frozenset)):
                stack.extend(current)
            elif hasattr(current, '__dict__'):
                stack.extend(vars(current).values())


class RedactingFilter:
    """
    Logging filter that redacts log records.

    Can be attached to Python logging handlers to mask secrets in real-time.
    """

    def __init__(self, redactor: Redactor):
        """
        Initialize filter with a redactor.

        Args:
            redactor: Redactor containing values to mask
        """
        self.redactor = redactor

    def filter(self, record):
        """Redact the record message and arguments; always pass the record."""
        if hasattr(record, 'msg'):
            record.msg = self.redactor.redact_text(str(record.msg))

        if hasattr(record, 'args') and record.args:
            if isinstance(record.args, dict):
                record.args = self.redactor.redact_data(record.args)
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self.redactor.redact_text(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        return True
