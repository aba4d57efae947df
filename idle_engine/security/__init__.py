"""Security module for data-only enforcement and redaction."""

from .data_only import assert_no_executable_content, find_executable_content
from .redaction import Redactor, RedactingFilter, is_sensitive_key, REDACTED

__all__ = [
    'assert_no_executable_content',
    'find_executable_content',
    'Redactor',
    'RedactingFilter',
    'is_sensitive_key',
    'REDACTED',
]
