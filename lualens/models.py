"""
Finding records shared by diagnostics, the reporter and the CLI.
"""

from dataclasses import dataclass, field
from typing import Any, Dict

SEVERITIES = ('error', 'warning', 'info')

DESCRIPTIONS = {
    'masking': 'local masks another local',
    'unused-local': 'local is never read',
    'unknown-field': 'field has no known value',
    'unknown-global': 'global is never defined',
    'call-arity': 'wrong number of call arguments',
    'dead-code': 'statement can never run',
    'value-conflict': 'inferred value conflicts with a pinned value',
    'directive': 'invalid analysis directive',
    'module': 'problem loading a required module',
    'syntax-error': 'source could not be parsed',
    'read-error': 'file could not be read',
}


@dataclass
class Finding:
    pattern_name: str
    severity: str
    line_num: int
    message: str
    column: int = 0
    details: Dict[str, Any] = field(default_factory=dict)
    source_line: str = ''

    @property
    def description(self) -> str:
        return self.message or DESCRIPTIONS.get(self.pattern_name, self.pattern_name)

    @property
    def line_content(self) -> str:
        return self.source_line.strip()

    def __str__(self):
        return f"{self.line_num}:{self.column}: {self.message}"
