"""
Analysis options.
"""

import os
from dataclasses import dataclass
from typing import List, Mapping, Optional

DEFAULT_SEARCH_PATH = './?.lua;./?/init.lua'

_TRUE = ('1', 'true', 'yes', 'on')


@dataclass
class InspectOptions:
    passes: int = 2
    fixpoint: bool = False
    # upper bound on passes when iterating to a fixpoint
    max_passes: int = 8
    detect_dead_code: bool = False
    search_path: Optional[str] = None
    directive_marker: str = '!'

    def __post_init__(self):
        if self.passes < 1:
            raise ValueError("passes must be at least 1")
        if self.max_passes < self.passes:
            self.max_passes = self.passes

    def search_templates(self) -> List[str]:
        """Module search templates, ';' separated with '?' for the module name."""
        path = self.search_path or os.environ.get('LUA_PATH') or DEFAULT_SEARCH_PATH
        # ';;' in LUA_PATH stands for the default path
        path = path.replace(';;', ';' + DEFAULT_SEARCH_PATH + ';')
        return [template for template in path.split(';') if template]

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> 'InspectOptions':
        environ = os.environ if environ is None else environ
        values = {}
        if environ.get('LUALENS_PASSES'):
            values['passes'] = int(environ['LUALENS_PASSES'])
        if environ.get('LUALENS_DEAD_CODE'):
            values['detect_dead_code'] = environ['LUALENS_DEAD_CODE'].lower() in _TRUE
        if environ.get('LUA_PATH'):
            values['search_path'] = environ['LUA_PATH']
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)
