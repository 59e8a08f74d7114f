import textwrap

import pytest
from luaparser.astnodes import Name

from lualens import InspectOptions, LuaInspector


@pytest.fixture
def inspect():
    """Inspect a dedented Lua snippet; keyword arguments become InspectOptions."""
    def run(source, **options):
        inspector = LuaInspector(InspectOptions(**options))
        return inspector.inspect_source(textwrap.dedent(source).lstrip('\n'))
    return run


def names(inspection, name):
    """Name nodes with the given identifier, in source order."""
    return [node for node in inspection.source_map.nodes
            if isinstance(node, Name) and node.id == name]


def messages(findings, code=None):
    return [f.message for f in findings if code is None or f.pattern_name == code]
