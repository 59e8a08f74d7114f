"""
lualens: static semantic analysis for Lua.

    from lualens import LuaInspector, list_warnings

    inspection = LuaInspector().inspect_source(source, "main.lua")
    for finding in list_warnings(inspection):
        print(finding)
"""

from lualens.config import InspectOptions
from lualens.diagnostics import definition_location, describe_node, list_warnings, names_in_scope
from lualens.errors import LuaSyntaxError
from lualens.inspector import Inspection, LuaInspector, analyze_file
from lualens.modules import ModuleCache

__version__ = "0.1.0"

__all__ = [
    'LuaInspector',
    'Inspection',
    'InspectOptions',
    'ModuleCache',
    'LuaSyntaxError',
    'list_warnings',
    'describe_node',
    'definition_location',
    'names_in_scope',
    'analyze_file',
]
