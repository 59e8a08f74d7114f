"""
This finds Lua source files to analyse and the files behind require().

Command line paths are grouped by directory:
  lualens src/          -> {'src': [...], 'src/sub': [...]}
  lualens main.lua      -> {'(direct)': [main.lua]}

Modules are searched with package.path style templates, where '?' stands for
the module name with dots turned into directory separators.
"""

import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple


def _skipped(lua_file: Path, root: Path) -> bool:
    parts = lua_file.relative_to(root).parts
    if 'node_modules' in parts:
        return True
    return any(part.startswith('.') for part in parts)


def find_scripts(scripts_dir: Path) -> List[Path]:
    """Find all Lua script files in a directory, recursively."""
    scripts_dir = Path(scripts_dir)
    scripts = []
    seen = set()
    for lua_file in scripts_dir.rglob('*.lua'):
        if lua_file in seen or _skipped(lua_file, scripts_dir):
            continue
        scripts.append(lua_file)
        seen.add(lua_file)
    return sorted(scripts)


def discover_direct(path: Path) -> Dict[str, List[Path]]:
    """
    Discover scripts for the command line.

    - If path is a .lua file, return just that file
    - If path is a directory, find all scripts in it grouped by the
      directory they live in (relative to path)

    Returns dict mapping group name -> list of script file paths
    """
    path = Path(path)
    groups: Dict[str, List[Path]] = {}

    if path.is_file():
        if path.suffix == '.lua':
            groups["(direct)"] = [path]
        return groups

    if path.is_dir():
        for lua_file in find_scripts(path):
            rel = lua_file.parent.relative_to(path)
            name = path.name if not rel.parts else '/'.join((path.name,) + rel.parts)
            groups.setdefault(name, []).append(lua_file)

    return groups


def module_candidates(name: str, templates: Sequence[str]) -> List[Path]:
    """Paths tried for a module name, in search order."""
    relative = name.replace('.', '/')
    return [Path(template.replace('?', relative)) for template in templates]


def locate_module(name: str, templates: Sequence[str]) -> Optional[Tuple[str, Path]]:
    """
    Find and read the source of a module.

    Returns (source, path) for the first template that names a readable file,
    None when no template does.
    """
    for candidate in module_candidates(name, templates):
        if not candidate.is_file():
            continue
        try:
            return candidate.read_text(encoding='utf-8', errors='ignore'), candidate
        except OSError:
            continue
    return None


def module_name_for(path: Path, templates: Sequence[str]) -> Optional[str]:
    """The module name under which require() would load path, if any."""
    target = os.path.abspath(str(path))
    for template in templates:
        if template.count('?') != 1:
            continue
        prefix, suffix = os.path.abspath(template).split('?')
        if not (target.startswith(prefix) and target.endswith(suffix)):
            continue
        relative = target[len(prefix):len(target) - len(suffix)]
        if not relative:
            continue
        name = relative.replace(os.sep, '.')
        # a name with dots of its own would load another file
        if os.path.abspath(str(module_candidates(name, [template])[0])) == target:
            return name
    return None
