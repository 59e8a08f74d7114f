import pytest

from conftest import messages, names
from lualens import InspectOptions, LuaInspector, ModuleCache, list_warnings
from lualens.discovery import module_name_for
from lualens.errors import ModuleLoadError
from lualens.tree import kind_of
from lualens.values import NIL, UNIVERSAL, ErrorValue, LuaTable, describe_value


@pytest.fixture
def project(tmp_path):
    """Write modules into tmp_path and return an inspector searching there."""
    def make(modules, **kwargs):
        for name, source in modules.items():
            path = tmp_path / f"{name.replace('.', '/')}.lua"
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(source)
        options = InspectOptions(search_path=str(tmp_path / '?.lua'))
        return LuaInspector(options, **kwargs)
    return make


def value_of(inspection, name, occurrence=0):
    return inspection.annotations.value(names(inspection, name)[occurrence])


def test_require_returns_module_exports(project):
    inspector = project({'mod': "local M = {}\nM.answer = 7\nreturn M"})
    inspection = inspector.inspect_source('local mod = require("mod")\nlocal v = mod.answer')
    assert isinstance(value_of(inspection, 'mod'), LuaTable)
    assert value_of(inspection, 'v') == 7


def test_dotted_module_names_map_to_directories(project):
    inspector = project({'pkg.util': "return {name = 'util'}"})
    inspection = inspector.inspect_source('local u = require("pkg.util").name')
    assert value_of(inspection, 'u') == 'util'


def test_results_are_cached(project, tmp_path):
    inspector = project({'mod': "return 1"})
    inspector.inspect_source('local m = require("mod")')
    assert inspector.cache.get('mod') == 1
    (tmp_path / 'mod.lua').unlink()
    inspection = inspector.inspect_source('local m = require("mod")')
    assert value_of(inspection, 'm') == 1


def test_shared_cache(project):
    cache = ModuleCache()
    project({'mod': "return 'x'"}, cache=cache).inspect_source('require("mod")')
    assert 'mod' in cache
    assert len(cache) == 1


def test_missing_module_is_warned_once(project):
    inspection = project({}).inspect_source('local m = require("nope")')
    assert isinstance(value_of(inspection, 'm'), ErrorValue)
    findings = list_warnings(inspection)
    assert messages(findings, 'module') == ["module not found: nope"]
    (finding,) = [f for f in findings if f.pattern_name == 'module']
    assert (finding.line_num, finding.severity) == (1, 'warning')


def test_module_with_syntax_error(project):
    inspection = project({'bad': "local = = 1"}).inspect_source('local b = require("bad")')
    (message,) = messages(list_warnings(inspection), 'module')
    assert message.startswith("error loading module bad:")
    assert isinstance(value_of(inspection, 'b'), ErrorValue)


LOOP_MODULES = {
    'a': 'local b = require("b")\nreturn {}',
    'b': 'local a = require("a")\nreturn {}',
}


def test_require_loop(project):
    reports = []
    inspector = project(LOOP_MODULES, report=reports.append)
    inspection = inspector.inspect_source('local a = require("a")')
    assert reports.count("warning: loop in require when loading a") == 1
    assert "status: loading: a" in reports
    assert not inspector.cache.is_in_progress('a')
    assert inspector.cache.get('b') is UNIVERSAL
    assert messages(list_warnings(inspection), 'module') == ["loop in require when loading a"]


def test_require_loop_back_to_the_inspected_file(project, tmp_path):
    inspector = project(LOOP_MODULES)
    inspection = inspector.inspect_file(tmp_path / 'a.lua')
    assert value_of(inspection, 'b') is UNIVERSAL
    assert inspector.cache.get('b') is UNIVERSAL
    assert 'a' not in inspector.cache
    assert messages(list_warnings(inspection), 'module') == ["loop in require when loading a"]


def test_module_warnings_survive_reinspect(project):
    inspector = project({})
    inspection = inspector.inspect_source('local m = require("nope")')
    inspector.reinspect(inspection)
    assert messages(list_warnings(inspection), 'module') == ["module not found: nope"]


def test_writes_to_required_exports_are_not_kept(project):
    inspector = project({'mod': "local M = {}\nreturn M"})
    inspector.inspect_source('local M = require("mod")\nM.secret = 42')
    inspection = inspector.inspect_source('local M = require("mod")\nlocal v = M.secret')
    assert value_of(inspection, 'v') is NIL
    assert inspector.cache.get('mod').readonly


def test_reinspect_with_a_required_module_is_stable(project):
    inspector = project({'mod': "local M = {}\nreturn M"})
    inspection = inspector.inspect_source('local M = require("mod")\nM.n = M.n + 1')

    def values():
        return [(kind_of(node), describe_value(inspection.annotations.value(node)))
                for node in inspection.source_map.nodes]

    before = values()
    inspector.reinspect(inspection)
    assert values() == before


def test_module_name_for(tmp_path):
    templates = [str(tmp_path / '?.lua'), str(tmp_path / '?' / 'init.lua')]
    assert module_name_for(tmp_path / 'pkg' / 'util.lua', templates) == 'pkg.util'
    assert module_name_for(tmp_path / 'pkg' / 'init.lua', templates[1:]) == 'pkg'
    assert module_name_for(tmp_path / 'a.b.lua', templates) is None
    assert module_name_for(tmp_path.parent / 'x.lua', templates) is None


def test_non_constant_require_is_universal(project):
    inspection = project({}).inspect_source('local name = io.read()\nlocal m = require(name)')
    assert value_of(inspection, 'm') is UNIVERSAL


def test_load_raises_for_missing_module(project):
    inspector = project({})
    with pytest.raises(ModuleLoadError, match="module not found: nope"):
        inspector.modules.load('nope')


class TestModuleCache:
    def test_in_progress_marker(self):
        cache = ModuleCache()
        cache.mark_in_progress('m')
        assert cache.is_in_progress('m')
        cache.store('m', 3)
        assert not cache.is_in_progress('m')
        assert cache.get('m') == 3

    def test_discard_and_clear(self):
        cache = ModuleCache()
        cache.store('a', 1)
        cache.store('b', 2)
        cache.discard('a')
        assert 'a' not in cache
        cache.clear()
        assert len(cache) == 0

    def test_notes_follow_the_entry(self):
        cache = ModuleCache()
        cache.store('m', 1, [('warning', 'module not found: m')])
        assert cache.notes('m') == [('warning', 'module not found: m')]
        cache.discard('m')
        assert cache.notes('m') == []
