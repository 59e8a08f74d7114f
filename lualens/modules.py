"""
Cross-module inspection for require("name").

The required module is located with the search templates, inspected with the
same LuaInspector, and its exported value (the first value of its last
top-level return) becomes the value of the require call. Results are cached
per module name; a module that is still being inspected when it is required
again is a require loop, and every module loaded inside the loop resolves to
unknown.

Exported tables are frozen before they are cached, so files that require a
module cannot change what the next file sees. Warnings a module produces
while loading are kept with its cache entry and repeated on every require.
"""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from lualens.discovery import locate_module, module_name_for
from lualens.errors import LuaSyntaxError, ModuleLoadError
from lualens.values import UNIVERSAL, ErrorValue, freeze

logger = logging.getLogger(__name__)

Report = Callable[..., None]


class _InProgress:
    def __repr__(self):
        return '<in progress>'


IN_PROGRESS = _InProgress()


class ModuleCache:
    """Module name -> exported value, or IN_PROGRESS while loading."""

    def __init__(self):
        self._values: Dict[str, Any] = {}
        self._notes: Dict[str, List[Tuple[str, str]]] = {}

    def get(self, name: str, default=None):
        return self._values.get(name, default)

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def mark_in_progress(self, name: str):
        self._values[name] = IN_PROGRESS

    def is_in_progress(self, name: str) -> bool:
        return self._values.get(name) is IN_PROGRESS

    def store(self, name: str, value, notes=()):
        self._values[name] = value
        self._notes[name] = list(notes)

    def notes(self, name: str) -> List[Tuple[str, str]]:
        """(level, text) warnings reported while the module was loaded."""
        return list(self._notes.get(name, ()))

    def discard(self, name: str):
        self._values.pop(name, None)
        self._notes.pop(name, None)

    def clear(self):
        self._values.clear()
        self._notes.clear()

    def __len__(self):
        return len(self._values)


def _no_report(level: str, text: str, **kwargs):
    pass


class ModuleInspector:
    """Resolves require() calls for one LuaInspector."""

    def __init__(self, inspector):
        self.inspector = inspector
        # module names being inspected, outermost first
        self.loading: List[str] = []
        self._in_loop: Set[str] = set()

    @property
    def cache(self) -> ModuleCache:
        return self.inspector.cache

    def load(self, name: str):
        """Source and path of a module, raising ModuleLoadError when missing."""
        found = locate_module(name, self.inspector.options.search_templates())
        if found is None:
            raise ModuleLoadError(f"module not found: {name}")
        return found

    def module_name(self, path) -> Optional[str]:
        return module_name_for(path, self.inspector.options.search_templates())

    @contextmanager
    def inspecting(self, name: str):
        """Keep name marked in progress while its source is inspected."""
        self.cache.mark_in_progress(name)
        self.loading.append(name)
        try:
            yield
        finally:
            self.loading.pop()
            if self.cache.is_in_progress(name):
                self.cache.discard(name)

    def _loop(self, name: str, report: Report):
        message = f"loop in require when loading {name}"
        logger.warning(message)
        report('warning', message)
        if name in self.loading:
            self._in_loop.update(self.loading[self.loading.index(name) + 1:])
        return UNIVERSAL

    def _fail(self, name: str, message: str, report: Report):
        logger.warning(message)
        report('warning', message)
        value = ErrorValue(message)
        self.cache.store(name, value, [('warning', message)])
        return value

    def require_inspect(self, name: str, report: Optional[Report] = None):
        """Value of require(name)."""
        report = report or _no_report
        cache = self.cache
        if cache.is_in_progress(name):
            return self._loop(name, report)
        if name in cache:
            for level, text in cache.notes(name):
                report(level, text, notify=False)
            return cache.get(name)

        report('status', f"loading: {name}")
        logger.info("loading: %s", name)
        try:
            source, path = self.load(name)
        except ModuleLoadError as e:
            return self._fail(name, str(e), report)

        try:
            with self.inspecting(name):
                inspection = self.inspector.inspect_source(source, str(path))
        except LuaSyntaxError as e:
            return self._fail(name, f"error loading module {name}: {e}", report)

        notes = [(message.level, message.text) for message in inspection.messages
                 if message.code == 'module' and message.level in ('warning', 'error')]
        for level, text in notes:
            report(level, text, notify=False)
        if name in self._in_loop:
            self._in_loop.discard(name)
            value = UNIVERSAL
        else:
            value = freeze(inspection.exports)
        cache.store(name, value, notes)
        return value
