"""
Inspection pipeline.

LuaInspector.inspect_source parses a file and runs, in order: scope building,
identifier resolution, comment directives, value inference (two passes by
default, or until nothing changes), a post-pass linking fields to the values
they display and checking call arity, and keyword grouping. The resulting
Inspection holds every annotation; lualens.diagnostics reads it.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from luaparser.astnodes import Chunk, Name

from lualens.annotations import AnnotationTable
from lualens.config import InspectOptions
from lualens.diagnostics import list_warnings
from lualens.directives import DirectiveEvaluator
from lualens.errors import LuaSyntaxError
from lualens.interpreter import OPEN_ENDED, DebugTable, ValueInterpreter, function_record
from lualens.keywords import KeywordGrouper
from lualens.lexer import Token, remove_shebang, tokenize
from lualens.models import Finding
from lualens.modules import ModuleCache, ModuleInspector
from lualens.resolver import assign_identifiers, unescape_key
from lualens.runtime import lookup_path
from lualens.scope import ScopeBuilder, ScopeFacts
from lualens.tree import SourceMap, kind_of, parse_source
from lualens.values import UNIVERSAL, Builtin

logger = logging.getLogger(__name__)


@dataclass
class Message:
    level: str  # status, warning, error
    text: str
    line: int = 0
    column: int = 0
    code: Optional[str] = None


@dataclass
class Inspection:
    """One analysed source file and everything learned about it."""
    source: str
    name: str
    chunk: Chunk
    tokens: List[Token]
    source_map: SourceMap
    options: InspectOptions
    annotations: AnnotationTable = field(default_factory=AnnotationTable)
    scope: ScopeFacts = field(default_factory=ScopeFacts)
    value_globals: Dict[str, Any] = field(default_factory=dict)
    debug: Optional[DebugTable] = None
    keyword_ids: Dict[int, int] = field(default_factory=dict)
    messages: List[Message] = field(default_factory=list)
    passes_run: int = 0
    listener: Optional[Callable[[str], None]] = field(default=None, repr=False)

    def __post_init__(self):
        if self.debug is None:
            self.debug = DebugTable(self.name)

    @property
    def source_lines(self) -> List[str]:
        return self.source.splitlines()

    def report(self, level: str, text: str, node=None, line: Optional[int] = None,
               column: Optional[int] = None, code: Optional[str] = None, notify: bool = True):
        if node is not None and line is None:
            line, column = self.source_map.position(node) or (0, 0)
        message = Message(level, text, line or 0, column or 0, code)
        # every pass reports again
        if message in self.messages:
            return
        self.messages.append(message)
        if notify and self.listener is not None:
            self.listener(f"{level}: {text}")

    @property
    def exports(self):
        """First value of the chunk's last top-level return."""
        returns = [statement for statement in self.chunk.body.body if kind_of(statement) == 'Return']
        if not returns or not returns[-1].values:
            return UNIVERSAL
        value = self.annotations.value(returns[-1].values[0])
        return UNIVERSAL if value is None else value

    def reset(self):
        self.annotations.clear()
        self.scope = ScopeFacts()
        self.value_globals.clear()
        self.debug.clear()
        self.keyword_ids.clear()
        self.messages.clear()
        self.passes_run = 0


def _arity_text(low: int, high: Optional[int]) -> str:
    if high == low:
        return str(low)
    return f"{low} to {'infinity' if high is None else high}"


def call_arg_range(node) -> Tuple[int, Optional[int]]:
    """(min, max) number of values passed by a call; max None when open."""
    count = len(node.args)
    if kind_of(node) == 'Invoke':
        count += 1
    if node.args and kind_of(node.args[-1]) in OPEN_ENDED:
        return count - 1, None
    return count, count


def param_range(value) -> Optional[Tuple[int, Optional[int]]]:
    record = function_record(value)
    if record is not None:
        return record.param_range
    if isinstance(value, Builtin) and value.nargs is not None:
        return value.nargs
    return None


def arity_note(callee, node) -> Optional[str]:
    expected = param_range(callee)
    if expected is None:
        return None
    param_min, param_max = expected
    arg_min, arg_max = call_arg_range(node)
    if (arg_max if arg_max is not None else float('inf')) < param_min:
        note = "Too few arguments.  "
    elif arg_min > (param_max if param_max is not None else float('inf')):
        note = "Too many arguments.  "
    else:
        return None
    return f"{note}Expected {_arity_text(param_min, param_max)} but got {_arity_text(arg_min, arg_max)}."


class LuaInspector:
    """Runs inspections; shares one module cache across them."""

    def __init__(self, options: Optional[InspectOptions] = None, cache: Optional[ModuleCache] = None,
                 report: Optional[Callable[[str], None]] = None):
        self.options = options or InspectOptions()
        self.cache = cache if cache is not None else ModuleCache()
        self.report = report
        self.modules = ModuleInspector(self)

    def parse(self, source: str, name: str = '<string>') -> Inspection:
        """Parse source into a fresh, not yet inspected, Inspection."""
        source = remove_shebang(source)
        chunk = parse_source(source)
        tokens = tokenize(source)
        source_map = SourceMap(chunk, tokens, source)
        return Inspection(source=source, name=name, chunk=chunk, tokens=tokens,
                          source_map=source_map, options=self.options, listener=self.report)

    def inspect_source(self, source: str, name: str = '<string>') -> Inspection:
        return self.inspect(self.parse(source, name))

    def inspect_file(self, path) -> Inspection:
        path = Path(path)
        source = path.read_text(encoding='utf-8', errors='ignore')
        name = self.modules.module_name(path)
        if name is None or name in self.cache:
            return self.inspect_source(source, str(path))
        # the file is a module itself: requiring it from below is a loop
        with self.modules.inspecting(name):
            return self.inspect_source(source, str(path))

    def inspect(self, inspection: Inspection) -> Inspection:
        """Annotate a clean Inspection in place."""
        source_map = inspection.source_map
        annotations = inspection.annotations
        inspection.scope = ScopeBuilder(source_map, annotations).build()
        assign_identifiers(source_map, annotations)
        DirectiveEvaluator(source_map, annotations, self.options.directive_marker,
                           report=inspection.report).evaluate()
        self._infer(inspection)
        self._link_values(inspection)
        inspection.keyword_ids = KeywordGrouper(source_map).mark_related_keywords()
        logger.debug("%s: %d nodes annotated in %d passes", inspection.name, len(annotations),
                     inspection.passes_run)
        return inspection

    def uninspect(self, inspection: Inspection) -> Inspection:
        """Drop every annotation; the parsed tree is kept."""
        inspection.reset()
        return inspection

    def reinspect(self, inspection: Inspection) -> Inspection:
        return self.inspect(self.uninspect(inspection))

    def _infer(self, inspection: Inspection):
        interpreter = ValueInterpreter(inspection, self.modules)
        options = self.options
        limit = options.max_passes if options.fixpoint else options.passes
        previous = None
        for _ in range(limit):
            interpreter.infer_values()
            inspection.passes_run += 1
            if not options.fixpoint:
                continue
            current = inspection.annotations.fingerprint()
            if current == previous:
                break
            previous = current

    def _defined_global(self, inspection: Inspection, node, info) -> bool:
        if info.resolved_name is not None:
            path = [unescape_key(part) for part in info.resolved_name.split('.')]
            if lookup_path(path) is not None:
                return True
        if info.is_global and isinstance(node, Name):
            usage = inspection.scope.globals.get(node.id)
            if (usage is not None and usage.set) or node.id in inspection.value_globals:
                return True
        return False

    def _link_values(self, inspection: Inspection):
        annotations = inspection.annotations
        for node in inspection.source_map.nodes:
            kind = kind_of(node)
            if kind == 'Index':
                idx_info = annotations.get(node.idx)
                if idx_info is not None and idx_info.is_field:
                    idx_info.see_value = node
            elif kind == 'Method':
                annotations.info(node.name).see_value = node
            elif kind in ('Call', 'Invoke'):
                info = annotations.info(node)
                callee = info.callee_value if kind == 'Invoke' else annotations.value(node.func)
                if kind == 'Invoke':
                    func_info = annotations.info(node.func)
                    if func_info.value is None:
                        func_info.value = callee
                note = arity_note(callee, node)
                if note is not None:
                    info.note = note
            info = annotations.get(node)
            if info is not None and (info.is_global or info.is_field):
                info.defined_global = self._defined_global(inspection, node, info)


def analyze_file(path, options: Optional[InspectOptions] = None):
    """Inspect one file and return its findings."""
    path = Path(path)
    try:
        inspection = LuaInspector(options).inspect_file(path)
    except LuaSyntaxError as e:
        return [Finding(pattern_name='syntax-error', severity='error', line_num=e.line,
                        column=e.column, message=e.message)]
    return list_warnings(inspection)
