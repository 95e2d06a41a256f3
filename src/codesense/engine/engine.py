"""Analysis engine answering completion, type, definition and reference queries.

The engine keeps a symbol table built from library definitions plus the
declarations scanned from project files. Requests are JSON-like documents::

    {"query": {"type": "completions", "file": "app.js", "end": 42},
     "files": [{"type": "full", "name": "app.js", "text": "..."}]}
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
)

from .source import SourceFile

if TYPE_CHECKING:
    from ..plugins import PluginHandle

logger = logging.getLogger(__name__)

FileReader = Callable[[str], Awaitable[str]]
QueryHandler = Callable[["AnalysisEngine", Dict[str, Any], Optional[SourceFile]], Any]
ResultFilter = Callable[[Dict[str, Any], Dict[str, Any], Optional[SourceFile]], Any]


class EngineError(Exception):
    """Error reported by the engine for a single request."""


@dataclass
class LibrarySymbol:
    """A global name contributed by a library definition."""

    name: str
    type: str
    origin: str
    doc: Optional[str] = None
    url: Optional[str] = None


class AnalysisEngine:
    """Single engine instance shared by every request of a project.

    Args:
        file_reader: Coroutine function returning the text of a project file
        definitions: Parsed library definitions, later ones shadowing earlier
        plugins: Resolved plugins to install, keyed by plugin name
        debug: Log every request and its outcome
        project_dir: Project root, reported back by queries
        async_mode: Must be true, synchronous reading is not supported
    """

    def __init__(
        self,
        file_reader: FileReader,
        definitions: Optional[List[Dict[str, Any]]] = None,
        plugins: Optional[Mapping[str, "PluginHandle"]] = None,
        debug: bool = False,
        project_dir: str = ".",
        async_mode: bool = True,
    ):
        if not async_mode:
            raise ValueError("AnalysisEngine only supports asynchronous file reading")
        self.file_reader = file_reader
        self.debug = debug
        self.project_dir = project_dir

        self.files: Dict[str, SourceFile] = {}
        self.pending: List[str] = []
        self.globals: Dict[str, LibrarySymbol] = {}
        self.query_types: Dict[str, QueryHandler] = {
            "completions": _find_completions,
            "type": _find_type,
            "definition": _find_definition,
            "refs": _find_refs,
            "files": _list_files,
        }
        self.result_filters: Dict[str, List[ResultFilter]] = {}
        self._lock = asyncio.Lock()

        for definition in definitions or []:
            self.add_definition(definition)

        for name, handle in (plugins or {}).items():
            logger.debug(f"Installing plugin {name}")
            handle.plugin.install(self, handle.options)

    # =============================================================================
    # Extension points
    # =============================================================================

    def add_definition(self, definition: Dict[str, Any]) -> None:
        """Merge a library definition into the global symbol table."""
        origin = str(definition.get("!name", "unknown"))
        for name, value in definition.items():
            if name.startswith("!"):
                continue
            if isinstance(value, dict):
                symbol = LibrarySymbol(
                    name=name,
                    type=str(value.get("!type", "?")),
                    origin=origin,
                    doc=value.get("!doc"),
                    url=value.get("!url"),
                )
            else:
                symbol = LibrarySymbol(name=name, type=str(value), origin=origin)
            self.globals[name] = symbol

    def add_query_type(self, name: str, handler: QueryHandler) -> None:
        self.query_types[name] = handler

    def add_result_filter(self, query_type: str, result_filter: ResultFilter) -> None:
        """Register a function rewriting results of one query type."""
        self.result_filters.setdefault(query_type, []).append(result_filter)

    # =============================================================================
    # Files
    # =============================================================================

    def add_file(self, name: str, text: Optional[str] = None) -> None:
        """Register a file; without text it is read before the next request."""
        if text is None:
            if name not in self.files and name not in self.pending:
                self.pending.append(name)
            return
        self.files[name] = SourceFile(name, text)

    def del_file(self, name: str) -> None:
        self.files.pop(name, None)

    async def flush(self) -> None:
        """Read every registered file that has no text yet."""
        while self.pending:
            name = self.pending.pop(0)
            try:
                await self._load_file(name)
            except EngineError as e:
                logger.warning(f"Could not load {name}: {e}")

    async def _load_file(self, name: str) -> SourceFile:
        try:
            text = await self.file_reader(name)
        except OSError as e:
            raise EngineError(f"Could not read file {name}: {e.strerror or e}")
        source = SourceFile(name, text)
        self.files[name] = source
        return source

    # =============================================================================
    # Requests
    # =============================================================================

    async def request(self, doc: Any) -> Any:
        """Run one request document and return its result.

        Raises:
            EngineError: If the document is invalid or the query fails
        """
        async with self._lock:
            try:
                result = await self._run(doc)
            except EngineError as e:
                if self.debug:
                    logger.debug(f"Request failed: {e}")
                raise
            if self.debug:
                logger.debug(f"Request succeeded: {(doc.get('query') or {}).get('type')}")
            return result

    async def _run(self, doc: Any) -> Any:
        if not isinstance(doc, dict):
            raise EngineError("Request document must be a JSON object")
        query = doc.get("query")
        files = doc.get("files", [])
        if query is not None and not isinstance(query, dict):
            raise EngineError("Query must be an object")
        if not isinstance(files, list):
            raise EngineError("Files must be an array")

        for item in files:
            self._apply_file_update(item)

        await self.flush()

        if query is None:
            if not files:
                raise EngineError("Missing query")
            return {}

        query_type = query.get("type")
        if not isinstance(query_type, str):
            raise EngineError("Missing query type")
        handler = self.query_types.get(query_type)
        if handler is None:
            raise EngineError(f"No query type '{query_type}' defined")

        source = None
        if "file" in query:
            source = await self._find_file(query["file"])

        try:
            result = handler(self, query, source)
            if asyncio.iscoroutine(result):
                result = await result
            for result_filter in self.result_filters.get(query_type, []):
                result = result_filter(result, query, source)
        except ValueError as e:
            raise EngineError(str(e))
        return result

    def _apply_file_update(self, item: Any) -> None:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            raise EngineError("Each file must be an object with a name")
        kind = item.get("type")
        if kind == "full":
            text = item.get("text")
            if not isinstance(text, str):
                raise EngineError(f"Full file {item['name']} must carry text")
            self.add_file(item["name"], text)
        elif kind == "delete":
            self.del_file(item["name"])
        else:
            raise EngineError(f"Unsupported file type: {kind}")

    async def _find_file(self, name: Any) -> SourceFile:
        if not isinstance(name, str):
            raise EngineError("Query file must be a string")
        source = self.files.get(name)
        if source is not None:
            return source
        return await self._load_file(name)


# =============================================================================
# Built-in query types
# =============================================================================


def _require_source(query: Dict[str, Any], source: Optional[SourceFile]) -> SourceFile:
    if source is None:
        raise EngineError(f"Query type '{query.get('type')}' needs a file")
    return source


def _declared_names(engine: AnalysisEngine) -> Dict[str, str]:
    names: Dict[str, str] = {}
    for source in engine.files.values():
        for decl in source.declarations.values():
            names.setdefault(decl.name, decl.type)
    return names


def _find_completions(
    engine: AnalysisEngine, query: Dict[str, Any], source: Optional[SourceFile]
) -> Dict[str, Any]:
    source = _require_source(query, source)
    end = source.resolve_offset(query.get("end"))
    start, prefix = source.word_before(end)
    case_insensitive = bool(query.get("caseInsensitive"))
    match_prefix = prefix.lower() if case_insensitive else prefix

    candidates: Dict[str, Dict[str, Any]] = {}
    for name, decl_type in _declared_names(engine).items():
        candidates[name] = {"name": name, "type": decl_type}
    for name, symbol in engine.globals.items():
        candidates.setdefault(
            name, {"name": name, "type": symbol.type, "doc": symbol.doc}
        )

    matched = []
    for name in sorted(candidates):
        if name == prefix:
            continue
        key = name.lower() if case_insensitive else name
        if key.startswith(match_prefix):
            matched.append(candidates[name])

    if query.get("types") or query.get("docs"):
        completions: List[Any] = []
        for entry in matched:
            item = {"name": entry["name"]}
            if query.get("types"):
                item["type"] = entry["type"]
            if query.get("docs") and entry.get("doc"):
                item["doc"] = entry["doc"]
            completions.append(item)
    else:
        completions = [entry["name"] for entry in matched]

    return {"start": start, "end": end, "isProperty": False, "completions": completions}


def _word_or_fail(source: SourceFile, query: Dict[str, Any]):
    end = source.resolve_offset(query.get("end"))
    word = source.word_at(end)
    if word is None:
        raise EngineError("No expression at the given position")
    return word


def _find_type(
    engine: AnalysisEngine, query: Dict[str, Any], source: Optional[SourceFile]
) -> Dict[str, Any]:
    source = _require_source(query, source)
    _, _, name = _word_or_fail(source, query)

    for candidate in [source] + [f for f in engine.files.values() if f is not source]:
        decl = candidate.declarations.get(name)
        if decl is not None:
            return {"type": decl.type, "name": name, "origin": candidate.name}

    symbol = engine.globals.get(name)
    if symbol is not None:
        result: Dict[str, Any] = {"type": symbol.type, "name": name, "origin": symbol.origin}
        if symbol.doc:
            result["doc"] = symbol.doc
        if symbol.url:
            result["url"] = symbol.url
        return result

    return {"type": "?", "name": name}


def _find_definition(
    engine: AnalysisEngine, query: Dict[str, Any], source: Optional[SourceFile]
) -> Dict[str, Any]:
    source = _require_source(query, source)
    _, _, name = _word_or_fail(source, query)

    for candidate in [source] + [f for f in engine.files.values() if f is not source]:
        decl = candidate.declarations.get(name)
        if decl is not None:
            return {
                "file": candidate.name,
                "start": decl.start,
                "end": decl.end,
                "origin": candidate.name,
            }

    symbol = engine.globals.get(name)
    if symbol is not None:
        result: Dict[str, Any] = {"origin": symbol.origin}
        if symbol.doc:
            result["doc"] = symbol.doc
        if symbol.url:
            result["url"] = symbol.url
        return result

    return {}


def _find_refs(
    engine: AnalysisEngine, query: Dict[str, Any], source: Optional[SourceFile]
) -> Dict[str, Any]:
    source = _require_source(query, source)
    _, _, name = _word_or_fail(source, query)
    refs = []
    for name_of_file in sorted(engine.files):
        for start, end in engine.files[name_of_file].occurrences(name):
            refs.append({"file": name_of_file, "start": start, "end": end})
    return {"name": name, "refs": refs}


def _list_files(
    engine: AnalysisEngine, query: Dict[str, Any], source: Optional[SourceFile]
) -> Dict[str, Any]:
    return {"files": sorted(engine.files)}
