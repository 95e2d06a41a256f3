"""Attach source comments to type and definition results."""

import re
from typing import Any, Dict, Optional

from ..engine import AnalysisEngine, SourceFile
from . import EnginePlugin

_SENTENCE_END = re.compile(r"(?<=[.!?])\s")


class DocCommentPlugin(EnginePlugin):
    """Adds the comment written above a declaration as ``doc``.

    Options:
        fullDocs: Keep the whole comment instead of its first sentence
    """

    name = "doc_comment"

    def install(self, engine: AnalysisEngine, options: Dict[str, Any]) -> None:
        full_docs = bool(options.get("fullDocs", False))

        def add_doc(
            result: Dict[str, Any], query: Dict[str, Any], source: Optional[SourceFile]
        ) -> Dict[str, Any]:
            if "doc" in result or ("name" not in result and "file" not in result):
                return result
            origin = engine.files.get(result.get("origin") or result.get("file", ""))
            if origin is None:
                return result
            name = result.get("name")
            if name is None and source is not None:
                word = source.word_at(source.resolve_offset(query.get("end")))
                name = word[2] if word else None
            decl = origin.declarations.get(name) if name else None
            if decl is None:
                return result
            doc = origin.comment_before(decl.start)
            if doc:
                if not full_docs:
                    doc = _SENTENCE_END.split(doc, maxsplit=1)[0]
                result = dict(result, doc=doc)
            return result

        engine.add_result_filter("type", add_doc)
        engine.add_result_filter("definition", add_doc)
