"""Complete string literals that already appear in the file."""

import logging
from typing import Any, Dict, Optional

from ..engine import AnalysisEngine, SourceFile
from . import EnginePlugin

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 15


class CompleteStringsPlugin(EnginePlugin):
    """When the cursor is inside a string, offer matching literals.

    Options:
        maxLength: Longest literal offered as a completion (default 15)
    """

    name = "complete_strings"

    def install(self, engine: AnalysisEngine, options: Dict[str, Any]) -> None:
        max_length = options.get("maxLength", DEFAULT_MAX_LENGTH)
        if isinstance(max_length, bool) or not isinstance(max_length, (int, float)):
            logger.warning(
                f"Ignoring invalid maxLength {max_length!r} for plugin {self.name}, "
                f"using {DEFAULT_MAX_LENGTH}"
            )
            max_length = DEFAULT_MAX_LENGTH

        def complete(
            result: Dict[str, Any], query: Dict[str, Any], source: Optional[SourceFile]
        ) -> Dict[str, Any]:
            if source is None:
                return result
            end = source.resolve_offset(query.get("end"))
            inside = source.string_at(end)
            if inside is None:
                return result
            start, prefix = inside

            seen = set()
            completions = []
            for literal in sorted(source.string_literals()):
                if literal in seen or literal == prefix or len(literal) > max_length:
                    continue
                if literal.startswith(prefix):
                    seen.add(literal)
                    completions.append(literal)

            if query.get("types") or query.get("docs"):
                completions = [{"name": c, "type": "string"} for c in completions]
            return dict(result, start=start, end=end, completions=completions)

        engine.add_result_filter("completions", complete)
