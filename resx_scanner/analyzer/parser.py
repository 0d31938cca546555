"""Tree-sitter parser for C# source analysis."""
from tree_sitter import Language, Parser, Tree
import tree_sitter_c_sharp as tscsharp


class LanguageParser:
    """C# parser using the tree-sitter v0.22+ API.

    A Parser instance is not thread-safe; keep one per thread (the scanner
    parses on the event loop thread only).
    """

    SUPPORTED_LANGUAGES = ('c_sharp',)

    def __init__(self, language: str = 'c_sharp'):
        """Initialize parser for the given language.

        Args:
            language: Only 'c_sharp' is supported

        Raises:
            ValueError: If language is not supported
        """
        self.language = language
        self.parser = self._create_parser()

    def _create_parser(self) -> Parser:
        """Factory method using the Parser(Language(capsule)) constructor."""
        if self.language not in self.SUPPORTED_LANGUAGES:
            raise ValueError(f"Unsupported language: {self.language}")

        return Parser(Language(tscsharp.language()))

    def parse_source(self, source_code: bytes | str) -> Tree:
        """Parse in-memory source code.

        Args:
            source_code: Source bytes (str is encoded as UTF-8)

        Returns:
            Parsed Tree object. Syntax errors become ERROR nodes, never exceptions.
        """
        if isinstance(source_code, str):
            source_code = source_code.encode('utf-8')
        return self.parser.parse(source_code)
