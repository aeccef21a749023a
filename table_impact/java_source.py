import logging
from pathlib import Path
from typing import List, Optional, Set, Tuple

import javalang


def type_spelling(type_node) -> str:
    """Returns the dotted spelling of a javalang type node ('Map.Entry', 'java.util.List', 'int')."""
    if type_node is None:
        return ''
    if isinstance(type_node, str):
        return type_node
    names = []
    current = type_node
    while current is not None:
        names.append(current.name)
        current = getattr(current, 'sub_type', None)
    return '.'.join(names)


def body_declarations(type_decl) -> List:
    """Member declarations of a class, interface, enum or annotation type."""
    body = type_decl.body
    if body is None:
        return []
    if isinstance(body, list):
        return body
    # Enum bodies keep their members next to the constants
    return list(getattr(body, 'declarations', None) or [])


class JavaSourceParser:
    """Reads and parses Java source files with javalang; unparsable files yield None."""

    def __init__(self, encoding: str = 'utf-8', logger: Optional[logging.Logger] = None):
        self.encoding = encoding
        self.logger = logger or logging.getLogger('table_impact.java_source')

    def read(self, path: Path) -> Optional[str]:
        try:
            return Path(path).read_text(encoding=self.encoding, errors='replace')
        except OSError as e:
            self.logger.error(f"Error reading source file {path}: {e}")
            return None

    def parse(self, path: Path):
        content = self.read(path)
        if content is None:
            return None
        try:
            return javalang.parse.parse(content)
        except javalang.parser.JavaSyntaxError as e:
            self.logger.warning(f"Syntax error in {path}: {getattr(e, 'description', e)}")
        except javalang.tokenizer.LexerError as e:
            self.logger.warning(f"Could not tokenize {path}: {e}")
        except (IndexError, TypeError, AttributeError, StopIteration) as e:
            # javalang occasionally trips over constructs it does not support
            self.logger.warning(f"Parser failure in {path}: {e!r}")
        return None

    def declared_method_names(self, path: Path) -> Optional[Set[str]]:
        """Names of every method declared anywhere in the file, or None if it cannot be parsed."""
        tree = self.parse(path)
        if tree is None:
            return None
        return {node.name for _, node in tree.filter(javalang.tree.MethodDeclaration)}


def declared_method_names_worker(item: Tuple[str, str]) -> Tuple[str, Optional[List[str]]]:
    """Pool entry point: (path, encoding) -> (path, sorted method names or None)."""
    path, encoding = item
    names = JavaSourceParser(encoding).declared_method_names(Path(path))
    return path, sorted(names) if names is not None else None
