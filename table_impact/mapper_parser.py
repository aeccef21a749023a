import logging
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, List, Optional

from table_impact.models import STATEMENT_KINDS, MapperStatement

_WHITESPACE = re.compile(r'\s+')


class MapperStatementParser:
    """Parses one declarative mapper XML file into MapperStatement records."""

    def __init__(self, resolve_includes: bool = False, logger: Optional[logging.Logger] = None):
        self.resolve_includes = resolve_includes
        self.logger = logger or logging.getLogger('table_impact.mapper_parser')

    def parse(self, mapper_path: Path, module_name: str) -> List[MapperStatement]:
        """Returns the file's statements; malformed files and files without namespace yield none."""
        try:
            root = ET.parse(mapper_path).getroot()
        except ET.ParseError as e:
            self.logger.error(f"Malformed mapper XML {mapper_path}: {e}")
            return []
        except OSError as e:
            self.logger.error(f"Error reading mapper XML {mapper_path}: {e}")
            return []

        namespace = (root.get('namespace') or '').strip()
        if not namespace:
            self.logger.warning(f"No namespace found in {mapper_path}. Skipping file.")
            return []

        fragments = self._sql_fragments(root, namespace) if self.resolve_includes else {}
        statements = []
        for kind in STATEMENT_KINDS:
            for element in root.iter(kind):
                statement_id = (element.get('id') or '').strip()
                if not statement_id:
                    continue
                sql = self._element_text(element, fragments, namespace)
                self.logger.debug(f"Extracted SQL for '{namespace}.{statement_id}': {sql}")
                statements.append(MapperStatement(
                    module_name=module_name,
                    mapper_path=str(mapper_path),
                    namespace=namespace,
                    statement_id=statement_id,
                    kind=kind,
                    raw_sql=sql,
                ))
        return statements

    @staticmethod
    def _sql_fragments(root: ET.Element, namespace: str) -> Dict[str, ET.Element]:
        fragments = {}
        for element in root.iter('sql'):
            fragment_id = element.get('id')
            if fragment_id:
                fragments[fragment_id] = element
                fragments[f"{namespace}.{fragment_id}"] = element
        return fragments

    def _element_text(self, element: ET.Element, fragments: Dict[str, ET.Element], namespace: str) -> str:
        """Concatenates all descendant text in document order, collapsing whitespace."""
        parts: List[str] = []
        self._collect_text(element, fragments, parts, set())
        return _WHITESPACE.sub(' ', ' '.join(parts)).strip()

    def _collect_text(self, element: ET.Element, fragments: Dict[str, ET.Element],
                      parts: List[str], expanding: set):
        if element.text and element.text.strip():
            parts.append(element.text.strip())
        for child in element:
            refid = child.get('refid') if child.tag == 'include' else None
            if refid and refid in fragments and refid not in expanding:
                expanding.add(refid)
                self._collect_text(fragments[refid], fragments, parts, expanding)
                expanding.discard(refid)
            elif isinstance(child.tag, str):
                self._collect_text(child, fragments, parts, expanding)
            if child.tail and child.tail.strip():
                parts.append(child.tail.strip())
