import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple

import yaml

from table_impact.utils import NameUtils


@dataclass(frozen=True)
class NamingPolicy:
    """Naming conventions that classify types as business layer or data access.

    A type matches a classification when its simple name ends with one of the suffixes, or
    when its simple name or one of its enclosing type names contains one of the markers, so a
    nested 'OrderService.Helper' counts as business layer.
    """
    business_layer_markers: Tuple[str, ...] = ('Service', 'Facade', 'Manager')
    business_layer_suffixes: Tuple[str, ...] = ('BL', 'Logic')
    data_access_markers: Tuple[str, ...] = ('DbCmd', 'Repository')
    data_access_suffixes: Tuple[str, ...] = ('Cmd', 'DAO', 'Dao')

    def is_business_layer(self, type_name: str) -> bool:
        return self._matches(type_name, self.business_layer_markers, self.business_layer_suffixes)

    def is_data_access(self, type_name: str) -> bool:
        return self._matches(type_name, self.data_access_markers, self.data_access_suffixes)

    def is_business_method(self, method_id: str) -> bool:
        """Checks the enclosing type of a 'pkg.Class.method' identifier."""
        class_name = NameUtils.class_of(method_id)
        return bool(class_name) and self.is_business_layer(class_name)

    @staticmethod
    def _matches(type_name: str, markers: Sequence[str], suffixes: Sequence[str]) -> bool:
        simple = NameUtils.simple_name(type_name)
        if not simple:
            return False
        # Package segments are lower case; the rest are the type and its enclosing types
        type_names = [s for s in type_name.split('.') if s[:1].isupper()] or [simple]
        return (any(m in name for name in type_names for m in markers)
                or any(simple.endswith(s) for s in suffixes))

    @classmethod
    def from_yaml(cls, policy_file: Path, base: Optional['NamingPolicy'] = None,
                  logger: Optional[logging.Logger] = None) -> 'NamingPolicy':
        """Overrides the conventions of ``base`` with the lists found in a YAML file.

        Expected layout::

            business_layer:
              markers: [Service, Facade]
              suffixes: [BL]
            data_access:
              markers: [Repository]
              suffixes: [Dao]
        """
        logger = logger or logging.getLogger('table_impact.policy')
        base = base or cls()
        if not policy_file or not Path(policy_file).is_file():
            logger.debug(f"Naming policy file {policy_file} not found. Using configured conventions.")
            return base

        try:
            with Path(policy_file).open('r', encoding='utf-8') as file:
                definitions = yaml.safe_load(file) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load naming policy file {policy_file}: {e}")
            return base

        if not isinstance(definitions, dict):
            logger.error(f"Naming policy file {policy_file} must contain a mapping.")
            return base

        business = definitions.get('business_layer') or {}
        data_access = definitions.get('data_access') or {}
        policy = cls(
            business_layer_markers=tuple(business.get('markers', base.business_layer_markers)),
            business_layer_suffixes=tuple(business.get('suffixes', base.business_layer_suffixes)),
            data_access_markers=tuple(data_access.get('markers', base.data_access_markers)),
            data_access_suffixes=tuple(data_access.get('suffixes', base.data_access_suffixes)),
        )
        logger.info(f"Loaded naming policy from {policy_file}")
        return policy
