import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Set

from table_impact.models import Module


def walk_files(root: Path, suffix: str, excluded_dirs: Set[str],
               pruned_roots: Iterable[Path] = ()) -> Iterator[Path]:
    """Yields files under ``root`` ending with ``suffix``, skipping excluded and pruned directories."""
    pruned = {Path(p) for p in pruned_roots}
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        dirnames[:] = sorted(
            d for d in dirnames
            if d not in excluded_dirs and current / d not in pruned
        )
        for filename in sorted(filenames):
            if filename.endswith(suffix):
                yield current / filename


class ModuleScanner:
    """Discovers build modules: every directory holding a module descriptor is one module."""

    def __init__(self, config, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger('table_impact.scanner')

    def scan(self, root_path: Path) -> List[Module]:
        root_path = Path(root_path)
        if not root_path.is_dir():
            self.logger.error(f"Root path {root_path} is not a directory.")
            return []

        module_roots = []
        for dirpath, dirnames, filenames in os.walk(root_path):
            dirnames[:] = sorted(d for d in dirnames if d not in self.config.excluded_dirs)
            if self.config.module_descriptor in filenames:
                module_roots.append(Path(dirpath))

        if len(module_roots) > 1 and root_path in module_roots:
            # An aggregator descriptor at the root only lists the child modules
            module_roots.remove(root_path)
        if not module_roots:
            self.logger.warning(
                f"No {self.config.module_descriptor} found under {root_path}. Treating the root as a single module."
            )
            module_roots = [root_path]

        modules = [self._to_module(path) for path in module_roots]
        self.logger.info(f"Found {len(modules)} modules under {root_path}")
        for module in modules:
            self.logger.debug(f"  Module '{module.name}' at {module.root_path}")
        return modules

    def _to_module(self, module_root: Path) -> Module:
        source_path = module_root / self.config.source_dir
        resource_path = next(
            (module_root / d for d in self.config.resource_dirs if (module_root / d).is_dir()),
            None
        )
        return Module(
            name=module_root.name,
            root_path=module_root,
            source_path=source_path if source_path.is_dir() else None,
            resource_path=resource_path,
        )


class MapperLocator:
    """Finds the mapper XML files of a module according to the path inclusion markers."""

    def __init__(self, config, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger('table_impact.scanner')

    def locate(self, module: Module, all_modules: Sequence[Module] = ()) -> List[Path]:
        nested = self._nested_roots(module, all_modules)
        mapper_files = []
        for path in walk_files(module.root_path, '.xml', self.config.excluded_dirs, nested):
            if path.name == self.config.module_descriptor:
                continue
            relative = path.relative_to(module.root_path).as_posix()
            if any(marker in relative for marker in self.config.mapper_path_markers):
                mapper_files.append(path)
        self.logger.debug(f"Module '{module.name}': {len(mapper_files)} candidate mapper files")
        return mapper_files

    @staticmethod
    def _nested_roots(module: Module, all_modules: Sequence[Module]) -> List[Path]:
        return [
            other.root_path for other in all_modules
            if other.root_path != module.root_path and module.root_path in other.root_path.parents
        ]


def find_source_files(modules: Sequence[Module], excluded_dirs: Set[str],
                      logger: Optional[logging.Logger] = None) -> List[Path]:
    """Collects every .java file under the modules' source subtrees, de-duplicated."""
    logger = logger or logging.getLogger('table_impact.scanner')
    seen = set()
    source_files = []
    for module in modules:
        if module.source_path is None:
            logger.debug(f"Module '{module.name}' has no source directory. Skipping.")
            continue
        for path in walk_files(module.source_path, '.java', excluded_dirs):
            key = path.resolve()
            if key not in seen:
                seen.add(key)
                source_files.append(path)
    logger.info(f"Found {len(source_files)} Java source files")
    return source_files
