"""On-disk artifacts: overwrite-on-flush JSON snapshots and the append-only call-site log.

Write failures are logged and never raised; the pipeline keeps working in memory.
"""
import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

SNAPSHOT_VERSION = 1


def tree_fingerprint(paths: Iterable[Path], content: bool = True, extra: Iterable[str] = ()) -> str:
    """Hashes a set of files by path and either content or size/mtime."""
    digest = hashlib.sha256()
    for token in extra:
        digest.update(token.encode('utf-8'))
        digest.update(b'\0')
    for path in sorted({Path(p) for p in paths}):
        digest.update(str(path).encode('utf-8'))
        digest.update(b'\0')
        try:
            if content:
                digest.update(path.read_bytes())
            else:
                stat = path.stat()
                digest.update(f"{stat.st_size}:{stat.st_mtime_ns}".encode('ascii'))
        except OSError:
            digest.update(b'<missing>')
        digest.update(b'\0')
    return digest.hexdigest()


class SnapshotCache:
    """A JSON snapshot fully overwritten on every flush (last writer wins, no atomic rename)."""

    def __init__(self, path: Path, kind: str, validation: str = 'fingerprint',
                 logger: Optional[logging.Logger] = None):
        self.path = Path(path)
        self.kind = kind
        self.validation = validation
        self.logger = logger or logging.getLogger('table_impact.cache')

    def load(self, fingerprint: Optional[str] = None) -> Optional[Any]:
        """Returns the cached payload, or None when there is nothing usable.

        A corrupt or truncated file is deleted. In 'fingerprint' mode only a completed
        snapshot whose fingerprint matches is accepted; in 'presence' mode any non-empty
        snapshot is returned verbatim.
        """
        if not self.path.exists():
            self.logger.info(f"Cache file {self.path} not found. Building {self.kind} from scratch.")
            return None

        try:
            with self.path.open('r', encoding='utf-8') as f:
                envelope = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self.logger.error(f"Cache file is empty or corrupted. Deleting: {self.path} ({e})")
            self.delete()
            return None
        except OSError as e:
            self.logger.error(f"Failed to load {self.kind} cache from {self.path}: {e}")
            return None

        if not isinstance(envelope, dict) or 'data' not in envelope or envelope.get('kind') != self.kind:
            self.logger.error(f"Cache file {self.path} does not hold a {self.kind} snapshot. Deleting it.")
            self.delete()
            return None

        data = envelope['data']
        if not data:
            return None
        if self.validation == 'fingerprint':
            if not envelope.get('complete'):
                self.logger.info(f"Cache file {self.path} holds an incomplete {self.kind} snapshot. Rebuilding.")
                return None
            if fingerprint is not None and envelope.get('fingerprint') != fingerprint:
                self.logger.info(f"Sources changed since {self.path} was written. Rebuilding {self.kind}.")
                return None

        self.logger.info(f"Loaded {self.kind} from {self.path}, skipping indexing.")
        return data

    def save(self, data: Any, fingerprint: Optional[str] = None, complete: bool = True) -> bool:
        envelope = {
            'kind': self.kind,
            'version': SNAPSHOT_VERSION,
            'fingerprint': fingerprint,
            'complete': complete,
            'data': data,
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open('w', encoding='utf-8') as f:
                json.dump(envelope, f, ensure_ascii=False)
            self.logger.debug(f"Saved {self.kind} snapshot to {self.path} (complete={complete})")
            return True
        except (OSError, TypeError, ValueError) as e:
            self.logger.error(f"Failed to save {self.kind} to {self.path}: {e}")
            return False

    def delete(self):
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.error(f"Failed to delete cache file {self.path}: {e}")


class CallSiteLog:
    """Append-only JSON Lines log of call sites, written in fixed-size batches.

    Each batch is appended and fsynced, so a crash loses at most the buffered records.
    """

    def __init__(self, path: Path, batch_size: int = 1000, logger: Optional[logging.Logger] = None):
        self.path = Path(path)
        self.batch_size = batch_size
        self.logger = logger or logging.getLogger('table_impact.cache')
        self._buffer: List[str] = []
        self.records_written = 0

    def reset(self):
        """Starts a fresh log for a new build."""
        self._buffer.clear()
        self.records_written = 0
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text('', encoding='utf-8')
        except OSError as e:
            self.logger.error(f"Failed to reset call-site log {self.path}: {e}")

    def append(self, record: Dict[str, Any]):
        self._buffer.append(json.dumps(record, ensure_ascii=False))
        if len(self._buffer) >= self.batch_size:
            self.flush()

    def flush(self):
        if not self._buffer:
            return
        lines, self._buffer = self._buffer, []
        try:
            with self.path.open('a', encoding='utf-8') as f:
                f.write('\n'.join(lines) + '\n')
                f.flush()
                os.fsync(f.fileno())
            self.records_written += len(lines)
        except OSError as e:
            self.logger.error(f"Failed to append {len(lines)} call sites to {self.path}: {e}")

    def replay(self) -> Iterator[Dict[str, Any]]:
        """Yields the logged records, skipping a torn or malformed line."""
        if not self.path.exists():
            return
        with self.path.open('r', encoding='utf-8') as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    self.logger.warning(f"Skipping malformed record at {self.path}:{line_number}")
