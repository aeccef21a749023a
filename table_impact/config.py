# config.py
from pathlib import Path

# Directory that holds the index caches and the call-site log.
# Relative paths are resolved from where the analyzer is executed.
CACHE_DIR = Path("./.impact_cache")

# Cache artifacts (their presence changes what the next run does)
TABLE_INDEX_FILE = "table_xml_mapping.json"
REPOSITORY_MAPPING_FILE = "table_repo_mapping.json"
CALL_SITE_LOG_FILE = "call_references.jsonl"

# "fingerprint": reuse a cache only if it was completed and the scanned files did not change
# "presence": reuse any non-empty cache as is (delete the cache files after editing sources)
CACHE_VALIDATION = "fingerprint"

# Snapshot flush points
TABLE_INDEX_FLUSH_EVERY = 1000       # distinct tables added since the last flush
REPOSITORY_MAPPING_FLUSH_EVERY = 1000  # tables linked since the last flush
CALL_SITE_LOG_BATCH_SIZE = 1000      # call sites buffered before an append

# Module layout
MODULE_DESCRIPTOR = "pom.xml"
SOURCE_DIR = "src"
RESOURCE_DIRS = ["src/main/resources", "src/resources"]
EXCLUDED_DIRS = ["target", "build", "bin", "out", "node_modules", ".git", ".svn", ".idea", ".impact_cache"]

# A mapper XML is indexed only if its module-relative path contains one of these markers
MAPPER_PATH_MARKERS = ["src/com/", "src/main/java/", "src/main/resources/"]

# Encoding used to read Java sources (undecodable bytes are replaced)
SOURCE_ENCODING = "utf-8"

# Inline <include refid="..."/> fragments from <sql id="..."> blocks of the same mapper
RESOLVE_SQL_INCLUDES = False

# Parallel indexing. WORKERS = None uses the CPU count, 1 disables parallelism.
WORKERS = None
EXECUTOR = "process"  # "process" or "thread"

# Naming conventions (substring markers and suffixes matched against simple type names)
BUSINESS_LAYER_MARKERS = ["Service", "Facade", "Manager"]
BUSINESS_LAYER_SUFFIXES = ["BL", "Logic"]
DATA_ACCESS_MARKERS = ["DbCmd", "Repository"]
DATA_ACCESS_SUFFIXES = ["Cmd", "DAO", "Dao"]

# Optional YAML file overriding the naming conventions above
NAMING_POLICY_FILE = Path("naming_policy.yml")

# Logging settings
LOG_LEVEL = "INFO"
LOG_FORMAT = '%(message)s'
