DREAD_LENS_VERSION = "0.1.0-dev"

# Pack format version: bump when the on-disk layout or fact table schemas change.
FORMAT_VERSION = "v1"

# Views schema version: bump when rendered view outputs or _lens metadata shape changes.
VIEWS_SCHEMA_VERSION = "v1"

PACK_DIRNAME = "dread.lens"

# Only NSO images loaded by Ghidra's Switch loader are analyzed.
SUPPORTED_EXECUTABLE_FORMAT = "Nintendo Switch Binary"

# AnalysisPriority.FUNCTION_ID_ANALYSIS; each analyzer stage runs one step after it.
FUNCTION_ID_ANALYSIS_PRIORITY = 800

DEFAULT_FORCE_REANALYSIS = 0
DEFAULT_FORCE_RENAME = 0
DEFAULT_ALLOW_UNHASHED_BUILDS = 1
DEFAULT_MAX_FUNCTIONS = 0
