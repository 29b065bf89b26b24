from __future__ import annotations
import os

# Seconds a step may run before it is killed and reported as timed out.
DEFAULT_STEP_TIMEOUT = float(os.environ.get("TINYCI_STEP_TIMEOUT", "3600"))

# Upper bound on concurrently running job instances. Unset/0 means one
# worker per instance.
MAX_WORKERS = int(os.environ.get("TINYCI_MAX_WORKERS", "0")) or None

# Matrix axis whose value selects the executor backend for an instance.
BACKEND_AXIS = os.environ.get("TINYCI_BACKEND_AXIS", "os")

# Lines of captured output shown for a failed step.
TAIL_LINES = int(os.environ.get("TINYCI_TAIL_LINES", "30"))

# Exit codes of the CLI
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130
