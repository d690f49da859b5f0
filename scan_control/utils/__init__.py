"""Cross-cutting utilities (lowest dependency layer).

This package provides shared primitives for:
    - Atomic I/O and YAML loading (fs)
    - Job-file validation (validators)
    - Unified logging (logging_config)

Only ``fs`` is imported eagerly; ``validators`` depends on the config
layer, which itself reads YAML through ``fs``.

Convenience imports:
    from scan_control.utils import fs
    from scan_control.utils.logging_config import setup_logging
"""

from . import fs

__all__ = ["fs"]
