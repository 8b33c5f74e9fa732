"""mindflow: local-first capture store, backend sync and spaced-repetition review."""

from mindflow.consts import VERSION

__version__ = VERSION
