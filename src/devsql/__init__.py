"""devsql - SQL over coding-assistant logs and git repository metadata."""

__version__ = "0.1.0"
