"""Result rendering."""

from devsql.output.encoders import FORMATS, encode, scalar_text, unique_names

__all__ = ["FORMATS", "encode", "scalar_text", "unique_names"]
