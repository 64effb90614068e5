"""Source readers: JSON/JSONL files and assistant data layouts."""

from devsql.sources.jsonl import FileSnapshot, ReadReport, iter_jsonl, load_json_document

__all__ = ["FileSnapshot", "ReadReport", "iter_jsonl", "load_json_document"]
