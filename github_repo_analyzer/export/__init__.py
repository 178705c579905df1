from .chunking import chunk
from .document import to_flat_text, to_json, to_structured_document
from .writer import write_report

__all__ = ["chunk", "to_flat_text", "to_json", "to_structured_document", "write_report"]
