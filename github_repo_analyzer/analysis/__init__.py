from .engine import analyze, crate_roots
from .python import PythonParser
from .rust import RustParser

__all__ = ["analyze", "crate_roots", "PythonParser", "RustParser"]
