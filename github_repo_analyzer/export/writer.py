"""Write an AnalysisReport to a directory."""

import logging
from pathlib import Path

from ..models import AnalysisReport
from .document import to_json

logger = logging.getLogger(__name__)

README = """\
# Repository Analysis Output

Analysis results for {repository}.

## Files
- `complete_analysis.txt`: the whole analysis as plain text, one block per item
- `analysis.json`: the structured analysis document
- `chunks/`: `complete_analysis.txt` split at block boundaries into {count} chunk(s)
  of at most {max_bytes} bytes each (a single oversized item block may exceed it)

## Format
Blocks are separated by one blank line. The first block summarizes the
repository; each file starts with a `## File:` block followed by one `###`
block per declared item.
"""


def write_report(report: AnalysisReport, output_dir: Path, max_bytes: int | None = None) -> Path:
    output_dir = Path(output_dir)
    chunks_dir = output_dir / "chunks"
    chunks_dir.mkdir(parents=True, exist_ok=True)
    for stale in chunks_dir.glob("chunk_*.txt"):
        stale.unlink()

    (output_dir / "analysis.json").write_text(to_json(report.document), encoding="utf-8")
    (output_dir / "complete_analysis.txt").write_text(report.flat_text, encoding="utf-8")
    for c in report.chunks:
        (chunks_dir / f"chunk_{c.index}.txt").write_text(c.text, encoding="utf-8")

    ref = report.graph.ref
    (output_dir / "README.md").write_text(
        README.format(
            repository=str(ref) if ref else "an unknown repository",
            count=len(report.chunks),
            max_bytes=max_bytes if max_bytes is not None else max((c.size for c in report.chunks), default=0),
        ),
        encoding="utf-8",
    )
    logger.info("Wrote analysis with %d chunks to %s", len(report.chunks), output_dir)
    return output_dir
