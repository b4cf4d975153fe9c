"""Test fixtures for doc-indexer."""

from __future__ import annotations

import os
import sys
import zipfile
from pathlib import Path
from typing import Callable, Sequence

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

import fitz  # noqa: E402

from doc_indexer.core.config import Settings, get_settings  # noqa: E402
from doc_indexer.ingest.embeddings import clear_embedder_cache  # noqa: E402
from doc_indexer.ingest.types import Chunk  # noqa: E402
from doc_indexer.store.base import Point  # noqa: E402
from doc_indexer.store.memory import InMemoryVectorStore  # noqa: E402


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset cached singletons and environment between tests."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.delenv("DOCIX_CONFIG", raising=False)
    for key in list(os.environ):
        if key.startswith("DOCIX_") and key != "DOCIX_LOG_LEVEL":
            monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    clear_embedder_cache()
    yield
    get_settings.cache_clear()
    clear_embedder_cache()


class FakeEmbedder:
    """Deterministic embedder that records every batch it receives."""

    def __init__(self, dim: int = 8, bad: dict[str, int] | None = None) -> None:
        self.dim = dim
        self.bad = bad or {}
        self.calls: list[list[str]] = []

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        vectors = []
        for text in texts:
            size = self.dim
            for marker, wrong_size in self.bad.items():
                if marker in text:
                    size = wrong_size
            seed = float(len(text) % 97 + 1)
            vectors.append([seed] + [1.0] * (size - 1))
        return vectors


class FlakyStore(InMemoryVectorStore):
    """In-memory store whose upserts fail on demand.

    ``failures`` initial upsert calls raise; afterwards ``fail_when(call_number)``
    decides whether a call raises.
    """

    def __init__(self, failures: int = 0, fail_when: Callable[[int], bool] | None = None) -> None:
        super().__init__()
        self.failures = failures
        self.fail_when = fail_when
        self.upsert_calls: list[int] = []

    def upsert(self, name: str, points: Sequence[Point], wait: bool = True) -> None:
        self.upsert_calls.append(len(points))
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("transient failure")
        if self.fail_when is not None and self.fail_when(len(self.upsert_calls)):
            raise ConnectionError("store rejected batch")
        super().upsert(name, points, wait)


@pytest.fixture
def settings() -> Settings:
    return Settings(store_backend="memory", embedding_backend="hashed", vector_dim=8)


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder(dim=8)


@pytest.fixture
def memory_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def recorded_sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(recorded_sleeps: list[float]) -> Callable[[float], None]:
    return recorded_sleeps.append


def make_chunks(count: int, document_id: str = "doc-1") -> list[Chunk]:
    return [
        Chunk(
            id=f"00000000-0000-0000-0000-{index:012d}",
            document_id=document_id,
            chunk_index=index,
            text=f"chunk number {index}",
            file_name="report.pdf",
            uploaded_at="2024-01-01T00:00:00.000Z",
        )
        for index in range(count)
    ]


def _wrap(text: str, width: int = 70) -> list[str]:
    lines: list[str] = []
    for paragraph in text.split("\n"):
        words = paragraph.split()
        line = ""
        for word in words:
            if line and len(line) + 1 + len(word) > width:
                lines.append(line)
                line = word
            else:
                line = f"{line} {word}".strip()
        lines.append(line)
    return lines


def write_pdf(path: Path, pages: Sequence[str], title: str | None = None) -> Path:
    """Write a PDF with one entry of *pages* per page (empty string = blank page)."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        lines = _wrap(text)[:55]
        if any(line.strip() for line in lines):
            page.insert_text((50, 60), "\n".join(lines), fontsize=10)
    if title:
        doc.set_metadata({"title": title})
    doc.save(str(path))
    doc.close()
    return path


_CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

_CHAPTER_XHTML = """<?xml version="1.0" encoding="UTF-8"?>
<html xmlns="http://www.w3.org/1999/xhtml">
<head><title>{title}</title></head>
<body><h1>{title}</h1><p>{body}</p></body>
</html>
"""


def write_epub(path: Path, chapters: Sequence[tuple[str, str]], title: str = "Sample Book") -> Path:
    """Write a minimal EPUB 2 file with one spine item per ``(title, body)``."""
    manifest = "\n".join(
        f'    <item id="ch{i}" href="ch{i}.xhtml" media-type="application/xhtml+xml"/>'
        for i in range(len(chapters))
    )
    spine = "\n".join(f'    <itemref idref="ch{i}"/>' for i in range(len(chapters)))
    nav_points = "\n".join(
        f'    <navPoint id="np{i}" playOrder="{i + 1}"><navLabel><text>{name}</text></navLabel>'
        f'<content src="ch{i}.xhtml"/></navPoint>'
        for i, (name, _) in enumerate(chapters)
    )
    opf = f"""<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="2.0" unique-identifier="bookid">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:title>{title}</dc:title>
    <dc:identifier id="bookid">urn:uuid:12345678-1234-1234-1234-123456789abc</dc:identifier>
    <dc:language>en</dc:language>
  </metadata>
  <manifest>
    <item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>
{manifest}
  </manifest>
  <spine toc="ncx">
{spine}
  </spine>
</package>
"""
    ncx = f"""<?xml version="1.0" encoding="UTF-8"?>
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">
  <head><meta name="dtb:uid" content="urn:uuid:12345678-1234-1234-1234-123456789abc"/></head>
  <docTitle><text>{title}</text></docTitle>
  <navMap>
{nav_points}
  </navMap>
</ncx>
"""
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("mimetype", "application/epub+zip", compress_type=zipfile.ZIP_STORED)
        archive.writestr("META-INF/container.xml", _CONTAINER_XML, compress_type=zipfile.ZIP_DEFLATED)
        archive.writestr("OEBPS/content.opf", opf, compress_type=zipfile.ZIP_DEFLATED)
        archive.writestr("OEBPS/toc.ncx", ncx, compress_type=zipfile.ZIP_DEFLATED)
        for i, (name, body) in enumerate(chapters):
            archive.writestr(
                f"OEBPS/ch{i}.xhtml",
                _CHAPTER_XHTML.format(title=name, body=body),
                compress_type=zipfile.ZIP_DEFLATED,
            )
    return path


LONG_PARAGRAPH = (
    "Vector databases store embeddings so that similar passages can be found quickly. "
    "Documents are split into overlapping chunks before they are embedded, which keeps "
    "each passage small enough for the model while preserving context across boundaries. "
)


@pytest.fixture(scope="session")
def sample_text() -> str:
    return "Title\n\nParagraph one.\n\nParagraph two is here."
