"""Document loaders for supported formats."""

from __future__ import annotations

from pathlib import Path
from urllib.parse import urlparse

import fitz
import langid

from doc_indexer.core.errors import LoadError, UnsupportedTypeError
from doc_indexer.core.logging import get_logger
from doc_indexer.ingest.extractor import ContentExtractor
from doc_indexer.ingest.types import RawSegment

logger = get_logger(__name__)

URL_SCHEMES = ("http://", "https://")


class BaseLoader:
    """Common loader interface."""

    source_type: str = "file"
    suffixes: tuple[str, ...] = ()

    def can_load(self, locator: str) -> bool:
        return Path(locator).suffix.lower() in self.suffixes

    def load(self, locator: str) -> list[RawSegment]:  # pragma: no cover - interface
        raise NotImplementedError


class PDFLoader(BaseLoader):
    """One segment per page that carries text; page numbers are 1-based."""

    source_type = "pdf"
    suffixes = (".pdf",)

    def load(self, locator: str) -> list[RawSegment]:
        path = Path(locator)
        try:
            with fitz.open(str(path), filetype="pdf") as doc:
                info = doc.metadata or {}
                pages = [page.get_text("text", sort=True) for page in doc]
        except (RuntimeError, OSError, ValueError) as exc:
            raise LoadError(f"Could not read PDF {path.name}: {exc}", path=str(path)) from exc

        if not "".join(pages).strip():
            raise LoadError(f"No text found in PDF {path.name}", path=str(path))

        base = {
            "source": str(path),
            "source_type": self.source_type,
            "page_count": len(pages),
            "title": info.get("title") or path.stem,
            "author": info.get("author") or None,
            "subject": info.get("subject") or None,
            "creator": info.get("creator") or None,
        }
        lang = _detect_lang("\n".join(pages))
        segments = [
            RawSegment(text=text, metadata={**base, "page": number, "lang": lang})
            for number, text in enumerate(pages, start=1)
            if text.strip()
        ]
        logger.info("Loaded %s pages with text from %s", len(segments), path.name)
        return segments


class EPUBLoader(BaseLoader):
    """One segment per non-empty chapter (spine item)."""

    source_type = "epub"
    suffixes = (".epub",)

    def load(self, locator: str) -> list[RawSegment]:
        path = Path(locator)
        try:
            with fitz.open(str(path), filetype="epub") as doc:
                info = doc.metadata or {}
                titles = _chapter_titles(doc)
                chapters = [
                    "\n".join(
                        doc.load_page((chapter, number)).get_text("text")
                        for number in range(doc.chapter_page_count(chapter))
                    )
                    for chapter in range(doc.chapter_count)
                ]
        except (RuntimeError, OSError, ValueError) as exc:
            raise LoadError(f"Could not read EPUB {path.name}: {exc}", path=str(path)) from exc

        base = {
            "source": str(path),
            "source_type": self.source_type,
            "title": info.get("title") or path.stem,
            "author": info.get("author") or None,
            "chapter_count": len(chapters),
        }
        segments: list[RawSegment] = []
        for index, text in enumerate(chapters):
            if not text.strip():
                continue
            metadata = {**base, "chapter": index, "lang": _detect_lang(text)}
            if index in titles:
                metadata["chapter_title"] = titles[index]
            segments.append(RawSegment(text=text, metadata=metadata))

        if not segments:
            raise LoadError(f"No content found in EPUB {path.name}", path=str(path))
        logger.info("Loaded %s chapters from %s", len(segments), path.name)
        return segments


class URLLoader(BaseLoader):
    """Wrap a scraped web page as a single segment."""

    source_type = "url"

    def __init__(self, extractor: ContentExtractor | None = None) -> None:
        self.extractor = extractor or ContentExtractor()

    def can_load(self, locator: str) -> bool:
        return locator.lower().startswith(URL_SCHEMES)

    def load(self, locator: str, strategy: str | None = None) -> list[RawSegment]:
        scraped = self.extractor.extract(locator, strategy=strategy)
        metadata = {
            "source": locator,
            "source_type": self.source_type,
            "title": scraped.title,
            "og_image": scraped.og_image,
            "scraped_at": scraped.scraped_at,
            "strategy": scraped.strategy,
            "content_length": len(scraped.content),
            "lang": _detect_lang(scraped.content),
        }
        return [RawSegment(text=scraped.content, metadata=metadata)]


class LoaderRegistry:
    """Registry that selects an appropriate loader for a locator."""

    def __init__(self, extractor: ContentExtractor | None = None) -> None:
        self.url_loader = URLLoader(extractor)
        self._loaders: list[BaseLoader] = [
            self.url_loader,
            PDFLoader(),
            EPUBLoader(),
        ]

    def register(self, loader: BaseLoader) -> None:
        self._loaders.append(loader)

    def for_locator(self, locator: str) -> BaseLoader:
        for loader in self._loaders:
            if loader.can_load(locator):
                return loader
        suffix = Path(urlparse(locator).path).suffix or locator
        raise UnsupportedTypeError(
            f"Unsupported source type {suffix!r}; expected a PDF, an EPUB or an http(s) URL",
            locator=locator,
        )

    def source_type(self, locator: str) -> str:
        return self.for_locator(locator).source_type

    def load(
        self,
        locator: str,
        file_name: str | None = None,
        strategy: str | None = None,
    ) -> list[RawSegment]:
        """Load *locator*, choosing the loader from *file_name* when given.

        Uploaded files are often stored under generated names, so the original
        file name decides the format while *locator* is what gets read.
        """
        loader = self.for_locator(file_name or locator)
        if isinstance(loader, URLLoader):
            # Extraction errors keep their own kind so callers can retry with the other strategy.
            return loader.load(locator, strategy=strategy)
        if not Path(locator).is_file():
            raise LoadError(f"File not found: {locator}", path=locator)
        return loader.load(locator)


def _chapter_titles(doc: fitz.Document) -> dict[int, str]:
    titles: dict[int, str] = {}
    for level, title, page, *_ in doc.get_toc(simple=True):
        if level != 1 or page < 1:
            continue
        chapter, _ = doc.location_from_page_number(page - 1)
        titles.setdefault(chapter, title.strip())
    return titles


def _detect_lang(text: str) -> str:
    if not text.strip():
        return "en"
    lang, _ = langid.classify(text[:5000])
    return lang


__all__ = [
    "BaseLoader",
    "PDFLoader",
    "EPUBLoader",
    "URLLoader",
    "LoaderRegistry",
]
