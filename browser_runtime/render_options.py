"""Screenshot and PDF option bundles and navigation URL building."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .errors import InvalidURL, RenderOptionsInvalid
from .parameters import NodeParameters

IMAGE_TYPES = ("jpeg", "png", "webp")
LOSSY_IMAGE_TYPES = frozenset({"jpeg", "webp"})
PAPER_FORMATS = (
    "Letter",
    "Legal",
    "Tabloid",
    "Ledger",
    "A0",
    "A1",
    "A2",
    "A3",
    "A4",
    "A5",
    "A6",
)
MARGIN_SIDES = ("top", "bottom", "left", "right")
PDF_MIME_TYPE = "application/pdf"
MIN_PDF_SCALE = 0.1
MAX_PDF_SCALE = 2.0


@dataclass(frozen=True)
class ScreenshotOptions:
    image_type: str = "png"
    full_page: bool = True
    quality: Optional[int] = None
    file_name: Optional[str] = None

    @property
    def mime_type(self) -> str:
        return f"image/{self.image_type}"

    def to_playwright_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``page.screenshot`` (png and jpeg only)."""
        kwargs: Dict[str, Any] = {"type": self.image_type, "full_page": self.full_page}
        if self.quality is not None:
            kwargs["quality"] = self.quality
        if self.file_name:
            kwargs["path"] = self.file_name
        return kwargs


@dataclass(frozen=True)
class PdfOptions:
    scale: float = 1.0
    page_ranges: str = ""
    display_header_footer: bool = False
    header_template: Optional[str] = None
    footer_template: Optional[str] = None
    omit_background: bool = False
    print_background: bool = False
    landscape: bool = True
    prefer_css_page_size: bool = True
    margin: Dict[str, str] = field(default_factory=dict)
    format: Optional[str] = None
    width: Optional[str] = None
    height: Optional[str] = None
    file_name: Optional[str] = None

    def to_playwright_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``page.pdf``."""
        kwargs: Dict[str, Any] = {
            "scale": self.scale,
            "display_header_footer": self.display_header_footer,
            "print_background": self.print_background,
            "landscape": self.landscape,
            "prefer_css_page_size": self.prefer_css_page_size,
        }
        if self.page_ranges:
            kwargs["page_ranges"] = self.page_ranges
        if self.display_header_footer:
            kwargs["header_template"] = self.header_template or ""
            kwargs["footer_template"] = self.footer_template or ""
        if self.margin:
            kwargs["margin"] = dict(self.margin)
        if self.format:
            kwargs["format"] = self.format
        if self.width and self.height:
            kwargs["width"] = self.width
            kwargs["height"] = self.height
        if self.file_name:
            kwargs["path"] = self.file_name
        return kwargs


def build_screenshot_options(params: NodeParameters, item_index: int) -> ScreenshotOptions:
    image_type = params.get_str("image_type", item_index, "png").lower()
    if image_type not in IMAGE_TYPES:
        raise RenderOptionsInvalid(
            f"Unsupported image type '{image_type}'. Use one of: {', '.join(IMAGE_TYPES)}.",
            item_index=item_index,
        )

    quality = None
    if image_type in LOSSY_IMAGE_TYPES:
        quality = _as_int(params.get("quality", item_index, 100), "quality", item_index)
        if not 0 <= quality <= 100:
            raise RenderOptionsInvalid(
                f"Image quality must be between 0 and 100, got {quality}.",
                item_index=item_index,
            )

    return ScreenshotOptions(
        image_type=image_type,
        full_page=params.get_bool("full_page", item_index, True),
        quality=quality,
        file_name=_file_name(params, item_index),
    )


def build_pdf_options(params: NodeParameters, item_index: int) -> PdfOptions:
    """Build PDF options; sizing is validated before anything is rendered.

    With ``prefer_css_page_size`` the page format, width and height are not
    read at all. Otherwise width and height together win, then a named
    paper format, and having neither is an error.
    """
    scale = _as_float(params.get("scale", item_index, 1.0), "scale", item_index)
    if not MIN_PDF_SCALE <= scale <= MAX_PDF_SCALE:
        raise RenderOptionsInvalid(
            f"PDF scale must be between {MIN_PDF_SCALE} and {MAX_PDF_SCALE}, got {scale}.",
            item_index=item_index,
        )

    display_header_footer = params.get_bool("display_header_footer", item_index, False)
    header_template = None
    footer_template = None
    if display_header_footer:
        header_template = params.get_str("header_template", item_index, "")
        footer_template = params.get_str("footer_template", item_index, "")

    prefer_css_page_size = params.get_bool("prefer_css_page_size", item_index, True)
    paper_format = None
    width = None
    height = None
    if not prefer_css_page_size:
        width = params.get_str("width", item_index, "") or None
        height = params.get_str("height", item_index, "") or None
        if not (width and height):
            paper_format = _paper_format(params.get_str("format", item_index, ""))
            if paper_format is None:
                raise RenderOptionsInvalid(
                    "A PDF needs either both width and height or a paper format "
                    "when CSS page size is not preferred.",
                    item_index=item_index,
                )

    return PdfOptions(
        scale=scale,
        page_ranges=params.get_str("page_ranges", item_index, ""),
        display_header_footer=display_header_footer,
        header_template=header_template,
        footer_template=footer_template,
        omit_background=params.get_bool("omit_background", item_index, False),
        print_background=params.get_bool("print_background", item_index, False),
        landscape=params.get_bool("landscape", item_index, True),
        prefer_css_page_size=prefer_css_page_size,
        margin=_margin(params.get("margin", item_index, {})),
        format=paper_format,
        width=width if paper_format is None else None,
        height=height if paper_format is None else None,
        file_name=_file_name(params, item_index),
    )


def build_navigation_url(url: str, query_parameters: Sequence[Tuple[str, str]] = ()) -> str:
    """Append query parameters to ``url``, keeping the ones it already has."""
    raw = str(url or "").strip()
    try:
        parts = urlsplit(raw)
    except ValueError as e:
        raise InvalidURL(f"Invalid URL: {raw}") from e
    if not parts.scheme or not (parts.netloc or parts.scheme in ("file", "data", "about")):
        raise InvalidURL(f"Invalid URL: {raw}")
    if not query_parameters:
        return urlunsplit(parts)

    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend((str(name), str(value)) for name, value in query_parameters)
    return urlunsplit(parts._replace(query=urlencode(query)))


def _paper_format(raw: str) -> Optional[str]:
    lookup = {name.lower(): name for name in PAPER_FORMATS}
    return lookup.get(raw.strip().lower()) if raw else None


def _margin(raw: Any) -> Dict[str, str]:
    if not isinstance(raw, Mapping):
        return {}
    return {
        side: str(raw[side]).strip()
        for side in MARGIN_SIDES
        if raw.get(side) not in (None, "") and str(raw[side]).strip()
    }


def _file_name(params: NodeParameters, item_index: int) -> Optional[str]:
    return str(params.options(item_index).get("file_name") or "").strip() or None


def _as_int(value: Any, name: str, item_index: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise RenderOptionsInvalid(f"'{name}' must be a number, got {value!r}.", item_index=item_index) from e


def _as_float(value: Any, name: str, item_index: int) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise RenderOptionsInvalid(f"'{name}' must be a number, got {value!r}.", item_index=item_index) from e
