"""Extract tracking signals from rendered carrier tracking pages."""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Union

from bs4 import BeautifulSoup, NavigableString, Tag

from ..app.exceptions import ExtractionNotFound
from ..app.models import ProgressStep, TrackingSignals
from ..const import KEYWORD_LINE_LIMIT

_LOGGER = logging.getLogger(__name__)

HTML_PARSER = "html.parser"

Document = Union[str, bytes, Tag]

STATUS_LINE_KEYWORDS = (
    "delivered",
    "in transit",
    "out for delivery",
    "pending",
    "shipped",
    "processing",
    "arrived",
    "departed",
)

CHECK_GLYPHS = ("✓", "✔")

DELIVERED_CONFIRMATION_SELECTORS = (
    "#st_App_DelvdLabel i",
    '[id*="DelvdLabel"] i',
    ".ups-icon-checkcircle-solid",
)
DELIVERED_ON_TEXT = "Delivered On"

FALLBACK_STATUS_SELECTORS = (
    ".ups-tracking-summary-status",
    ".ups-tracking-status",
    '[data-testid="tracking-status"]',
    ".tracking-status",
    ".status-text",
)

_INVISIBLE_TAGS = ("script", "style", "noscript", "template", "head", "title")
_BLOCK_TAGS = frozenset(
    (
        "address", "article", "aside", "blockquote", "body", "br", "dd",
        "details", "div", "dl", "dt", "fieldset", "figcaption", "figure",
        "footer", "form", "h1", "h2", "h3", "h4", "h5", "h6", "header", "hr",
        "html", "li", "main", "nav", "ol", "p", "pre", "section", "summary",
        "table", "tbody", "td", "tfoot", "th", "thead", "tr", "ul",
    )
)
_DELIVERY_MILESTONE_RE = re.compile(r"(?<!not )\bdelivered\b", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


def parse_document(document: Document) -> Tag:
    """Return a queryable tree for raw HTML or an already parsed tree."""
    if isinstance(document, Tag):
        return document
    return BeautifulSoup(document, HTML_PARSER)


def is_delivery_milestone(text: str) -> bool:
    """Return True if a step describes the final delivery."""
    return bool(_DELIVERY_MILESTONE_RE.search(text))


def node_text(node: Tag) -> str:
    """Return the visible text of a node with whitespace collapsed."""
    return _WHITESPACE_RE.sub(" ", node.get_text(" ")).strip()


def visible_lines(root: Tag) -> List[str]:
    """Return the non-empty visible text lines of a document.

    Lines break at block-level elements and ``<br>``, so text split by
    inline markup such as ``<b>`` or ``<span>`` stays on one line.
    """
    lines: List[str] = []
    buffer: List[str] = []

    def flush() -> None:
        line = _WHITESPACE_RE.sub(" ", "".join(buffer)).strip()
        buffer.clear()
        if line:
            lines.append(line)

    def walk(node: Tag) -> None:
        for child in node.children:
            if isinstance(child, Tag):
                if child.name in _INVISIBLE_TAGS:
                    continue
                block = child.name in _BLOCK_TAGS
                if block:
                    flush()
                walk(child)
                if block:
                    flush()
            # Comments, doctypes and CDATA are NavigableString subclasses.
            elif type(child) is NavigableString:
                buffer.append(str(child))

    walk(root)
    flush()
    return lines


def build_steps(candidates: Iterable[tuple]) -> List[ProgressStep]:
    """Build densely sequenced steps from (text, completed) pairs.

    Blank texts are dropped before sequence numbers are assigned.
    """
    steps = []
    for text, completed in candidates:
        text = (text or "").strip()
        if not text:
            continue
        steps.append(
            ProgressStep(
                text=text,
                completed=completed,
                is_delivery_milestone=is_delivery_milestone(text),
                sequence=len(steps),
            )
        )
    return steps


@dataclass(frozen=True)
class MilestoneLayout:
    """Where one carrier's step-by-step progress widget lives in a page."""

    name: str
    container: str
    rows: str
    completed_classes: Sequence[str] = ("ups-progress_past_row", "complete", "completed")
    icon_selector: str = '[class*="check"]'


UPS_MILESTONE_LAYOUT = MilestoneLayout(
    name="ups",
    container="milestone-progress-bar#stApp_shpmtProgress",
    rows='tr[id^="stApp_ShpmtProg_LVP_progress_row_"]',
)

FEDEX_MILESTONE_LAYOUT = MilestoneLayout(
    name="fedex",
    container=".shipment-status-progress-container",
    rows=".shipment-status-progress-step",
)


class ExtractionStrategy:
    """One way of finding tracking signals in a document."""

    name = "base"

    def attempt(self, root: Tag) -> Optional[TrackingSignals]:
        """Return signals, or None when this strategy finds nothing."""
        raise NotImplementedError


class MilestoneStrategy(ExtractionStrategy):
    """Read rows of a known progress widget, preserving order and completion."""

    name = "milestones"

    def __init__(self, layouts: Optional[Sequence[MilestoneLayout]] = None) -> None:
        """Initialize with the progress widget layouts to look for."""
        self._layouts = tuple(
            layouts
            if layouts is not None
            else (UPS_MILESTONE_LAYOUT, FEDEX_MILESTONE_LAYOUT)
        )

    def attempt(self, root: Tag) -> Optional[TrackingSignals]:
        for layout in self._layouts:
            container = root.select_one(layout.container)
            if container is None:
                continue
            rows = container.select(layout.rows)
            steps = build_steps(
                (node_text(row), self._row_completed(row, layout)) for row in rows
            )
            if steps:
                _LOGGER.debug(
                    "Found %d milestones using the %s layout", len(steps), layout.name
                )
                return TrackingSignals(steps=steps)
        return None

    @staticmethod
    def _row_completed(row: Tag, layout: MilestoneLayout) -> bool:
        for node in [row, *row.find_all(True)]:
            classes = node.get("class") or []
            if any(marker in classes for marker in layout.completed_classes):
                return True
        if any(glyph in row.get_text() for glyph in CHECK_GLYPHS):
            return True
        return row.select_one(layout.icon_selector) is not None


class KeywordLineStrategy(ExtractionStrategy):
    """Collect page lines that mention a shipment status keyword."""

    name = "keyword_lines"

    def __init__(
        self,
        keywords: Sequence[str] = STATUS_LINE_KEYWORDS,
        limit: int = KEYWORD_LINE_LIMIT,
    ) -> None:
        """Initialize with the keyword vocabulary and the number of lines kept."""
        self._keywords = tuple(keyword.lower() for keyword in keywords)
        self._limit = limit

    def attempt(self, root: Tag) -> Optional[TrackingSignals]:
        matches = [
            line
            for line in visible_lines(root)
            if any(keyword in line.lower() for keyword in self._keywords)
        ][: self._limit]
        steps = build_steps((line, False) for line in matches)
        if not steps:
            return None
        return TrackingSignals(steps=steps, page_status_text=steps[0].text)


class SelectorStrategy(ExtractionStrategy):
    """Probe legacy single-element selectors for a one-line status."""

    name = "selectors"

    def __init__(self, selectors: Sequence[str] = FALLBACK_STATUS_SELECTORS) -> None:
        """Initialize with the selectors to try in order."""
        self._selectors = tuple(selectors)

    def attempt(self, root: Tag) -> Optional[TrackingSignals]:
        for selector in self._selectors:
            element = root.select_one(selector)
            if element is None:
                continue
            text = node_text(element)
            if text:
                return TrackingSignals(page_status_text=text)
        return None


class DocumentExtractor:
    """Run extraction strategies in order until one of them finds signals."""

    def __init__(
        self,
        strategies: Optional[Sequence[ExtractionStrategy]] = None,
        delivered_selectors: Sequence[str] = DELIVERED_CONFIRMATION_SELECTORS,
    ) -> None:
        """Initialize the extractor.

        Args:
            strategies: Strategies in priority order, defaults to milestones,
                keyword lines, then fallback selectors
            delivered_selectors: Selectors of page-level delivered markers
        """
        self._strategies = list(
            strategies
            if strategies is not None
            else (MilestoneStrategy(), KeywordLineStrategy(), SelectorStrategy())
        )
        self._delivered_selectors = tuple(delivered_selectors)

    def has_delivered_marker(self, root: Tag) -> bool:
        """Return True if the page confirms delivery outside the step list."""
        for selector in self._delivered_selectors:
            for element in root.select(selector):
                # A check icon inside a progress row is a step marker, not a page one.
                if element.find_parent("tr") is None:
                    return True
        return DELIVERED_ON_TEXT in " ".join(visible_lines(root))

    def extract(self, document: Document) -> TrackingSignals:
        """Extract tracking signals from a document.

        Raises:
            ExtractionNotFound: If no strategy found tracking information
        """
        root = parse_document(document)
        delivered_marker = self.has_delivered_marker(root)

        for strategy in self._strategies:
            signals = strategy.attempt(root)
            if signals is None or not (signals.steps or signals.page_status_text):
                _LOGGER.debug("Extraction strategy %s found nothing", strategy.name)
                continue
            _LOGGER.debug("Extraction strategy %s succeeded", strategy.name)
            signals.explicit_delivered_marker = delivered_marker
            return signals

        raise ExtractionNotFound("Could not find tracking information on page")
