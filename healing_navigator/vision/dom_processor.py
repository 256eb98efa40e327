"""
DOM Processor for the Self-Healing Navigator.
Summarizes raw HTML into the element sample and page flags used to classify failures.
"""

import re
from dataclasses import dataclass, field
from typing import Optional
from bs4 import BeautifulSoup, Tag

from config.settings import settings


@dataclass
class DOMSummary:
    """Condensed view of a page at failure time."""
    title: str
    visible_elements: list[str] = field(default_factory=list)
    has_login_form: bool = False
    has_listing_markers: bool = False
    has_verification_challenge: bool = False
    raw_html_length: int = 0


class DOMProcessor:
    """
    Extracts a bounded sample of visible elements as ``tag.class#id`` descriptors
    and detects login forms, listing markers and verification challenges.
    """

    # Attributes scanned for page markers
    MARKER_ATTRS = ("id", "class", "name", "src", "action", "data-testid")

    LOGIN_PATTERN = re.compile(r"log[\s_-]?in|sign[\s_-]?in", re.I)

    def __init__(
        self,
        max_elements: int = None,
        excluded_tags: Optional[list[str]] = None,
        listing_markers: Optional[list[str]] = None,
        verification_markers: Optional[list[str]] = None
    ):
        self.max_elements = max_elements or settings.dom.max_elements
        self.excluded_tags = set(excluded_tags if excluded_tags is not None else settings.dom.excluded_tags)
        self.listing_markers = [
            m.lower() for m in (listing_markers if listing_markers is not None else settings.locators.listing_markers)
        ]
        self.verification_markers = [
            m.lower() for m in (
                verification_markers if verification_markers is not None else settings.locators.verification_markers
            )
        ]

    def summarize(self, html: str, title: str = "") -> DOMSummary:
        """
        Summarize raw HTML.

        Args:
            html: Raw HTML string
            title: Page title, used instead of the <title> tag when given

        Returns:
            DOMSummary with the element sample and flags
        """
        soup = BeautifulSoup(html or "", "lxml")

        # Flags look at the full document, including iframes and hidden inputs
        marker_text = self._marker_text(soup)
        has_login = self._detect_login_form(soup, marker_text)
        has_listing = any(marker in marker_text for marker in self.listing_markers)
        has_challenge = any(marker in marker_text for marker in self.verification_markers)

        page_title = title or self._extract_title(soup)

        for tag in soup.find_all(list(self.excluded_tags)):
            tag.decompose()
        self._remove_hidden_elements(soup)

        return DOMSummary(
            title=page_title,
            visible_elements=self._sample_elements(soup),
            has_login_form=has_login,
            has_listing_markers=has_listing,
            has_verification_challenge=has_challenge,
            raw_html_length=len(html or ""),
        )

    def _marker_text(self, soup: BeautifulSoup) -> str:
        """Lowercased concatenation of marker-bearing attribute values."""
        values = []
        for elem in soup.find_all(True):
            for attr in self.MARKER_ATTRS:
                if elem.has_attr(attr):
                    value = elem[attr]
                    if isinstance(value, list):
                        value = " ".join(value)
                    values.append(str(value))
        return " ".join(values).lower()

    def _detect_login_form(self, soup: BeautifulSoup, marker_text: str) -> bool:
        if soup.find("input", attrs={"type": re.compile(r"^password$", re.I)}):
            return True
        if self.LOGIN_PATTERN.search(marker_text):
            return True
        for button in soup.find_all(["button", "a"]):
            if self.LOGIN_PATTERN.search(button.get_text(" ", strip=True)):
                return True
        return False

    def _remove_hidden_elements(self, soup: BeautifulSoup):
        """Remove elements that are hidden via common patterns."""
        for elem in soup.find_all(style=re.compile(r"display\s*:\s*none|visibility\s*:\s*hidden", re.I)):
            elem.decompose()

        for elem in soup.find_all(attrs={"hidden": True}):
            elem.decompose()

        for elem in soup.find_all(attrs={"aria-hidden": "true"}):
            elem.decompose()

        for elem in soup.find_all("input", attrs={"type": re.compile(r"^hidden$", re.I)}):
            elem.decompose()

        hidden_classes = ["hidden", "d-none", "invisible", "sr-only", "visually-hidden"]
        for cls in hidden_classes:
            for elem in soup.find_all(class_=re.compile(rf"^{cls}$", re.I)):
                elem.decompose()

    def _sample_elements(self, soup: BeautifulSoup) -> list[str]:
        """First elements of the body, in document order."""
        root = soup.body or soup
        sample = []
        for elem in root.find_all(True):
            if len(sample) >= self.max_elements:
                break
            sample.append(self.describe(elem))
        return sample

    @staticmethod
    def describe(elem: Tag) -> str:
        """``tag.class1.class2#id`` descriptor for an element."""
        descriptor = elem.name
        classes = elem.get("class") or []
        if isinstance(classes, str):
            classes = classes.split()
        if classes:
            descriptor += "." + ".".join(classes)
        elem_id = elem.get("id")
        if elem_id:
            descriptor += f"#{elem_id}"
        return descriptor

    def _extract_title(self, soup: BeautifulSoup) -> str:
        """Extract page title."""
        title_tag = soup.find("title")
        if title_tag:
            return title_tag.get_text(strip=True)

        h1 = soup.find("h1")
        if h1:
            return h1.get_text(strip=True)[:100]

        return "Untitled Page"
