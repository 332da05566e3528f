import logging
from typing import List, Optional

import requests
from bs4 import BeautifulSoup, Tag

from ..errors import FetchError
from ..models import StatusSnapshot
from .base import BaseSource

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; CitaMonitor/0.1)"


def _squash(text: str) -> str:
    """Drop all whitespace so line breaks inside a cell don't matter"""
    return "".join(text.split())


class HtmlStatusSource(BaseSource):
    """Appointment table scraper

    The page lists one row per procedure: name, date of the last opening,
    date of the next opening. The tracked row is found by a keyword in any
    of its cells.
    """

    def __init__(self, row_keyword: str = "Pasaportesrenova", timeout: int = 20,
                 session: Optional[requests.Session] = None):
        self.row_keyword = _squash(row_keyword)
        self.timeout = timeout
        self.session = session or requests.Session()

    def get_source_name(self) -> str:
        return "HTML"

    def fetch(self, url: str) -> StatusSnapshot:
        """Fetch the page and parse the tracked row"""
        content = self._fetch_content(url)
        return self.parse(content)

    def _fetch_content(self, url: str) -> str:
        """Fetch page HTML via HTTP"""
        try:
            response = self.session.get(
                url,
                headers={"User-Agent": USER_AGENT},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(f"Failed to fetch {url}: {e}") from e
        return response.text

    def _find_row(self, soup: BeautifulSoup) -> Optional[Tag]:
        """Last <tr> having a cell that contains the keyword"""
        found = None
        for tr in soup.find_all("tr"):
            for cell in tr.find_all(["td", "th"], recursive=False):
                if self.row_keyword in _squash(cell.get_text()):
                    found = tr
        return found

    @staticmethod
    def _cell_texts(row: Tag) -> List[str]:
        texts = []
        for child in row.children:
            if not isinstance(child, Tag):
                continue
            # A whitespace-only cell keeps its position as ""
            text = child.get_text()
            if text:
                texts.append(text.strip())
        return texts

    def parse(self, content: str) -> StatusSnapshot:
        """Extract (title, last known date, current date) from page HTML

        Returns an empty snapshot when the row is missing.
        """
        soup = BeautifulSoup(content, "html.parser")
        row = self._find_row(soup)
        if row is None:
            logger.warning(f"⚠️ Row '{self.row_keyword}' not found on page")
            return StatusSnapshot()

        texts = self._cell_texts(row) + ["", "", ""]
        snapshot = StatusSnapshot(
            title=texts[0],
            last_known_date=texts[1],
            current_date=texts[2],
        )
        logger.info(f"📄 {snapshot.title} | {snapshot.last_known_date} | {snapshot.current_date}")
        return snapshot
