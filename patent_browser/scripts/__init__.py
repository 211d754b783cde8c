"""
JavaScript extraction programs evaluated inside Google Patents pages.

Each program takes no input and returns a JSON value:

- ``extract_patent.js``: single patent page, see ``models.PatentPageData``
- ``extract_search_results.js``: one listing page, see ``models.ListingPageData``
"""

from functools import lru_cache
from importlib import resources

PATENT_SCRIPT = "extract_patent.js"
LISTING_SCRIPT = "extract_search_results.js"


@lru_cache(maxsize=None)
def load_script(name: str) -> str:
    """Read an extraction program shipped with the package."""
    return resources.files(__name__).joinpath(name).read_text(encoding="utf-8")
