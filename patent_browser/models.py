"""
Data models for patent-browser.

Records, the two extraction-script schemas (single patent page and search
listing page) and the user-facing search options.
"""

from typing import Any, Optional
from urllib.parse import quote_plus

from pydantic import BaseModel, Field, field_validator

from patent_browser.config.defaults import (
    BASE_URL,
    DEFAULT_LIMIT,
    UNKNOWN_PATENT_ID,
    UNKNOWN_TOTAL,
)
from patent_browser.exceptions import InvalidSearchOptionsError


class DescriptionParagraph(BaseModel):
    """A numbered paragraph of a patent description."""

    number: str
    id: str
    text: str


class Claim(BaseModel):
    """A numbered patent claim."""

    number: str
    id: str
    text: str


class PatentImage(BaseModel):
    """A drawing sheet."""

    url: str
    figure_number: Optional[str] = None


class RelatedApplication(BaseModel):
    """An application in a patent's priority chain or family."""

    application_number: str
    country_code: Optional[str] = None
    priority_date: Optional[str] = None
    filing_date: Optional[str] = None
    title: Optional[str] = None


class SummaryItem(BaseModel):
    """One row of a listing's summary breakdown (top assignees, top CPCs)."""

    name: str
    percentage: Optional[str] = None


class Patent(BaseModel):
    """A single patent record.

    Listing pages fill the short fields (snippet, dates, assignee); the
    patent page fills the full-text fields.
    """

    id: str = UNKNOWN_PATENT_ID
    title: str = "No Title"
    abstract_text: Optional[str] = None
    description_paragraphs: Optional[list[DescriptionParagraph]] = None
    claims: Optional[list[Claim]] = None
    images: Optional[list[PatentImage]] = None
    snippet: Optional[str] = None
    description: Optional[str] = None
    filing_date: Optional[str] = None
    grant_date: Optional[str] = None
    publication_date: Optional[str] = None
    assignee: Optional[str] = None
    related_application: Optional[str] = None
    claiming_priority: Optional[list[RelatedApplication]] = None
    family_applications: Optional[list[RelatedApplication]] = None
    url: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def default_id(cls, v: Any) -> Any:
        return v or UNKNOWN_PATENT_ID

    @field_validator("title", mode="before")
    @classmethod
    def default_title(cls, v: Any) -> Any:
        return v or "No Title"


def _empty_to_none(v: Any) -> Any:
    if isinstance(v, list) and not v:
        return None
    return v


class PatentPageData(BaseModel):
    """Output of the single-patent extraction script."""

    title: str = "No Title"
    abstract: Optional[str] = None
    description_paragraphs: Optional[list[DescriptionParagraph]] = None
    claims: Optional[list[Claim]] = None
    images: Optional[list[PatentImage]] = None
    filing_date: Optional[str] = None
    assignee: Optional[str] = None
    related_application: Optional[str] = None
    claiming_priority: Optional[list[RelatedApplication]] = None
    family_applications: Optional[list[RelatedApplication]] = None

    @field_validator("title", mode="before")
    @classmethod
    def default_title(cls, v: Any) -> Any:
        return v or "No Title"

    @field_validator(
        "description_paragraphs",
        "claims",
        "images",
        "claiming_priority",
        "family_applications",
        mode="before",
    )
    @classmethod
    def empty_list_is_none(cls, v: Any) -> Any:
        return _empty_to_none(v)

    def to_patent(self, patent_id: str, url: str) -> Patent:
        """Map page data into the canonical record shape."""
        return Patent(
            id=patent_id,
            title=self.title,
            abstract_text=self.abstract,
            description_paragraphs=self.description_paragraphs,
            claims=self.claims,
            images=self.images,
            filing_date=self.filing_date,
            assignee=self.assignee,
            related_application=self.related_application,
            claiming_priority=self.claiming_priority,
            family_applications=self.family_applications,
            url=url,
        )


class ListingPageData(BaseModel):
    """Output of the search-listing extraction script."""

    total_results: str = UNKNOWN_TOTAL
    patents: list[Patent] = Field(default_factory=list)
    top_assignees: Optional[list[SummaryItem]] = None
    top_cpcs: Optional[list[SummaryItem]] = None

    @field_validator("total_results", mode="before")
    @classmethod
    def total_as_string(cls, v: Any) -> Any:
        if v is None:
            return UNKNOWN_TOTAL
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("patents", mode="before")
    @classmethod
    def null_patents(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("top_assignees", "top_cpcs", mode="before")
    @classmethod
    def empty_list_is_none(cls, v: Any) -> Any:
        return _empty_to_none(v)


class SearchResult(BaseModel):
    """Final result of a search or a single-patent lookup."""

    total_results: str = UNKNOWN_TOTAL
    patents: list[Patent] = Field(default_factory=list)
    top_assignees: Optional[list[SummaryItem]] = None
    top_cpcs: Optional[list[SummaryItem]] = None

    def to_json(self, indent: Optional[int] = 2) -> str:
        """Serialize, leaving out empty optional fields."""
        return self.model_dump_json(indent=indent, exclude_none=True)


class SearchOptions(BaseModel):
    """User-facing search parameters."""

    query: Optional[str] = None
    assignee: Optional[list[str]] = None
    country: Optional[str] = None
    patent_number: Optional[str] = None
    after_date: Optional[str] = None
    before_date: Optional[str] = None
    limit: Optional[int] = Field(None, ge=1)

    @field_validator("query", "country", "patent_number", "after_date", "before_date")
    @classmethod
    def blank_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("assignee", mode="before")
    @classmethod
    def normalize_assignee(cls, v: Any) -> Any:
        if v is None:
            return None
        if isinstance(v, str):
            v = [v]
        cleaned = [a.strip() for a in v if isinstance(a, str) and a.strip()]
        return cleaned or None

    @property
    def effective_limit(self) -> int:
        return self.limit if self.limit is not None else DEFAULT_LIMIT

    def validate_target(self) -> None:
        """Raise unless a query, an assignee or a patent number is set."""
        if not (self.query or self.assignee or self.patent_number):
            raise InvalidSearchOptionsError(
                "Must provide at least one of query, assignee or patent number"
            )

    def to_url(self) -> str:
        """Build the Google Patents URL these options describe.

        Raises:
            InvalidSearchOptionsError: If nothing identifies what to fetch.
        """
        self.validate_target()

        if self.patent_number:
            return f"{BASE_URL}/patent/{self.patent_number}"

        params: list[tuple[str, str]] = []
        if self.query:
            params.append(("q", self.query))
        if self.assignee:
            params.append(("assignee", ",".join(self.assignee)))
        if self.country:
            params.append(("country", self.country))
        if self.after_date:
            params.append(("after", self.after_date))
        if self.before_date:
            params.append(("before", self.before_date))

        query_string = "&".join(f"{key}={quote_plus(value, safe=',')}" for key, value in params)
        return f"{BASE_URL}/?{query_string}"
