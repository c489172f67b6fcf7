"""Pydantic models for records emitted by the crawler."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class PageRecord(BaseModel):
    """A fetched page, handed to the output stream exactly once.

    Records are frozen: once emitted no worker mutates them.

    Fields:
        url: Normalized URL that was fetched
        title: Document title when the page had one
        content: Extracted text content
        links: Raw outbound link strings as they appeared in the page
    """

    model_config = ConfigDict(frozen=True)

    url: str = Field(description="Normalized URL of the fetched page")
    title: str | None = Field(default=None, description="Document title, if available")
    content: str = Field(default="", description="Extracted text content")
    links: tuple[str, ...] = Field(default=(), description="Raw outbound links discovered on the page")


class CrawlSummary(BaseModel):
    """Statistics a consumer computes once the output stream closes."""

    pages: int = Field(default=0, ge=0, description="Number of page records received")
    elapsed_seconds: float = Field(default=0.0, ge=0.0, description="Wall-clock duration of the crawl")
    stop_reason: str | None = Field(default=None, description="Why the crawl was stopped early, if it was")

    @property
    def pages_per_second(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.pages / self.elapsed_seconds
