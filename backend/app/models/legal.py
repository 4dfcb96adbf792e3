"""Legal citation models."""

from pydantic import BaseModel, Field, computed_field


class LegalArticleReference(BaseModel):
    """Citations found in a query (articles, clauses, points, decrees...)."""

    articles: list[int] = Field(default_factory=list)
    clauses: list[int] = Field(default_factory=list)
    points: list[str] = Field(default_factory=list)
    decrees: list[int] = Field(default_factory=list)
    circulars: list[int] = Field(default_factory=list)
    decisions: list[int] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_legal_reference(self) -> bool:
        """True iff any category is non-empty."""
        return bool(
            self.articles
            or self.clauses
            or self.points
            or self.decrees
            or self.circulars
            or self.decisions
        )
