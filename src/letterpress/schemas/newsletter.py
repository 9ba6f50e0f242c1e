"""Newsletter-related Pydantic schemas."""

from pydantic import BaseModel, Field

from letterpress.services.newsletter import NewsletterContent


class NewsletterForm(BaseModel):
    """Fields posted by the newsletter form.

    Content checks happen in the publishing service so that an incomplete
    issue is answered with a flash message rather than a 422.
    """

    title: str = ""
    content_text: str = ""
    content_html: str = ""
    idempotency_key: str = ""

    def to_content(self) -> NewsletterContent:
        return NewsletterContent(
            title=self.title,
            text_content=self.content_text,
            html_content=self.content_html,
        )


class IdempotencyKeyResponse(BaseModel):
    """Fresh key for a client about to render the newsletter form."""

    idempotency_key: str = Field(..., description="Key to submit with the next publish request")
