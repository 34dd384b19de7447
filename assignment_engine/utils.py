"""Utility functions for sanitization."""

import bleach


def sanitize_question_text(text: str) -> str:
    """Sanitize question prompt text to prevent XSS attacks.

    Allows basic formatting tags but removes script/dangerous content.
    """
    allowed_tags = ['b', 'i', 'u', 'em', 'strong', 'p', 'br', 'code', 'pre', 'ul', 'ol', 'li']
    allowed_attributes = {}

    sanitized = bleach.clean(text, tags=allowed_tags, attributes=allowed_attributes, strip=True)
    return sanitized.strip()


def sanitize_plain_text(text: str) -> str:
    """Strip all HTML, used for option labels and free text."""
    sanitized = bleach.clean(text, tags=[], strip=True)
    return sanitized.strip()
