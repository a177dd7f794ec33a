"""
Prompting Package - per-stage prompt templates.

    from caselaw_review.prompting import PromptLoader

    template = PromptLoader().load(0)
    user_content = template.compose(markdown)
"""

from caselaw_review.prompting.prompt_loader import (
    PromptLoader,
    PromptTemplate,
    extract_section,
    parse_template,
)

__all__ = [
    'PromptLoader',
    'PromptTemplate',
    'extract_section',
    'parse_template',
]
