"""
Prompt Loader for the Case-Law Review pipeline.

Each model-calling stage has one Markdown template in PROMPTS_DIR (step0.md,
step1.md, step3.md, step4.md; grouping makes no call and has none)
holding two sections:

    ## 🟦 **SYSTEM PROMPT**

    You are ...

    ---

    ## 🟩 **USER PROMPT**

    Analyze the document below ...

The emoji and bold markers in headings are optional. A section runs until a
'---' line or the next '## ' heading. A file without a USER section uses the
whole file as user text; a file without a SYSTEM section uses the whole file
as system text.
"""

import re
from dataclasses import dataclass
from pathlib import Path

from caselaw_review.config import PROMPTS_DIR
from caselaw_review.logging_config import debug_log

SYSTEM_SECTION = "SYSTEM"
USER_SECTION = "USER"

_HEADING_PATTERN = re.compile(
    r"^##\s+(?:[^\w\s*]+\s*)?\**\s*(SYSTEM|USER)\s+PROMPT\s*\**\s*$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class PromptTemplate:
    """System and user text for one stage."""
    system_prompt: str
    user_prompt: str

    def compose(self, payload: str) -> str:
        """Build the user message: instructions, blank line, payload."""
        return f"{self.user_prompt}\n\n{payload}"


def extract_section(content: str, name: str) -> str | None:
    """
    Get the body of a SYSTEM or USER section.

    Args:
        content: Full template text
        name: "SYSTEM" or "USER"

    Returns:
        Stripped section body, or None if the heading is absent
    """
    lines = content.splitlines()
    for index, line in enumerate(lines):
        match = _HEADING_PATTERN.match(line.strip())
        if not match or match.group(1).upper() != name:
            continue

        body = []
        for next_line in lines[index + 1:]:
            if next_line.strip() == "---" or next_line.startswith("## "):
                break
            body.append(next_line)
        return "\n".join(body).strip()

    return None


def parse_template(content: str) -> PromptTemplate:
    """Split template text into its system and user parts."""
    whole = content.strip()
    system_prompt = extract_section(content, SYSTEM_SECTION)
    user_prompt = extract_section(content, USER_SECTION)

    return PromptTemplate(
        system_prompt=system_prompt or whole,
        user_prompt=user_prompt or whole,
    )


class PromptLoader:
    """
    Loads and caches per-stage prompt templates.

    Templates are read once per loader instance; call clear_cache() after
    editing files on disk.
    """

    def __init__(self, prompts_dir: Path = PROMPTS_DIR):
        """
        Args:
            prompts_dir: Directory holding the stepN.md templates
        """
        self.prompts_dir = Path(prompts_dir)
        self._cache: dict[str, PromptTemplate] = {}

    def template_path(self, stage_id: int | str) -> Path:
        """Path of the template file for a stage index or template name."""
        name = f"step{stage_id}" if isinstance(stage_id, int) else str(stage_id)
        return self.prompts_dir / f"{name}.md"

    def load(self, stage_id: int | str) -> PromptTemplate:
        """
        Load the template for a stage.

        Args:
            stage_id: Stage index (0-4) or template file stem

        Returns:
            PromptTemplate with system and user text

        Raises:
            FileNotFoundError: If the template file does not exist
        """
        path = self.template_path(stage_id)
        cache_key = str(path)
        if cache_key in self._cache:
            return self._cache[cache_key]

        if not path.exists():
            raise FileNotFoundError(f"Prompt template not found: {path}")

        content = path.read_text(encoding="utf-8")
        template = parse_template(content)
        debug_log(
            f"[PROMPTS] Loaded {path.name}: system={len(template.system_prompt)} chars, "
            f"user={len(template.user_prompt)} chars"
        )

        self._cache[cache_key] = template
        return template

    def clear_cache(self) -> None:
        """Clear the template cache."""
        self._cache.clear()
