"""
Story Prompt Assembler

Builds the single user prompt sent to the text provider for a V3 story.

Prose blocks (mode instructions, structure and title rules) come from
``prompts.yml`` next to this module. If the file is missing or unreadable the
built-in fallbacks below are used instead, so generation never depends on it.
"""

import logging
import os
from typing import Any, Dict, Optional, Tuple

import yaml

from .types import CharacterInfo, GenerationRequest

logger = logging.getLogger(__name__)

DEFAULT_WORD_RANGE = (400, 600)

PARAGRAPH_RANGES = {
    "short": (6, 7),
    "medium": (8, 9),
    "long": (10, 12),
}

_FALLBACK_PROMPTS = {
    ("fun", "system"): (
        "# ROLE: Creative Children's Story Writer\n\n"
        "Write imaginative, specific bedtime stories with a calm, satisfying ending. "
        "Do NOT describe character appearances; refer to characters by name."
    ),
    ("growth", "system"): (
        "# ROLE: Behavior Teaching Story Writer\n\n"
        "Write short, realistic stories that show one specific behavior in action 2-3 times. "
        "Do not preach or explain the lesson. Do NOT describe character appearances."
    ),
    ("fun", "structure"): (
        "**STORY STRUCTURE:**\n"
        "- Opening: Introduce character and unique situation\n"
        "- Middle: Story developments with specific details\n"
        "- Ending: Satisfying, calming conclusion"
    ),
    ("growth", "structure"): (
        "**STORY STRUCTURE:**\n"
        "- Paragraphs 1-2: Child in realistic setting, challenge appears quickly\n"
        "- Paragraphs 3-5: Show the new behavior 2-3 times with increasing success\n"
        "- Final paragraphs: Natural resolution"
    ),
    ("growth", "behavior"): (
        "Show this behavior in action 2-3 times. Use realistic situations the child actually faces."
    ),
    ("output_format", "json_example"): (
        '```json\n{{\n  "title": "A Strong, Kid-Friendly Title",\n'
        '  "paragraphs": ["First paragraph...", "Final paragraph..."],\n'
        '  "moral": "A brief statement of the lesson or moral (optional for fun mode)"\n}}\n```'
    ),
    ("output_format", "requirements"): (
        "**STORY STRUCTURE REQUIREMENTS:**\n"
        "- Include {paragraph_min}-{paragraph_max} paragraphs in the paragraphs array\n"
        "- Each paragraph should be approximately {words_per_paragraph} words\n"
        "- Total story length: {word_min}-{word_max} words"
    ),
    ("output_format", "title_rules"): (
        "**TITLE REQUIREMENTS:**\n"
        "- Create a strong, engaging, kid-friendly title\n"
        "- AVOID the pattern \"[Name] and the [Noun]\""
    ),
    ("moral", "growth"): (
        "**IMPORTANT: Do NOT include a \"moral\" field.**\n"
        "The behavior demonstration is the lesson."
    ),
    ("moral", "with_lesson"): (
        "**MORAL (optional):**\n"
        "- Include 1-2 sentence moral based on the lesson requested\n"
        "- Make it natural, not preachy"
    ),
    ("moral", "optional"): (
        "**MORAL (optional):**\n"
        "- You may include a brief moral if one naturally emerges"
    ),
}

# (fallback key) -> path inside prompts.yml
_YAML_PATHS = {
    ("fun", "system"): ("story_generation", "fun", "system"),
    ("growth", "system"): ("story_generation", "growth", "system"),
    ("fun", "structure"): ("story_generation", "fun", "structure"),
    ("growth", "structure"): ("story_generation", "growth", "structure"),
    ("growth", "behavior"): ("story_generation", "growth", "behavior"),
    ("output_format", "json_example"): ("story_generation", "output_format", "json_example"),
    ("output_format", "requirements"): ("story_generation", "output_format", "requirements"),
    ("output_format", "title_rules"): ("story_generation", "output_format", "title_rules"),
    ("moral", "growth"): ("story_generation", "output_format", "moral", "growth"),
    ("moral", "with_lesson"): ("story_generation", "output_format", "moral", "with_lesson"),
    ("moral", "optional"): ("story_generation", "output_format", "moral", "optional"),
}


def get_paragraph_range(length_name: str) -> Tuple[int, int]:
    return PARAGRAPH_RANGES.get((length_name or "").lower(), PARAGRAPH_RANGES["medium"])


def get_word_range(metadata: Optional[Dict[str, Any]]) -> Tuple[int, int]:
    """Word range from length metadata; accepts both key spellings seen in the catalog."""
    metadata = metadata or {}
    word_min = metadata.get("wordsMin") or metadata.get("word_count_min") or DEFAULT_WORD_RANGE[0]
    word_max = metadata.get("wordsMax") or metadata.get("word_count_max") or DEFAULT_WORD_RANGE[1]
    return int(word_min), int(word_max)


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


class PromptAssembler:
    """Assembles V3 story prompts from request data and prompt templates"""

    def __init__(self, prompts_file_path: str = None):
        if prompts_file_path is None:
            prompts_file_path = os.path.join(os.path.dirname(__file__), "prompts.yml")

        self.prompts_file_path = prompts_file_path
        self._prompts_cache: Optional[Dict[str, Any]] = None
        self._load_prompts()

    def _load_prompts(self):
        """Load prompts from YAML file"""
        try:
            with open(self.prompts_file_path, "r", encoding="utf-8") as file:
                self._prompts_cache = yaml.safe_load(file) or {}
            logger.info(f"Loaded story prompts from {self.prompts_file_path}")
        except FileNotFoundError:
            logger.error(f"Prompts file not found: {self.prompts_file_path}")
            self._prompts_cache = {}
        except yaml.YAMLError as e:
            logger.error(f"Error parsing prompts YAML: {e}")
            self._prompts_cache = {}

    def reload_prompts(self):
        self._load_prompts()

    # -------------------------------------------------------------------------
    # Template lookup
    # -------------------------------------------------------------------------

    def _template(self, key: Tuple[str, str], **template_vars) -> str:
        text = self._get_yaml_prompt(key)
        if not text:
            logger.debug(f"Using fallback prompt for {key}")
            text = _FALLBACK_PROMPTS[key]
        try:
            return text.format(**template_vars)
        except (KeyError, IndexError, ValueError) as e:
            logger.warning(f"Bad placeholder in prompt template {key}: {e}, using fallback")
            return _FALLBACK_PROMPTS[key].format(**template_vars)

    def _get_yaml_prompt(self, key: Tuple[str, str]) -> str:
        node: Any = self._prompts_cache
        for part in _YAML_PATHS[key]:
            if not isinstance(node, dict):
                return ""
            node = node.get(part)
        return node.strip() if isinstance(node, str) else ""

    # -------------------------------------------------------------------------
    # Prompt sections
    # -------------------------------------------------------------------------

    def build_prompt(self, request: GenerationRequest) -> str:
        """Build the complete story prompt for a generation request"""
        sections = [
            self._template((request.mode, "system")),
            self.build_character_context(request),
            self.build_story_parameters(request),
        ]
        if request.custom_instructions:
            sections.append(f"## ADDITIONAL GUIDANCE\n\n{request.custom_instructions}")
        sections.append(self.build_format_instructions(request))

        prompt = "\n\n".join(section.rstrip("\n") for section in sections)
        logger.debug(f"[PROMPT] Built {request.mode} prompt ({len(prompt)} chars)")
        return prompt

    def build_character_context(self, request: GenerationRequest) -> str:
        hero = request.hero
        supporting = [c for c in request.characters if c is not hero]

        lines = ["## CHARACTERS", "", f"**{hero.name}** (the hero of our story):", self._appearance(hero)]
        if supporting:
            lines += ["", "**Supporting Characters:**"]
            for character in supporting:
                # Relationship labels only ("Emma's brother"); generic roles stay out of the prompt
                label = f" ({character.relationship})" if character.relationship else ""
                lines.append(f"- **{character.name}{label}**: {self._appearance(character)}")
        return "\n".join(lines)

    @staticmethod
    def _appearance(character: CharacterInfo) -> str:
        return character.appearance_description or character.name

    def build_story_parameters(self, request: GenerationRequest) -> str:
        word_min, word_max = get_word_range(request.length.metadata)
        paragraph_min, paragraph_max = get_paragraph_range(request.length.name)

        lines = ["## STORY REQUIREMENTS", "", f"**Genre:** {request.genre.display_name}"]
        if request.genre.description:
            lines.append(f"({request.genre.description})")

        lines += ["", f"**Tone/Style:** {request.tone.display_name}"]
        if request.tone.description:
            lines.append(f"({request.tone.description})")

        lines += [
            "",
            f"**Length:** {request.length.display_name}",
            f"- Target: {word_min}-{word_max} words total",
            f"- Structure: {paragraph_min}-{paragraph_max} paragraphs",
            f"- Paragraph length: {self._words_per_paragraph(request)} words per paragraph",
        ]

        if request.mode == "growth" and request.growth_topic:
            lines += ["", f"**BEHAVIOR TO TEACH:** {request.growth_topic.display_name}"]
            if request.growth_topic.description:
                lines.append(request.growth_topic.description)
            lines += ["", self._template(("growth", "behavior"))]

        if request.moral_lesson:
            lines += ["", f"**Moral Lesson:** {request.moral_lesson.display_name}"]
            if request.moral_lesson.description:
                lines.append(f"({request.moral_lesson.description})")

        hero_age = next((c.age for c in request.characters if c.role == "hero"), None)
        if hero_age:
            age_text = (
                f"Suitable for a {hero_age}-year-old child. "
                "Use age-appropriate vocabulary, themes, and concepts."
            )
        else:
            age_text = "Create a family-friendly story suitable for young children."
        lines += ["", f"**Age Appropriateness:** {age_text}"]

        return "\n".join(lines)

    def build_format_instructions(self, request: GenerationRequest) -> str:
        word_min, word_max = get_word_range(request.length.metadata)
        paragraph_min, paragraph_max = get_paragraph_range(request.length.name)

        if request.mode == "growth":
            moral_key = ("moral", "growth")
        elif request.moral_lesson:
            moral_key = ("moral", "with_lesson")
        else:
            moral_key = ("moral", "optional")

        return "\n\n".join([
            "## OUTPUT FORMAT",
            f"**CRITICAL: Write {paragraph_min}-{paragraph_max} paragraphs.**",
            "Please respond with a JSON object in the following format:",
            self._template(("output_format", "json_example")),
            self._template(
                ("output_format", "requirements"),
                paragraph_min=paragraph_min,
                paragraph_max=paragraph_max,
                words_per_paragraph=self._words_per_paragraph(request),
                word_min=word_min,
                word_max=word_max,
            ),
            self._template((request.mode, "structure")),
            self._template(("output_format", "title_rules")),
            self._template(moral_key),
        ])

    @staticmethod
    def _words_per_paragraph(request: GenerationRequest) -> str:
        word_min, word_max = get_word_range(request.length.metadata)
        paragraph_min, paragraph_max = get_paragraph_range(request.length.name)
        return f"{_round_half_up(word_min / paragraph_min)}-{_round_half_up(word_max / paragraph_max)}"


_assembler: Optional[PromptAssembler] = None


def get_prompt_assembler() -> PromptAssembler:
    """Shared assembler; prompts.yml is read on first use."""
    global _assembler
    if _assembler is None:
        _assembler = PromptAssembler()
    return _assembler


def build_prompt(request: GenerationRequest) -> str:
    return get_prompt_assembler().build_prompt(request)
