"""
Prompt templates for generated learning content, one per ContentType.
"""

from typing import Dict, Optional, Union

from skooly.models.ai_material import ContentType


ATTACHED_SOURCE_NOTE = (
    "(The source material is attached as a file. Use it as the primary source.)"
)


NOTES_TEMPLATE = """You are an expert tutor. Create comprehensive reading notes.
The user wants notes on: {title} (Topic: {topic}).

Context/Content provided:
{context}

Use Markdown formatting. Include a summary, key concepts, and detailed explanations."""

SLIDES_TEMPLATE = """You are a presentation expert. Create content for a slide deck.
Topic: {title}.

Context/Content provided:
{context}

Separate each slide with a horizontal rule '---'.
For each slide, provide a '# Title' and bullet points.
The first slide should be a Title Slide."""

PDF_TEMPLATE = """You are a professional technical writer. Create a well-structured document.
Topic: {title}.

Context/Content provided:
{context}

Use Markdown. Include a Title, Table of Contents (if long), and clear sections."""

CODE_GUIDE_TEMPLATE = """You are a senior developer. Create a code guide/tutorial.
Topic: {title}.

Context/Content provided:
{context}

Explain functionality, break it down, and provide usage examples.
Use Markdown with code blocks."""

MCQ_TEMPLATE = """You are an experienced examiner. Write a multiple-choice quiz.
Topic: {title} (Topic: {topic}).

Context/Content provided:
{context}

Write 10 questions that test understanding, not just recall.
Return ONLY a JSON array, no prose and no code fences. Each element must be:
{{"question": "...", "options": ["A", "B", "C", "D"], "answer": "<one of the options>", "explanation": "..."}}
Every question has exactly 4 options and exactly one correct answer."""

PODCAST_TEMPLATE = """You are a podcast producer for a university study show.
Write a conversational episode about: {title} (Topic: {topic}).

Context/Content provided:
{context}

Two hosts discuss the material: Alex explains, Sam asks the questions a student would ask.
Aim for 3-5 minutes of speech.
Output ONLY dialogue lines, each starting with "Alex: " or "Sam: ".
No stage directions, headings, or sound cues."""


PROMPT_TEMPLATES: Dict[ContentType, str] = {
    ContentType.NOTES: NOTES_TEMPLATE,
    ContentType.SLIDES: SLIDES_TEMPLATE,
    ContentType.PDF: PDF_TEMPLATE,
    ContentType.CODE_GUIDE: CODE_GUIDE_TEMPLATE,
    ContentType.MCQ: MCQ_TEMPLATE,
    ContentType.PODCAST: PODCAST_TEMPLATE,
}


def build_prompt(
    content_type: Union[ContentType, str],
    title: str,
    topic: Optional[str],
    context: str,
    customization: Optional[str] = None,
) -> str:
    """
    Fill the template for ``content_type``.

    An empty ``context`` means the source travels as an attached file part.

    Raises:
        ValueError: Unknown content type
    """
    content_type = ContentType(content_type)

    prompt = PROMPT_TEMPLATES[content_type].format(
        title=title,
        topic=topic or title,
        context=context.strip() if context and context.strip() else ATTACHED_SOURCE_NOTE,
    )

    if customization and customization.strip():
        prompt += f"\n\nFocus on: {customization.strip()}"

    return prompt


STUDY_CHAT_TEMPLATE = """You are a helpful study assistant.
The user is studying the following material:

Title: {title}
Content: {content}

Answer questions specifically about this material."""


def build_study_chat_instruction(title: str, content: str) -> str:
    return STUDY_CHAT_TEMPLATE.format(title=title, content=content)
