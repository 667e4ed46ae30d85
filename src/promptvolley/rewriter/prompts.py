"""
rewriter/prompts.py — System prompt for the image prompt rewriter
"""

from __future__ import annotations

from typing import Optional

_BASE = (
    "You are an assistant that writes prompts for an image generation model. "
    "Turn the user's latest message into a single, vivid, self-contained image "
    "prompt. When the user is refining an earlier image, keep everything they "
    "did not ask to change.\n\n"
    "Answer ONLY with a JSON object:\n"
    '{"prompt": "<image prompt>", '
    '"negative_prompt": "<things to keep out of the image, may be empty>", '
    '"user_input_has_complaints": true|false}\n'
)

_WRONG_CONTENT = (
    "\nThe user said this part of the last image was wrong. Remove or correct it, "
    'and list it in the negative prompt if it should not appear at all: "{text}"\n'
)

_NEW_IMAGE = (
    "\nThe user wants to start over with a completely new image. "
    "Ignore any earlier images.\n"
)


def build_system_prompt(
    history_context: str,
    wrong_content_text: Optional[str] = None,
    is_new_session: bool = False,
) -> str:
    parts = [_BASE]
    if is_new_session:
        parts.append(_NEW_IMAGE)
    elif history_context:
        parts.append("\n" + history_context + "\n")
    if wrong_content_text:
        parts.append(_WRONG_CONTENT.format(text=wrong_content_text))
    return "".join(parts)
