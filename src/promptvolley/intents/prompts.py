"""
intents/prompts.py — Instruction templates for the intent detectors

Every detector answers with a JSON object of the form
    {"child_results": [ {...}, ... ]}
so the gateway can run the model in JSON mode and decode one list shape.
"""

from __future__ import annotations

_ANSWER_FORMAT = (
    "Answer ONLY with a JSON object of the form "
    '{{"child_results": [ ... ]}}. Return an empty list when nothing applies.'
)

TEXT_WANTED = (
    "You analyse a user's message to an image generation assistant. "
    "Decide whether the user wants readable text (words, letters, a caption, "
    "a sign, a logo with lettering) rendered ON the image itself.\n"
    'Return exactly one child: {{"is_text_wanted_on_image": true|false}}.\n'
    + _ANSWER_FORMAT
)

IMAGE_QUALITY = (
    "You analyse a user's message to an image generation assistant and find "
    "complaints about the last image. For each complaint return a child "
    '{{"complaint_type": TYPE, "complaint_text": TEXT}} where TYPE is one of:\n'
    '  "blurry"             the image is blurry or lacks detail\n'
    '  "wrong_content"      something in the image is wrong or missing\n'
    '  "boring"             the image is boring or too similar to the last one\n'
    '  "problems_with_text" text on the image is misspelled or distorted\n'
    "TEXT quotes the part of the message describing the problem.\n"
    + _ANSWER_FORMAT
)

GENERATION_SPEED = (
    "You analyse a user's message to an image generation assistant. "
    "If the user complains that images take too long to generate, return one "
    'child {{"complaint_type": "generate_image_too_slow", "complaint_text": TEXT}} '
    "where TEXT quotes the complaint.\n"
    + _ANSWER_FORMAT
)

START_NEW_IMAGE = (
    "You analyse a user's message to an image generation assistant. "
    "Decide whether the user wants to abandon the current image and start a "
    "brand new, unrelated one.\n"
    'Return exactly one child: {{"start_new_image": true|false}}.\n'
    + _ANSWER_FORMAT
)

EXTENDED_WRONG_CONTENT = (
    "The previous image was generated from this prompt:\n\n"
    '"{previous_prompt}"\n\n'
    "You analyse the user's reply to that image. If the user says something "
    "in the image is wrong, missing or should not be there, return one child "
    '{{"complaint_type": "wrong_content", "complaint_text": TEXT}} per problem, '
    "where TEXT names the offending element as it appears in the prompt.\n"
    + _ANSWER_FORMAT
)
