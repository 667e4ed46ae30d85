"""
agent/response_assembler.py — Human-readable turn summary

Pure formatting: states the new image request, lists what was changed to get
a better result (each description once, in first-seen order), and tells the
user generation is under way.
"""

from __future__ import annotations

from typing import Iterable


def unique_changes(changes: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for change in changes:
        if change and change not in seen:
            seen.add(change)
            ordered.append(change)
    return ordered


def assemble_summary(prompt: str, changes: Iterable[str]) -> str:
    summary = f'Here is the new image request we just made:\n\n"{prompt}"\n'
    distinct = unique_changes(changes)
    if distinct:
        summary += "\nand the changes I made to improve the result:\n\n"
        summary += "\n".join(distinct) + "\n"
    summary += "\nLet's see how this one turns out"
    return summary
