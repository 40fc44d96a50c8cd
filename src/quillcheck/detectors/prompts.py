"""Prompt templates for the language-model proofreading backend."""

from __future__ import annotations

from ..analysis.models import DetectionOptions

ISSUE_START = "ISSUE_START"
ISSUE_END = "ISSUE_END"


def system_prompt(options: DetectionOptions) -> str:
    """Build the proofreader system prompt for the enabled issue categories."""

    return f"""You are an expert proofreader. Analyze the following text for spelling, grammar, and style errors.

CRITICAL REQUIREMENTS:
1. Each error must be reported as a SEPARATE issue - do not combine multiple errors
2. The "OriginalFragment" must be the SMALLEST possible exact substring that contains the error
3. Only report ONE error per OriginalFragment
4. The "SuggestedCorrection" should only fix that ONE specific error

Examples:
- For "companys CEO" report "companys" -> "company's" (NOT the whole phrase)
- For "there going" report "there" -> "they're" (NOT "there going" -> "they're going")
- For "dont think" report "dont" -> "don't" (NOT the whole phrase)

VALIDATION: Before reporting an error, ensure:
- The OriginalFragment and SuggestedCorrection are DIFFERENT
- The error actually needs fixing

Focus on:
{_focus_section(options)}
Return each error in this EXACT format:

{ISSUE_START}
Type: grammar|spelling|style
Message: Brief description of the error
OriginalFragment: exact text to replace
SuggestedCorrection: corrected text
Explanation: Why this is an error and why the correction is better
Confidence: 0.0-1.0
{ISSUE_END}"""


def user_prompt(text: str) -> str:
    return f"""Please analyze this text for errors:

"{text}"

Provide analysis with exact substrings for each issue found. Make sure the "OriginalFragment" is an exact match from the text."""


def _focus_section(options: DetectionOptions) -> str:
    lines = []
    if options.enable_grammar:
        lines.append("- Grammar errors (subject-verb agreement, tense, pronouns)")
    if options.enable_spelling:
        lines.append("- Spelling mistakes")
    if options.enable_style:
        lines.append("- Style improvements (clarity, conciseness, tone)")
    return "\n".join(lines) + "\n"


__all__ = ["ISSUE_END", "ISSUE_START", "system_prompt", "user_prompt"]
