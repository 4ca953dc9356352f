"""Prompt templates sent to the summarization and generation providers."""

import math
from typing import Iterable

from ..schemas import RetrievedReference

SUMMARY_SYSTEM_PROMPT = "You are an expert software engineer."

SUMMARY_PROMPT_TEMPLATE = (
    "You're onboarding a junior dev. Explain what this file does: {path}\n\n"
    "Code:\n{code}\n\n"
    "Keep the summary under 100 words."
)

DIFF_SUMMARY_PROMPT_TEMPLATE = (
    "Summarize the following Git diff in bullet points. "
    "Mention changed files and functions. Keep it under 100 words:\n\n{diff}"
)

ANSWER_PROMPT_TEMPLATE = """You are an AI assistant who answers questions about codebases for technical interns.
START CONTEXT BLOCK
{context}
END CONTEXT BLOCK
START QUESTION
{question}
END QUESTION
Instructions:
- Base answers strictly on the CONTEXT BLOCK.
- If no answer is found in the context, say "I am sorry, but I don't know the answer."
- Don't apologize unless there's new information.
- Output in markdown with code snippets where applicable.
- Answer in a detailed and clear way."""


def estimate_tokens(text: str) -> int:
    """Rough token count: one unit per four characters."""
    return math.ceil(len(text) / 4)


def build_summary_prompt(path: str, code: str, max_chars: int) -> str:
    return SUMMARY_PROMPT_TEMPLATE.format(path=path, code=code[:max_chars])


def build_diff_prompt(diff: str, max_chars: int) -> str:
    return DIFF_SUMMARY_PROMPT_TEMPLATE.format(diff=diff[:max_chars])


def build_context(references: Iterable[RetrievedReference]) -> str:
    blocks = [
        f"source: {ref.file_name}\n"
        f"code content: {ref.source_code}\n"
        f"summary of file: {ref.summary}\n"
        for ref in references
    ]
    return "\n".join(blocks)


def build_answer_prompt(question: str, context: str) -> str:
    return ANSWER_PROMPT_TEMPLATE.format(context=context, question=question)
