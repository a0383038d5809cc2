"""Prompt compiler and template loading."""

from diamondforge.prompts.compiler import (
    CompiledPrompt,
    PromptCompileError,
    PromptCompiler,
    render,
)
from diamondforge.prompts.loader import (
    TEMPLATES_PATH,
    PromptLoader,
    PromptTemplate,
    TemplateNotFoundError,
    TemplateParseError,
)

__all__ = [
    "TEMPLATES_PATH",
    "CompiledPrompt",
    "PromptCompileError",
    "PromptCompiler",
    "PromptLoader",
    "PromptTemplate",
    "TemplateNotFoundError",
    "TemplateParseError",
    "render",
]
