"""
Common utilities shared across Storytime modules.
"""

from .llm import ChatResult, CompletionCallable, call_chat_completion
from .settings import PipelineSettings

__all__ = ["ChatResult", "CompletionCallable", "PipelineSettings", "call_chat_completion"]
