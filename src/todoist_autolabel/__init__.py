"""Label new Todoist inbox tasks from a fixed taxonomy using an LLM."""

__version__ = "0.1.0"
