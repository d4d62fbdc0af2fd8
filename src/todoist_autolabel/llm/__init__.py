"""Label classifiers: OpenAI-compatible LLM client and an offline keyword fallback."""
