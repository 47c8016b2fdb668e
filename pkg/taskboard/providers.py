"""
Text-completion providers for task extraction.

A provider is anything with ``complete(prompt) -> str``. The extraction
client never talks to a vendor SDK directly, so providers can be swapped
per deployment (or per test).
"""
import json
import logging
import re
from datetime import date
from typing import Optional

from openai import OpenAI

from .config import Config
from .rules import extract_by_rules

logger = logging.getLogger(__name__)


class OpenAIProvider:
    """OpenAI-compatible chat completion provider (OpenAI, Groq, OpenRouter...)."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        temperature: float = 0.2,
        timeout: float = 30.0,
    ):
        if not api_key:
            raise ValueError("No API key provided for the model provider.")
        self.model = model
        self.temperature = temperature
        # SDK retries disabled: retry policy belongs to the caller
        self.client = OpenAI(
            api_key=api_key,
            base_url=base_url or None,
            timeout=timeout,
            max_retries=0,
        )

    def complete(self, prompt: str) -> str:
        logger.info("LLM: requesting completion from model=%s", self.model)
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
            response_format={"type": "json_object"},
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


class RuleBasedProvider:
    """
    Offline deterministic provider used when no model is configured.

    Reads the reference date and the delimited user text back out of the
    extraction prompt and answers with keyword-rule extraction.
    """

    REFERENCE_RE = re.compile(r"Reference date:\s*(\d{4}-\d{2}-\d{2})")
    TEXT_RE = re.compile(r"<text>\s*(.*?)\s*</text>", re.DOTALL)

    def complete(self, prompt: str) -> str:
        m = self.REFERENCE_RE.search(prompt)
        reference = date.fromisoformat(m.group(1)) if m else date.today()
        m = self.TEXT_RE.search(prompt)
        text = m.group(1) if m else prompt
        return json.dumps(extract_by_rules(text, reference))


def build_provider(cfg: Config):
    """Create the provider named in the config."""
    if cfg.llm_provider == "openai":
        return OpenAIProvider(
            api_key=cfg.llm_api_key,
            model=cfg.llm_model,
            base_url=cfg.llm_base_url,
            temperature=cfg.llm_temperature,
            timeout=cfg.llm_timeout,
        )
    if cfg.llm_provider == "rules":
        logger.info("LLM: no model configured, using offline rule-based extraction")
        return RuleBasedProvider()
    raise ValueError(f"Unknown llm_provider: {cfg.llm_provider}")
