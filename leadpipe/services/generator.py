"""
OpenAI Generator — business analysis and cold-email copy via chat completions.

SDK exceptions are translated into tagged GenerationErrors here, at the
boundary, so nothing downstream has to sniff error messages.
"""
import json
import logging
from typing import Dict, Optional

import openai

from leadpipe.pipeline.base import (
    Generator, AnalysisResult, DraftResult,
    GenerationError, RateLimitedError, SafetyBlockedError, GenerationTimeout, ErrorKind,
)

logger = logging.getLogger('services.generator')

TEMPLATE_VERSION = 'v1.0'

ANALYST_PROMPT = """You are an expert business analyst and sales strategist.
Analyze the following company data scraped from their website and identify:
1. Their business model (B2B, B2C, SaaS, Agency, etc.)
2. Pain points they are likely facing based on their public presence.
3. How an AI automation agency (chatbots, workflow automation, AI agents) could specifically help them.
4. Their revenue range if it can be estimated (e.g. "$1M - $5M/yr"), otherwise "Unknown".

RAW TEXT:
{raw_text}

META DESCRIPTION: {meta_description}
TECH STACK: {tech_stack}

Respond ONLY with JSON:
{{
  "business_model": "string",
  "pain_points": ["3-5 items"],
  "suggested_solutions": ["3-5 specific AI automation ideas"],
  "revenue_estimate": "string"
}}"""

COPYWRITER_PROMPT = """You are a copywriter specializing in cold outreach.
Using the analysis below, write a personalized cold email to the decision-maker
at this company. The goal is a 15-minute discovery call about how AI automation
can solve their specific pain points.

BUSINESS MODEL: {business_model}
PAIN POINTS: {pain_points}
SUGGESTED SOLUTIONS: {solutions}

Guidelines:
- Under 150 words, conversational but professional.
- Lead with their problems, not our features.
- End with a low-friction call to action.

Respond ONLY with JSON:
{{
  "subject_line": "under 50 characters",
  "body_text": "the email body in plain text"
}}"""


class OpenAIGenerator(Generator):

    def __init__(self, client, model='gpt-4o-mini', breaker=None):
        self.client = client
        self.model = model
        self.breaker = breaker

    @classmethod
    def from_api_key(cls, api_key, model='gpt-4o-mini', timeout=60, breaker=None):
        # The job queue owns retry, so the SDK must not retry on its own
        client = openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        return cls(client, model=model, breaker=breaker)

    def analyze(self, raw_text: str, meta_description: Optional[str],
                tech_stack: Dict[str, str]) -> AnalysisResult:
        prompt = ANALYST_PROMPT.format(
            raw_text=raw_text,
            meta_description=meta_description or 'N/A',
            tech_stack=json.dumps(tech_stack or {}),
        )
        data = self._complete_json(prompt)
        return AnalysisResult.from_generated(data, model_id=self.model)

    def draft(self, analysis: AnalysisResult) -> DraftResult:
        prompt = COPYWRITER_PROMPT.format(
            business_model=analysis.business_model,
            pain_points=', '.join(analysis.pain_points),
            solutions=', '.join(analysis.suggested_solutions),
        )
        data = self._complete_json(prompt)
        return DraftResult.from_generated(data, template_version=TEMPLATE_VERSION)

    def close(self):
        self.client.close()

    # ── Internals ─────────────────────────────────────────────────────

    def _complete_json(self, prompt):
        if self.breaker is not None:
            return self.breaker.call(self._request, prompt)
        return self._request(prompt)

    def _request(self, prompt):
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                response_format={"type": "json_object"},
            )
        except Exception as e:
            raise translate_error(e) from e

        choice = response.choices[0]
        if choice.finish_reason == 'content_filter':
            raise SafetyBlockedError(f"{self.model} withheld the response (content_filter)")

        try:
            return json.loads(choice.message.content or '')
        except json.JSONDecodeError as e:
            raise GenerationError(f"{self.model} returned invalid JSON: {e}") from e


def translate_error(exc) -> GenerationError:
    """Map an OpenAI SDK exception to a tagged GenerationError."""
    if isinstance(exc, openai.RateLimitError):
        # covers both 429 throttling and insufficient_quota
        return RateLimitedError(str(exc))
    if isinstance(exc, openai.APITimeoutError):
        return GenerationTimeout(str(exc))
    if isinstance(exc, openai.APIConnectionError):
        return GenerationError(str(exc), kind=ErrorKind.TRANSIENT)
    if isinstance(exc, openai.BadRequestError):
        if getattr(exc, 'code', None) == 'content_policy_violation':
            return SafetyBlockedError(str(exc))
        return GenerationError(str(exc))
    if isinstance(exc, openai.InternalServerError):
        return GenerationError(str(exc), kind=ErrorKind.TRANSIENT)
    if isinstance(exc, GenerationError):
        return exc
    return GenerationError(str(exc))
