"""
Mock capabilities for local development and tests.

Activated with MOCK_PIPELINE=1 — the whole pipeline runs end-to-end without
network access or API keys. Results are derived from the input so different
leads get different (but stable) output.
"""
import hashlib
import logging
import time

from leadpipe.pipeline.base import (
    Scraper, Generator, ScrapeResult, AnalysisResult, DraftResult,
)

logger = logging.getLogger('pipeline.mock')

_BUSINESS_MODELS = ['SaaS', 'Agency', 'E-commerce', 'B2B Services', 'Marketplace']


def _pick(seed, options):
    digest = hashlib.md5(seed.encode()).hexdigest()
    return options[int(digest, 16) % len(options)]


class MockScraper(Scraper):

    def __init__(self, delay=0.0):
        self.delay = delay

    def scrape(self, domain):
        if self.delay:
            time.sleep(self.delay)
        name = domain.split('.')[0].capitalize()
        logger.info("[mock] Scraped %s", domain)
        return ScrapeResult(
            raw_text=f"{name}\n\nWelcome to {name}. We help teams move faster.",
            meta_description=f"{name} — official site",
            social_links=[f'https://linkedin.com/company/{name.lower()}'],
            tech_stack={'Framework': _pick(domain, ['Next.js', 'Gatsby', 'WordPress'])},
        )


class MockGenerator(Generator):

    model_id = 'mock-generator'

    def __init__(self, delay=0.0):
        self.delay = delay

    def analyze(self, raw_text, meta_description, tech_stack):
        if self.delay:
            time.sleep(self.delay)
        first_line = (raw_text or 'Unknown').split('\n', 1)[0]
        return AnalysisResult(
            business_model=_pick(first_line, _BUSINESS_MODELS),
            pain_points=['Manual lead follow-up', 'Slow support response times'],
            suggested_solutions=['AI support chatbot', 'Automated CRM enrichment'],
            model_id=self.model_id,
            revenue_estimate='Unknown',
        )

    def draft(self, analysis):
        if self.delay:
            time.sleep(self.delay)
        solution = analysis.suggested_solutions[0] if analysis.suggested_solutions else 'automation'
        return DraftResult(
            subject_line=f"Quick question about your {analysis.business_model} ops",
            body_text=(
                f"Hi there,\n\nNoticed a few things that often slow down {analysis.business_model} teams: "
                f"{', '.join(analysis.pain_points).lower()}. We build {solution.lower()} tooling "
                "that takes that off your plate.\n\nWorth a 15-minute call next week?"
            ),
            template_version='mock',
        )
