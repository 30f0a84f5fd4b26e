"""Tests for leadpipe.services.scraper — page fetch and extraction."""
from unittest.mock import MagicMock

import pytest
import requests

from leadpipe.pipeline.base import ErrorKind, FetchError, ScrapeTimeout, RAW_TEXT_LIMIT
from leadpipe.services.scraper import HttpScraper, extract


PAGE = """
<html data-wf-site="abc">
<head>
  <meta name="description" content="We build rockets.">
  <script src="https://www.googletagmanager.com/gtag/js"></script>
  <script src="/wp-content/themes/x.js"></script>
</head>
<body>
  <div id="__next">
    <h1>Acme Rockets</h1>
    <p>Launch faster.</p>
    <p>   </p>
    <a href="https://twitter.com/acme">Twitter</a>
    <a href="https://www.linkedin.com/company/acme">LinkedIn</a>
    <a href="https://twitter.com/acme">Twitter again</a>
    <a href="https://box.com/acme">Box</a>
    <a href="/about">About</a>
  </div>
</body>
</html>
"""


def _response(status=200, text=PAGE):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    return resp


class TestExtract:

    def test_meta_description(self):
        assert extract(PAGE).meta_description == 'We build rockets.'

    def test_og_description_fallback(self):
        html = '<meta property="og:description" content="OG text"><p>x</p>'
        assert extract(html).meta_description == 'OG text'

    def test_raw_text_from_headings_and_paragraphs(self):
        assert extract(PAGE).raw_text == 'Acme Rockets\n\nLaunch faster.'

    def test_raw_text_truncated(self):
        html = '<p>' + 'a' * (RAW_TEXT_LIMIT + 10) + '</p>'
        assert len(extract(html).raw_text) == RAW_TEXT_LIMIT

    def test_social_links(self):
        assert extract(PAGE).social_links == [
            'https://twitter.com/acme',
            'https://www.linkedin.com/company/acme',
        ]

    def test_tech_stack_first_match_per_category(self):
        stack = extract(PAGE).tech_stack
        assert stack['Framework'] == 'Next.js'
        assert stack['CMS'] == 'WordPress'
        assert stack['Analytics'] == 'Google Analytics'
        assert 'E-commerce' not in stack

    def test_empty_page(self):
        result = extract('')
        assert result.raw_text == ''
        assert result.meta_description is None
        assert result.social_links == []
        assert result.tech_stack == {}


class TestHttpScraper:

    def test_scrape_prefixes_https(self):
        session = MagicMock()
        session.get.return_value = _response()
        result = HttpScraper(timeout=7, session=session).scrape('acme.com')

        assert result.raw_text.startswith('Acme Rockets')
        args, kwargs = session.get.call_args
        assert args[0] == 'https://acme.com'
        assert kwargs['timeout'] == 7

    def test_timeout(self):
        session = MagicMock()
        session.get.side_effect = requests.Timeout('slow')
        with pytest.raises(ScrapeTimeout) as exc_info:
            HttpScraper(session=session).scrape('acme.com')
        assert exc_info.value.kind == ErrorKind.TRANSIENT

    def test_connection_error_is_transient(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError('refused')
        with pytest.raises(FetchError) as exc_info:
            HttpScraper(session=session).scrape('acme.com')
        assert exc_info.value.kind == ErrorKind.TRANSIENT

    @pytest.mark.parametrize('status', [429, 500, 503])
    def test_retryable_http_status(self, status):
        session = MagicMock()
        session.get.return_value = _response(status)
        with pytest.raises(FetchError) as exc_info:
            HttpScraper(session=session).scrape('acme.com')
        assert exc_info.value.kind == ErrorKind.TRANSIENT

    @pytest.mark.parametrize('status', [403, 404])
    def test_client_error_is_generic(self, status):
        session = MagicMock()
        session.get.return_value = _response(status)
        with pytest.raises(FetchError) as exc_info:
            HttpScraper(session=session).scrape('acme.com')
        assert exc_info.value.kind == ErrorKind.GENERIC

    def test_goes_through_breaker(self):
        breaker = MagicMock()
        scraper = HttpScraper(session=MagicMock(), breaker=breaker)
        scraper.scrape('acme.com')
        breaker.call.assert_called_once_with(scraper._scrape, 'acme.com')

    def test_close(self):
        session = MagicMock()
        HttpScraper(session=session).close()
        session.close.assert_called_once()
