"""
Centralized configuration — all env vars and pipeline constants.
"""
import os


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis (job queues + circuit breaker state) ───────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── OpenAI ────────────────────────────────────────────────────────────────────
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')

# ── Capability time bounds (seconds) ─────────────────────────────────────────
SCRAPE_TIMEOUT = int(os.getenv('SCRAPE_TIMEOUT', '30'))
GENERATION_TIMEOUT = int(os.getenv('GENERATION_TIMEOUT', '60'))

# ── Job policy ────────────────────────────────────────────────────────────────
JOB_TIMEOUT = int(os.getenv('JOB_TIMEOUT', '180'))
JOB_ATTEMPTS = int(os.getenv('JOB_ATTEMPTS', '5'))
BACKOFF_BASE = int(os.getenv('BACKOFF_BASE', '5'))
KEEP_COMPLETED_SECONDS = int(os.getenv('KEEP_COMPLETED_SECONDS', str(24 * 3600)))
KEEP_COMPLETED_COUNT = int(os.getenv('KEEP_COMPLETED_COUNT', '1000'))
KEEP_FAILED_SECONDS = int(os.getenv('KEEP_FAILED_SECONDS', str(7 * 24 * 3600)))

# ── Worker host ───────────────────────────────────────────────────────────────
# 1 per queue keeps us under the scraper/generator rate limits
WORKER_CONCURRENCY = int(os.getenv('WORKER_CONCURRENCY', '1'))
SHUTDOWN_GRACE = int(os.getenv('SHUTDOWN_GRACE', '60'))
MAINTENANCE_INTERVAL = int(os.getenv('MAINTENANCE_INTERVAL', '60'))

# ── Slack notifications ──────────────────────────────────────────────────────
SLACK_WEBHOOK_URL = os.getenv('SLACK_WEBHOOK_URL')

# ── Local dev ─────────────────────────────────────────────────────────────────
MOCK_PIPELINE = bool(os.getenv('MOCK_PIPELINE'))
SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-change-me')
PORT = int(os.getenv('PORT', '8080'))

# ── Pipeline stage definitions ────────────────────────────────────────────────
QUEUE_NAMES = {
    'scrape': 'scraping',
    'analyze': 'analysis',
    'draft': 'drafting',
}
