"""property-scraper — resilient scraping core for real estate listings.

Site-specific sources run on one engine that rate limits, circuit-breaks,
retries and bulk-upserts; an orchestrator runs them and records their status.
"""
__version__ = "1.0.0"
