"""
feedcrawl: crawl orchestration for Twitter lists and YouTube channels.

Jobs are admitted by the JobLifecycleManager, run by a JobExecutor on a
browser session leased from the platform's BrowserResourcePool, and driven
by the ExtractionLoop until one of its stop conditions fires.
"""

__version__ = "0.1.0"
