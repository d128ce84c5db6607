"""
New URL Monitor - Source Package

Modules:
- config: Configuration defaults, loading and validation
- errors: Exception types for fetch and persistence failures
- sitemap_fetcher: Headless-browser and HTTP sitemap fetching
- sitemap_parser: <loc> extraction tolerant of malformed markup
- data_processor: Archive diffing, output files and run log
- main: Discovery, aggregation and the command-line entry point
"""

__version__ = "1.0.0"
