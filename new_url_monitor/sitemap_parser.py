import logging
import re
from typing import List, Optional

logger = logging.getLogger(__name__)

# Matched textually; input may be truncated or HTML-wrapped and is never validated.
LOC_PATTERN = re.compile(r"<loc>([^<]+)</loc>")


def extract_locs(xml_content: Optional[str]) -> List[str]:
    """
    Extracts the contents of every <loc>...</loc> tag.

    Args:
        xml_content: Sitemap or sitemap index markup, possibly malformed.

    Returns:
        The trimmed tag contents in document order, duplicates included.
        An empty list if nothing matches.
    """
    if not xml_content:
        return []
    locs = [match.group(1).strip() for match in LOC_PATTERN.finditer(xml_content)]
    logger.debug(f"Extracted {len(locs)} <loc> entries.")
    return locs
