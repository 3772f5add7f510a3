"""Parser for <select> option lists on timetable pages."""
import logging
from typing import List, Union

from bs4 import BeautifulSoup

from processor.models import KeyValuePair

logger = logging.getLogger(__name__)

# The first option of every form select is a "choose ..." placeholder
OPTION_SELECTOR = 'select[name="TimeTableForm[{field}]"] option:not(:first-child)'


def option_selector(field: str) -> str:
    """Build the selector for the options of a TimeTableForm field."""
    return OPTION_SELECTOR.format(field=field)


def parse_select(document: Union[str, BeautifulSoup], selector: str) -> List[KeyValuePair]:
    """
    Extract option-like elements as key/value pairs.

    Args:
        document: HTML text or an already parsed document
        selector: CSS selector matching the option elements

    Returns:
        KeyValuePair list in document order (empty when nothing matches)
    """
    if isinstance(document, str):
        document = BeautifulSoup(document, 'html.parser')

    options = document.select(selector)
    logger.debug(f"Selector {selector!r} matched {len(options)} options")

    return [
        KeyValuePair(id=option.get('value', ''), name=option.get_text())
        for option in options
    ]
