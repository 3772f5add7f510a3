"""Schedule parser for the events JSON embedded in timetable pages."""
import json
import logging
import re
from enum import Enum
from typing import List

from processor.models import RawEvent, ScheduleEvent

logger = logging.getLogger(__name__)


class NoScheduleDataError(ValueError):
    """Response carries no events payload."""


class ScheduleParseError(ValueError):
    """Events payload found but not usable."""


class ScheduleContext(Enum):
    """Which query produced the events; decides the third title segment."""
    GROUP = 'group'
    TEACHER = 'teacher'

    @property
    def counterpart_field(self) -> str:
        """ScheduleEvent field holding the third title segment."""
        return 'teacher' if self is ScheduleContext.GROUP else 'group'


class ScheduleParser:
    """Parser turning a timetable page into ScheduleEvent objects."""

    # Event objects are flat, so the first "}]" closes the array
    EVENTS_PATTERN = re.compile(r'"events":(\[\{.*?\}\])')

    UPDATED_MARKER = 'lesson-updated'

    LESSON_TYPES = {
        'lesson-1': 'lecture',
        'lesson-2': 'practice',
        'lesson-5': 'exam',
        'lesson-9': 'lecture_in_absentia',
        'lesson-10': 'practice_in_absentia',
    }

    def parse(self, html: str, context: ScheduleContext) -> List[ScheduleEvent]:
        """
        Extract and normalize all events from a response document.

        Args:
            html: Raw response body
            context: Query type the document answers

        Returns:
            List of ScheduleEvent objects

        Raises:
            NoScheduleDataError: If the document has no events array
            ScheduleParseError: If the events array is malformed
        """
        fragment = self.extract_fragment(html)
        raw_events = self.parse_fragment(fragment)
        events = [self.to_schedule_event(raw, context) for raw in raw_events]

        logger.info(f"Parsed {len(events)} {context.name.lower()} schedule events")
        return events

    def extract_fragment(self, html: str) -> str:
        """
        Cut the events JSON array out of the document text.

        Args:
            html: Raw response body

        Returns:
            JSON array literal

        Raises:
            NoScheduleDataError: If the marker is absent or the array is empty
        """
        match = self.EVENTS_PATTERN.search(html)
        if not match:
            logger.warning(f"No events data in response of {len(html)} characters")
            raise NoScheduleDataError('No events data found. Check the dates range')

        return match.group(1)

    def parse_fragment(self, fragment: str) -> List[RawEvent]:
        """
        Decode the events array into validated raw records.

        Args:
            fragment: JSON array literal

        Returns:
            List of RawEvent objects

        Raises:
            ScheduleParseError: If the JSON is invalid or a record is incomplete
        """
        try:
            records = json.loads(fragment)
        except json.JSONDecodeError as e:
            raise ScheduleParseError(f"Malformed events payload: {e}") from e

        return [self._to_raw_event(record) for record in records]

    def _to_raw_event(self, record: dict) -> RawEvent:
        try:
            return RawEvent(
                title=str(record['title']),
                class_name=str(record['className']),
                start=record['start'],
                end=record['end']
            )
        except (KeyError, TypeError) as e:
            raise ScheduleParseError(f"Incomplete event record: {record!r}") from e

    def to_schedule_event(self, raw: RawEvent, context: ScheduleContext) -> ScheduleEvent:
        """
        Map a raw record to a ScheduleEvent.

        The title holds "name\\n place\\n teacher-or-group"; missing
        trailing segments stay None.

        Args:
            raw: Validated raw record
            context: Query type, selects teacher or group for segment three

        Returns:
            ScheduleEvent object
        """
        segments = [
            segment.strip().replace('&lt;', '')
            for segment in raw.title.split('\n')
        ]
        segments += [None] * (3 - len(segments))
        name, place, counterpart = segments[:3]

        event = ScheduleEvent(
            name=name,
            place=place,
            type=self.lesson_type(raw.class_name),
            start=raw.start,
            end=raw.end,
            updated=self.UPDATED_MARKER in raw.class_name
        )
        setattr(event, context.counterpart_field, counterpart)
        return event

    def lesson_type(self, class_name: str) -> str:
        """
        Resolve the lesson type of a className.

        Unknown codes are passed through unchanged.
        """
        code = class_name.replace(self.UPDATED_MARKER, '').strip()
        return self.LESSON_TYPES.get(code, class_name)
