"""Facade over the timetable web application."""
import logging
import time
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from processor.models import (
    GroupScheduleRequest,
    KeyValuePair,
    ScheduleEvent,
    TeacherScheduleRequest,
)
from processor.schedule_parser import ScheduleContext, ScheduleParser
from processor.select_parser import option_selector, parse_select
from scraper.form_submitter import FormSubmitter
from scraper.session import SessionState
from scraper.transport import Transport
from storage.ttl_cache import TTLCache, make_key

logger = logging.getLogger(__name__)


class MkrService:
    """
    Typed read API over the timetable application's HTML forms.

    One instance owns the single backend session: its token and cookie
    are only touched through the form submitter and transport.
    """

    COURSES = range(1, 8)
    COURSE_LABEL = '{} Курс'
    DATE_FORMAT = '%d.%m.%Y'
    DEFAULT_WINDOW_DAYS = 7
    # Value is not used by the backend for the weekly view
    INDICATION_DAYS = 5

    def __init__(
        self,
        base_url: str,
        timeout: int = 30,
        cache_ttl: float = 3600,
        max_form_attempts: Optional[int] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the service.

        Args:
            base_url: Base URL of the timetable application
            timeout: HTTP request timeout in seconds (default: 30)
            cache_ttl: Lifetime of cached lists and schedules in seconds (default: 1 hour)
            max_form_attempts: Optional cap on stale-token retries (default: unbounded)
            clock: Source of the current time in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.clock = clock
        self.session = SessionState()
        self.submitter = FormSubmitter(
            Transport(self.session, timeout=timeout),
            max_attempts=max_form_attempts
        )
        self.schedule_parser = ScheduleParser()

        self._structures: List[KeyValuePair] = []
        self.chairs = TTLCache('chairs', cache_ttl, clock)
        self.faculties = TTLCache('faculties', cache_ttl, clock)
        self.groups = TTLCache('groups', cache_ttl, clock)
        self.teachers = TTLCache('teachers', cache_ttl, clock)
        self.group_schedules = TTLCache('group schedules', cache_ttl, clock)
        self.teacher_schedules = TTLCache('teacher schedules', cache_ttl, clock)

        logger.info(f"Initialized MkrService for {self.base_url}")

    @property
    def teachers_url(self) -> str:
        return f"{self.base_url}/teacher?type=1"

    @property
    def groups_url(self) -> str:
        return f"{self.base_url}/group?type=1"

    def reset_session(self) -> None:
        """Forget the token and cookie; the next request starts a new session."""
        self.session.reset()
        logger.info("Session state reset")

    def load_structures(self) -> List[KeyValuePair]:
        """
        Load the structures list, kept for the process lifetime.

        The first call also acquires the session's first token.
        """
        if self._structures:
            return self._structures

        html = self.submitter.fetch(self.teachers_url)
        structures = parse_select(html, option_selector('structureId'))
        logger.info(f"Loaded {len(structures)} structures")

        self._structures = structures
        return structures

    def load_chairs(self, structure_id: int) -> List[KeyValuePair]:
        return self._load_list(
            self.chairs,
            self.teachers_url,
            {'TimeTableForm[structureId]': structure_id},
            'chairId'
        )

    def load_faculties(self, structure_id: int) -> List[KeyValuePair]:
        return self._load_list(
            self.faculties,
            self.groups_url,
            {'TimeTableForm[structureId]': structure_id},
            'facultyId'
        )

    def load_courses(self, structure_id: int, faculty_id: int) -> List[KeyValuePair]:
        """Courses are the same for every faculty; no request is made."""
        return [
            KeyValuePair(id=str(course), name=self.COURSE_LABEL.format(course))
            for course in self.COURSES
        ]

    def load_groups(self, structure_id: int, faculty_id: int, course: int) -> List[KeyValuePair]:
        return self._load_list(
            self.groups,
            self.groups_url,
            {
                'TimeTableForm[structureId]': structure_id,
                'TimeTableForm[facultyId]': faculty_id,
                'TimeTableForm[course]': course
            },
            'groupId'
        )

    def load_faculty_groups(self, structure_id: int, faculty_id: int) -> List[KeyValuePair]:
        """
        Load the groups of every course of a faculty.

        Returns:
            Groups in course order, each id listed once
        """
        seen: Dict[str, KeyValuePair] = {}
        for course in self.COURSES:
            for group in self.load_groups(structure_id, faculty_id, course):
                seen.setdefault(group.id, group)
        return list(seen.values())

    def load_teachers(self, structure_id: int, chair_id: int) -> List[KeyValuePair]:
        return self._load_list(
            self.teachers,
            self.teachers_url,
            {
                'TimeTableForm[structureId]': structure_id,
                'TimeTableForm[chairId]': chair_id
            },
            'teacherId'
        )

    def load_group_schedule(self, request: GroupScheduleRequest) -> List[ScheduleEvent]:
        """
        Load a group's schedule for a date window.

        Args:
            request: Group query; missing dates default to [today, today + 7 days)

        Returns:
            List of ScheduleEvent objects with teacher set

        Raises:
            NoScheduleDataError: If the response carries no events
        """
        start, end = self._resolve_window(request.start_date, request.end_date)
        fields = {
            'TimeTableForm[structureId]': request.structure_id,
            'TimeTableForm[facultyId]': request.faculty_id,
            'TimeTableForm[course]': request.course,
            'TimeTableForm[groupId]': request.group_id
        }
        key = make_key(
            request.structure_id, request.faculty_id, request.course,
            request.group_id, start, end
        )
        return self._load_schedule(
            self.group_schedules, self.groups_url, fields, key,
            start, end, ScheduleContext.GROUP
        )

    def load_teacher_schedule(self, request: TeacherScheduleRequest) -> List[ScheduleEvent]:
        """
        Load a teacher's schedule for a date window.

        Args:
            request: Teacher query; missing dates default to [today, today + 7 days)

        Returns:
            List of ScheduleEvent objects with group set

        Raises:
            NoScheduleDataError: If the response carries no events
        """
        start, end = self._resolve_window(request.start_date, request.end_date)
        fields = {
            'TimeTableForm[structureId]': request.structure_id,
            'TimeTableForm[chairId]': request.chair_id,
            'TimeTableForm[teacherId]': request.teacher_id
        }
        key = make_key(
            request.structure_id, request.chair_id, request.teacher_id, start, end
        )
        return self._load_schedule(
            self.teacher_schedules, self.teachers_url, fields, key,
            start, end, ScheduleContext.TEACHER
        )

    def _load_list(self, cache: TTLCache, url: str, fields: dict, field: str) -> List[KeyValuePair]:
        key = make_key(*fields.values())
        cached = cache.get(key)
        if cached:
            return cached

        logger.info(f"Fetching {cache.name} for {key}")
        html = self.submitter.submit(url, fields)
        items = parse_select(html, option_selector(field))
        logger.info(f"Loaded {len(items)} {cache.name} for {key}")

        cache.put(key, items)
        return items

    def _load_schedule(
        self,
        cache: TTLCache,
        url: str,
        fields: dict,
        key: str,
        start: str,
        end: str,
        context: ScheduleContext
    ) -> List[ScheduleEvent]:
        cached = cache.get(key)
        if cached:
            return cached

        logger.info(f"Fetching {cache.name} for {key}")
        form = dict(fields)
        form.update({
            'date-picker': f"{start} - {end}",
            'TimeTableForm[dateStart]': start,
            'TimeTableForm[dateEnd]': end,
            'TimeTableForm[indicationDays]': self.INDICATION_DAYS
        })

        html = self.submitter.submit(url, form)
        events = self.schedule_parser.parse(html, context)

        cache.put(key, events)
        return events

    def _resolve_window(self, start_date: Optional[date], end_date: Optional[date]) -> Tuple[str, str]:
        """Apply the default window and format both ends as DD.MM.YYYY."""
        start = start_date or date.fromtimestamp(self.clock())
        end = end_date or start + timedelta(days=self.DEFAULT_WINDOW_DAYS)
        return start.strftime(self.DATE_FORMAT), end.strftime(self.DATE_FORMAT)
