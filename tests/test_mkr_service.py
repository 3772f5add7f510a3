"""Unit tests for MkrService."""
from datetime import date
from urllib.parse import parse_qs

import pytest
import responses

from processor.models import GroupScheduleRequest, KeyValuePair, TeacherScheduleRequest
from processor.schedule_parser import NoScheduleDataError
from service.mkr_service import MkrService

BASE = "http://mkr.test"
TEACHER_URL = f"{BASE}/teacher?type=1"
GROUP_URL = f"{BASE}/group?type=1"

# 2024-01-15 12:00 UTC, far from midnight in any sensible timezone
NOW = 1705320000.0


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


def select_page(field, options, token="tok"):
    """Build a form page with a placeholder and the given options."""
    rows = ''.join(f'<option value="{value}">{name}</option>' for value, name in options)
    return (
        f'<html><head><meta name="csrf-token" content="{token}"></head><body>'
        f'<select name="TimeTableForm[{field}]"><option value="">---</option>{rows}</select>'
        '</body></html>'
    )


def schedule_page(token="tok"):
    return (
        f'<html><head><meta name="csrf-token" content="{token}"></head><body><script>'
        '{"events":[{"className":"lesson-2 lesson-updated","title":"ООП [Пз]\\n ауд. 101\\n КН-20-1",'
        '"start":"2024-01-15T08:30:00","end":"2024-01-15T09:50:00"}]}'
        '</script></body></html>'
    )


def form_of(call):
    return {k: v[0] for k, v in parse_qs(call.request.body, keep_blank_values=True).items()}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(clock):
    return MkrService(BASE + "/", timeout=5, cache_ttl=3600, clock=clock)


class TestMkrService:
    """Test cases for MkrService class."""

    @responses.activate
    def test_load_structures_memoized(self, service):
        """Test that structures are fetched once and the token acquired."""
        responses.add(
            responses.GET, TEACHER_URL,
            body=select_page('structureId', [("1", "Університет"), ("2", "Коледж")], token="boot"),
            status=200,
            headers={'Set-Cookie': 'sess=1'}
        )

        first = service.load_structures()
        second = service.load_structures()

        assert first == [KeyValuePair("1", "Університет"), KeyValuePair("2", "Коледж")]
        assert second is first
        assert len(responses.calls) == 1
        assert service.session.token == "boot"
        assert service.session.cookie == "sess=1"

    @responses.activate
    def test_empty_structures_not_memoized(self, service):
        responses.add(responses.GET, TEACHER_URL, body=select_page('structureId', []), status=200)

        assert service.load_structures() == []
        assert service.load_structures() == []
        assert len(responses.calls) == 2

    @responses.activate
    def test_load_chairs_cached_within_ttl(self, service, clock):
        """Test that a second call within an hour makes no new request."""
        responses.add(
            responses.POST, TEACHER_URL,
            body=select_page('chairId', [("5", "Кафедра")]), status=200
        )

        first = service.load_chairs(1)
        clock.now += 3599
        second = service.load_chairs(1)

        assert first == [KeyValuePair("5", "Кафедра")]
        assert second == first
        assert len(responses.calls) == 1
        assert form_of(responses.calls[0])['TimeTableForm[structureId]'] == '1'

    @responses.activate
    def test_load_chairs_refetched_after_ttl(self, service, clock):
        responses.add(
            responses.POST, TEACHER_URL,
            body=select_page('chairId', [("5", "Кафедра")]), status=200
        )
        responses.add(
            responses.POST, TEACHER_URL,
            body=select_page('chairId', [("5", "Кафедра"), ("6", "Нова")]), status=200
        )

        service.load_chairs(1)
        clock.now += 3600
        assert len(service.load_chairs(1)) == 1
        clock.now += 1
        assert len(service.load_chairs(1)) == 2
        assert len(responses.calls) == 2

    @responses.activate
    def test_distinct_keys_fetch_separately(self, service):
        responses.add(
            responses.POST, TEACHER_URL,
            body=select_page('chairId', [("5", "Кафедра")]), status=200
        )

        service.load_chairs(1)
        service.load_chairs(2)

        assert len(responses.calls) == 2

    @responses.activate
    def test_teachers_use_own_cache(self, service):
        """Test that teachers never land in the chairs cache."""
        responses.add(
            responses.POST, TEACHER_URL,
            body=select_page('teacherId', [("77", "Петренко П.П.")]), status=200
        )

        teachers = service.load_teachers(1, 5)
        service.load_teachers(1, 5)

        assert teachers == [KeyValuePair("77", "Петренко П.П.")]
        assert len(responses.calls) == 1
        assert len(service.chairs) == 0
        assert len(service.teachers) == 1
        assert form_of(responses.calls[0]) == {
            '_csrf-frontend': '',
            'TimeTableForm[structureId]': '1',
            'TimeTableForm[chairId]': '5'
        }

    @responses.activate
    def test_empty_list_not_cached(self, service):
        responses.add(responses.POST, GROUP_URL, body=select_page('facultyId', []), status=200)

        assert service.load_faculties(1) == []
        assert service.load_faculties(1) == []
        assert len(responses.calls) == 2

    @responses.activate
    def test_load_groups(self, service):
        responses.add(
            responses.POST, GROUP_URL,
            body=select_page('groupId', [("300", "КН-20-1")]), status=200
        )

        groups = service.load_groups(1, 2, 3)

        assert groups == [KeyValuePair("300", "КН-20-1")]
        form = form_of(responses.calls[0])
        assert form['TimeTableForm[facultyId]'] == '2'
        assert form['TimeTableForm[course]'] == '3'

    def test_load_courses(self, service):
        courses = service.load_courses(1, 2)

        assert len(courses) == 7
        assert courses[0] == KeyValuePair("1", "1 Курс")
        assert courses[-1] == KeyValuePair("7", "7 Курс")

    @responses.activate
    def test_load_faculty_groups(self, service):
        """Test that groups of all courses are merged without duplicates."""
        responses.add(
            responses.POST, GROUP_URL,
            body=select_page('groupId', [("1", "A-1"), ("2", "A-2")]), status=200
        )
        for _ in range(6):
            responses.add(
                responses.POST, GROUP_URL,
                body=select_page('groupId', [("2", "A-2"), ("3", "B-1")]), status=200
            )

        groups = service.load_faculty_groups(1, 2)

        assert [group.id for group in groups] == ["1", "2", "3"]
        assert len(responses.calls) == 7

    @responses.activate
    def test_group_schedule_defaults_and_cache(self, service):
        """Test the default window and that it is shared by later calls."""
        responses.add(responses.POST, GROUP_URL, body=schedule_page(), status=200)
        request = GroupScheduleRequest(structure_id=1, faculty_id=2, course=3, group_id=4)

        first = service.load_group_schedule(request)
        second = service.load_group_schedule(request)

        assert second is first
        assert len(responses.calls) == 1

        today = date.fromtimestamp(NOW)
        start = today.strftime('%d.%m.%Y')
        end = date.fromordinal(today.toordinal() + 7).strftime('%d.%m.%Y')
        form = form_of(responses.calls[0])
        assert form['TimeTableForm[dateStart]'] == start
        assert form['TimeTableForm[dateEnd]'] == end
        assert form['date-picker'] == f"{start} - {end}"
        assert form['TimeTableForm[indicationDays]'] == '5'
        assert form['TimeTableForm[groupId]'] == '4'

        event = first[0]
        assert event.name == "ООП [Пз]"
        assert event.place == "ауд. 101"
        assert event.teacher == "КН-20-1"
        assert event.type == "practice"
        assert event.updated is True

    @responses.activate
    def test_explicit_dates_share_defaulted_entry(self, service):
        responses.add(responses.POST, GROUP_URL, body=schedule_page(), status=200)
        today = date.fromtimestamp(NOW)

        service.load_group_schedule(
            GroupScheduleRequest(structure_id=1, faculty_id=2, course=3, group_id=4)
        )
        service.load_group_schedule(
            GroupScheduleRequest(
                structure_id=1, faculty_id=2, course=3, group_id=4,
                start_date=today,
                end_date=date.fromordinal(today.toordinal() + 7)
            )
        )

        assert len(responses.calls) == 1

    @responses.activate
    def test_teacher_schedule(self, service):
        responses.add(responses.POST, TEACHER_URL, body=schedule_page(), status=200)

        events = service.load_teacher_schedule(TeacherScheduleRequest(
            structure_id=1, chair_id=5, teacher_id=77,
            start_date=date(2024, 1, 15), end_date=date(2024, 1, 20)
        ))

        assert events[0].group == "КН-20-1"
        assert events[0].teacher is None
        form = form_of(responses.calls[0])
        assert form['TimeTableForm[teacherId]'] == '77'
        assert form['date-picker'] == "15.01.2024 - 20.01.2024"
        assert len(service.teacher_schedules) == 1
        assert len(service.group_schedules) == 0

    @responses.activate
    def test_missing_events_raises(self, service):
        """Test that a page without events raises instead of returning []."""
        responses.add(
            responses.POST, TEACHER_URL,
            body=select_page('teacherId', [("77", "Петренко П.П.")]), status=200
        )

        with pytest.raises(NoScheduleDataError):
            service.load_teacher_schedule(
                TeacherScheduleRequest(structure_id=1, chair_id=5, teacher_id=77)
            )

        assert len(service.teacher_schedules) == 0

    @responses.activate
    def test_stale_token_recovered(self, service):
        responses.add(responses.POST, GROUP_URL, body=select_page('facultyId', [], token="fresh"), status=400)
        responses.add(
            responses.POST, GROUP_URL,
            body=select_page('facultyId', [("9", "ФІТ")], token="next"), status=200
        )

        faculties = service.load_faculties(1)

        assert faculties == [KeyValuePair("9", "ФІТ")]
        assert form_of(responses.calls[1])['_csrf-frontend'] == "fresh"
        assert service.session.token == "next"

    def test_reset_session(self, service):
        service.session.token = "tok"
        service.session.cookie = "sess=1"

        service.reset_session()

        assert service.session.token is None
        assert service.session.cookie == ""

    def test_base_url_trailing_slash(self, service):
        assert service.teachers_url == TEACHER_URL
        assert service.groups_url == GROUP_URL
