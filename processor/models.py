"""Data models for timetable resources."""
from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class KeyValuePair:
    """Selectable option (structure, chair, faculty, group, teacher)."""
    id: str
    name: str

    def to_dict(self) -> dict:
        return {'id': self.id, 'name': self.name}


@dataclass
class RawEvent:
    """Event record as embedded by the timetable page."""
    title: str
    class_name: str
    start: str
    end: str


@dataclass
class ScheduleEvent:
    """Normalized schedule entry."""
    name: Optional[str]
    place: Optional[str]
    type: str
    start: str
    end: str
    updated: bool
    teacher: Optional[str] = None
    group: Optional[str] = None

    def to_dict(self) -> dict:
        """
        Convert to the JSON resource shape.

        teacher and group are only emitted when set; the parser fills
        at most one of them, depending on the query type.

        Returns:
            Dictionary ready for json.dumps
        """
        data = {
            'name': self.name,
            'place': self.place,
            'type': self.type,
            'start': self.start,
            'end': self.end,
            'updated': self.updated
        }

        if self.teacher is not None:
            data['teacher'] = self.teacher
        if self.group is not None:
            data['group'] = self.group

        return data


@dataclass
class GroupScheduleRequest:
    """Schedule query for a student group."""
    structure_id: int
    faculty_id: int
    course: int
    group_id: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None


@dataclass
class TeacherScheduleRequest:
    """Schedule query for a teacher."""
    structure_id: int
    chair_id: int
    teacher_id: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None
